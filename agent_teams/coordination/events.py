"""
Minimal publish/subscribe hub for message and task lifecycle notifications.
"""
import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]

MESSAGE = "message"
TASK_CREATED = "task:created"
TASK_UPDATED = "task:updated"
TASK_COMPLETED = "task:completed"


class EventHub:
    """
    Synchronous event hub owned by a single MessageBus.

    Handlers run in subscription order on the caller's thread. A handler that
    raises is logged and skipped; the emitting operation still succeeds.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """
        Register a handler for an event.

        Returns:
            A callable that removes the handler again
        """
        self._handlers.setdefault(event, []).append(handler)
        return lambda: self.unsubscribe(event, handler)

    def unsubscribe(self, event: str, handler: Handler):
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, event: str, payload: Any):
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler for %r failed", event)

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    def clear(self):
        """Drop every handler."""
        self._handlers.clear()

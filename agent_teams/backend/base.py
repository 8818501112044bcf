"""
Backend session contract consumed by the coordination engine.

A backend turns prompts into assistant turns. The engine only needs to send a
prompt and wait for the turn to settle, listen to streamed text, and tear the
session down. Prompts that arrive while a turn is running are queued by the
DispatchGate, not by the session.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from ..coordination.errors import BackendError

logger = logging.getLogger(__name__)

# Session events
MESSAGE_DELTA = "message_delta"  # payload: incremental text
MESSAGE = "message"              # payload: full text of the finished turn


@dataclass
class SessionConfig:
    """Everything a backend needs to open a session for one worker."""
    worker_id: str
    name: str
    model: str
    system_message: str = ""
    tools: List[Any] = field(default_factory=list)  # AgentTool instances
    streaming: bool = True
    turn_timeout: float = 600.0


class BackendSession(ABC):
    """
    Base class for one worker's conversation with a backend.

    Turns never overlap: ``send_and_wait`` holds the session's turn lock.
    """

    def __init__(self, config: SessionConfig):
        self.config = config
        self.destroyed = False
        self.turns_run = 0
        self._listeners: Dict[str, List[Callable[[Any], None]]] = {}
        self._turn_lock = asyncio.Lock()

    @abstractmethod
    async def _run_turn(self, prompt: str) -> str:
        """
        Execute one turn and return the assistant's full reply.
        Implementations emit MESSAGE_DELTA events while text arrives.
        """
        pass

    async def _teardown(self):
        """Release backend resources. Called once from destroy()."""
        pass

    # Events

    def on(self, event: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """
        Subscribe to a session event.

        Returns:
            A callable that removes the subscription
        """
        self._listeners.setdefault(event, []).append(callback)

        def unsubscribe():
            callbacks = self._listeners.get(event, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def _emit(self, event: str, payload: Any):
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(payload)
            except Exception:
                logger.exception("[%s] %s listener failed", self.config.name, event)

    # Turns

    async def send_and_wait(self, prompt: str) -> str:
        """
        Run a turn and wait until it settles.

        Raises:
            BackendError: the session is destroyed or the turn failed
        """
        self._check_alive()
        async with self._turn_lock:
            reply = await self._run_turn(prompt)
            self.turns_run += 1
            self._emit(MESSAGE, reply)
        return reply

    async def destroy(self):
        """Tear the session down. Safe to call more than once."""
        if self.destroyed:
            return
        self.destroyed = True
        self._listeners.clear()
        await self._teardown()

    def _check_alive(self):
        if self.destroyed:
            raise BackendError(f"Session for {self.config.name} has been destroyed")


class Backend(ABC):
    """Factory for backend sessions."""

    name = "backend"

    async def check_ready(self):
        """Pre-flight check. Raises BackendUnavailable when unusable."""
        pass

    @abstractmethod
    async def create_session(self, config: SessionConfig) -> BackendSession:
        pass

    async def stop(self):
        pass

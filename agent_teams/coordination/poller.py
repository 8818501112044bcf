"""
Message poller: periodically checks each worker's mailbox and forwards unread
messages as one prompt.

The poller only detects mail. Whether a prompt may run (busy state, turn
budget) is decided by the dispatch callable it forwards to.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Set

from .message_bus import AgentMessage, MessageBus

logger = logging.getLogger(__name__)

DispatchFn = Callable[[Any, str], Awaitable[Any]]


def format_messages(msgs: List[AgentMessage]) -> str:
    """Aggregate messages into one prompt, keeping sender and order."""
    formatted = "\n\n".join(f"[Message from {m.sender}]: {m.content}" for m in msgs)
    return (
        f"You have {len(msgs)} new message(s) from teammates:\n\n{formatted}\n\n"
        "Please read and respond appropriately. If any action is needed, take it. "
        "Then check your task list."
    )


class MessagePoller:
    """
    One asyncio timer task per worker.

    Each tick that finds mail starts the forward as its own task, so the
    timer keeps running while a long backend turn is in flight. Delivery is
    at-most-once: messages are marked read before forwarding and are not
    re-queued when the forward fails.
    """

    def __init__(self, bus: MessageBus, dispatch: DispatchFn, poll_interval: float = 2.0):
        """
        Args:
            bus: Message bus holding the mailboxes
            dispatch: Coroutine function ``(worker, prompt)`` deciding delivery
            poll_interval: Seconds between mailbox checks
        """
        self.bus = bus
        self.dispatch = dispatch
        self.poll_interval = poll_interval
        self.running = True
        self._timers: Dict[str, asyncio.Task] = {}
        self._deliveries: Set[asyncio.Task] = set()

    def start_polling(self, worker) -> asyncio.Task:
        """Start the timer for a worker. Must be called from a running loop."""
        self.stop_polling(worker.id)
        timer = asyncio.ensure_future(self._poll_loop(worker))
        self._timers[worker.id] = timer
        return timer

    def stop_polling(self, worker_id: str):
        timer = self._timers.pop(worker_id, None)
        if timer is not None:
            timer.cancel()

    def stop_all(self):
        """Stop every timer. Safe to call more than once."""
        self.running = False
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

    def is_polling(self, worker_id: str) -> bool:
        return worker_id in self._timers

    async def poll_once(self, worker) -> bool:
        """
        Run one tick for a worker and wait for the forward to settle.

        Returns:
            True if messages were found and forwarded
        """
        if not self.running:
            return False
        if not self.bus.has_unread_messages(worker.id):
            return False

        msgs = self.bus.read_messages(worker.id)
        if not msgs:
            return False

        for m in msgs:
            logger.info(
                "Delivering message to [%s] from [%s]: %s", worker.name, m.sender, m.content[:100]
            )

        try:
            await self.dispatch(worker, format_messages(msgs))
        except Exception as e:
            logger.error("[%s] message delivery failed: %s", worker.name, e)
        return True

    async def _poll_loop(self, worker):
        while self.running:
            await asyncio.sleep(self.poll_interval)
            if not self.running:
                break
            # poll_once marks mail read before its first await; a slow
            # forward never delays the next tick.
            delivery = asyncio.ensure_future(self.poll_once(worker))
            self._deliveries.add(delivery)
            delivery.add_done_callback(self._deliveries.discard)

"""
Dispatch gate: the single authority on whether a prompt reaches a worker's
backend session now, later, or never.
"""
import logging
from enum import Enum
from typing import Callable, Optional

from ..coordination.errors import is_auth_failure
from ..output.router import OutputRouter
from .worker import ManagedWorker

logger = logging.getLogger(__name__)

BUSY_ICON = "⏳"


class DispatchOutcome(str, Enum):
    DROPPED = "dropped"      # turn budget exhausted
    ENQUEUED = "enqueued"    # worker busy, queued on the worker
    COMPLETED = "completed"
    FAILED = "failed"


class DispatchGate:
    """
    Single-flight, turn-limited admission control for backend turns.

    The busy check and the busy assignment in ``dispatch`` have no await
    between them, so on one event loop at most one turn per worker is ever in
    flight. Prompts arriving meanwhile wait in ``worker.pending`` and are run
    by the dispatch that owns the busy flag, each one counted against the
    turn budget when it starts.
    """

    def __init__(
        self,
        router: OutputRouter,
        max_turns: int = 20,
        on_auth_failure: Optional[Callable[[ManagedWorker, BaseException], None]] = None,
    ):
        """
        Args:
            router: Output router used for busy/idle indicators
            max_turns: Turns a worker may start before prompts are dropped
            on_auth_failure: Called when a turn fails with an authentication error
        """
        self.router = router
        self.max_turns = max_turns
        self.on_auth_failure = on_auth_failure

    async def dispatch(self, worker: ManagedWorker, prompt: str) -> DispatchOutcome:
        """
        Send a prompt to a worker's session, honouring the turn budget and
        the busy flag.

        Backend failures are logged and reported through the outcome; they
        are not raised.

        Returns:
            The outcome of ``prompt`` itself. Queued prompts run later by
            this call are reported through logs and the auth callback only.
        """
        if worker.turn_count >= self.max_turns:
            logger.warning(
                "[%s] max turns (%d) reached, message dropped", worker.name, self.max_turns
            )
            return DispatchOutcome.DROPPED

        if worker.busy:
            worker.pending.append(prompt)
            logger.info("[%s] busy, enqueueing message (%d queued)", worker.name, len(worker.pending))
            return DispatchOutcome.ENQUEUED

        worker.busy = True
        try:
            outcome = await self._run_turn(worker, prompt)
            await self._drain_pending(worker)
        finally:
            worker.busy = False
            self.router.update_title(worker.id, None, worker.model)
            self.router.write_status(worker.id, "idle")

        return outcome

    async def _drain_pending(self, worker: ManagedWorker):
        while worker.pending:
            if worker.session is None or worker.session.destroyed:
                logger.info("[%s] session closed, %d queued message(s) discarded",
                            worker.name, len(worker.pending))
                worker.pending.clear()
                return
            if worker.turn_count >= self.max_turns:
                logger.warning(
                    "[%s] max turns (%d) reached, %d queued message(s) dropped",
                    worker.name, self.max_turns, len(worker.pending),
                )
                worker.pending.clear()
                return
            await self._run_turn(worker, worker.pending.popleft())

    async def _run_turn(self, worker: ManagedWorker, prompt: str) -> DispatchOutcome:
        worker.turn_count += 1
        turn = worker.turn_count
        logger.info(
            "[%s] turn %d/%d: %s", worker.name, turn, self.max_turns, prompt[:100]
        )

        try:
            self.router.update_title(worker.id, BUSY_ICON, worker.model)
            self.router.write_status(worker.id, "working", f"turn {turn}")
            await worker.session.send_and_wait(prompt)
        except Exception as e:
            logger.error("[%s] Error: %s", worker.name, e)
            if is_auth_failure(e):
                logger.critical(
                    "[%s] Authentication error detected. Log in to the backend again "
                    "and restart the application.", worker.name
                )
                if self.on_auth_failure is not None:
                    self.on_auth_failure(worker, e)
            self.router.write_status(worker.id, "idle", str(e))
            return DispatchOutcome.FAILED

        return DispatchOutcome.COMPLETED

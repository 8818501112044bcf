"""
Output routing: sends each worker's streamed text either to its own channel
(a tmux pane) or to a shared console with a per-line name prefix.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from rich.console import Console
from rich.text import Text

from ..backend.base import MESSAGE, MESSAGE_DELTA, BackendSession
from .tmux import TmuxManager

logger = logging.getLogger(__name__)

STATUSES = ("thinking", "idle", "working", "done")


class OutputSink(ABC):
    """Destination for worker output."""

    @abstractmethod
    def has_channel(self, worker_id: str) -> bool:
        pass

    @abstractmethod
    def create_channel(self, worker_id: str, name: str, role: str, model: Optional[str]):
        pass

    @abstractmethod
    def write(self, worker_id: str, name: str, text: str):
        """Write streamed text for a worker."""
        pass

    @abstractmethod
    def end_turn(self, worker_id: str, name: str):
        pass

    def close_channel(self, worker_id: str):
        pass

    def close_all(self):
        pass

    def update_title(self, worker_id: str, status_icon: Optional[str] = None,
                     model: Optional[str] = None):
        pass

    def write_status(self, worker_id: str, status: str, detail: Optional[str] = None):
        pass


class PaneOutputSink(OutputSink):
    """
    Dedicated channel per worker, backed by tmux panes. Workers whose pane
    could not be created fall back to the shared console.
    """

    def __init__(self, tmux: TmuxManager, fallback: Optional["StreamOutputSink"] = None):
        self.tmux = tmux
        self.fallback = fallback or StreamOutputSink()

    def has_channel(self, worker_id: str) -> bool:
        return self.tmux.has_pane(worker_id)

    def create_channel(self, worker_id: str, name: str, role: str, model: Optional[str]):
        self.tmux.create_pane(worker_id, name, role, model)

    def write(self, worker_id: str, name: str, text: str):
        if self.has_channel(worker_id):
            self.tmux.write(worker_id, text)
        else:
            self.fallback.write(worker_id, name, text)

    def end_turn(self, worker_id: str, name: str):
        if self.has_channel(worker_id):
            self.tmux.write(worker_id, "\n")
        else:
            self.fallback.end_turn(worker_id, name)

    def close_channel(self, worker_id: str):
        self.tmux.close_pane(worker_id)
        self.fallback.close_channel(worker_id)

    def close_all(self):
        self.tmux.close_all()
        self.fallback.close_all()

    def update_title(self, worker_id: str, status_icon: Optional[str] = None,
                     model: Optional[str] = None):
        self.tmux.update_pane_title(worker_id, status_icon, model)

    def write_status(self, worker_id: str, status: str, detail: Optional[str] = None):
        self.tmux.write_status(worker_id, status, detail)


class StreamOutputSink(OutputSink):
    """
    Shared console for every worker. Each line starts with ``[name] ``;
    text arriving in small pieces gets the prefix once per line.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self._at_line_start: Dict[str, bool] = {}

    def has_channel(self, worker_id: str) -> bool:
        return False

    def create_channel(self, worker_id: str, name: str, role: str, model: Optional[str]):
        pass

    def write(self, worker_id: str, name: str, text: str):
        out = Text()
        at_line_start = self._at_line_start.get(worker_id, True)
        for line in text.splitlines(keepends=True):
            if at_line_start:
                out.append(f"[{name}] ", style="magenta")
            out.append(line)
            at_line_start = line.endswith("\n")
        self._at_line_start[worker_id] = at_line_start
        self.console.print(out, end="", soft_wrap=True, highlight=False)

    def end_turn(self, worker_id: str, name: str):
        self.console.print()
        self._at_line_start[worker_id] = True

    def close_channel(self, worker_id: str):
        self._at_line_start.pop(worker_id, None)

    def close_all(self):
        self._at_line_start.clear()


class OutputRouter:
    """Routes streamed output and status indicators to the configured sink."""

    def __init__(self, sink: OutputSink, streaming: bool = True):
        self.sink = sink
        self.streaming = streaming

    def has_channel(self, worker_id: str) -> bool:
        return self.sink.has_channel(worker_id)

    def create_channel(self, worker_id: str, name: str, role: str, model: Optional[str] = None):
        self.sink.create_channel(worker_id, name, role, model)

    def close_channel(self, worker_id: str):
        self.sink.close_channel(worker_id)

    def close_all(self):
        self.sink.close_all()

    def update_title(self, worker_id: str, status_icon: Optional[str] = None,
                     model: Optional[str] = None):
        if self.sink.has_channel(worker_id):
            self.sink.update_title(worker_id, status_icon, model)

    def write_status(self, worker_id: str, status: str, detail: Optional[str] = None):
        if status not in STATUSES:
            raise ValueError(f"Unknown status: {status}")
        if self.sink.has_channel(worker_id):
            self.sink.write_status(worker_id, status, detail)

    def attach_streaming_listeners(self, session: BackendSession, worker):
        """Forward a session's text deltas and end-of-turn markers to the sink."""

        def on_delta(delta: str):
            if not self.streaming or not delta:
                return
            self.sink.write(worker.id, worker.name, delta)

        def on_message(_text: str):
            if not self.streaming:
                return
            self.sink.end_turn(worker.id, worker.name)
            logger.info("[%s] turn complete", worker.name)

        session.on(MESSAGE_DELTA, on_delta)
        session.on(MESSAGE, on_message)


def create_router(tmux: TmuxManager, streaming: bool = True,
                  console: Optional[Console] = None) -> OutputRouter:
    """Pick the pane sink inside tmux, the shared console otherwise."""
    fallback = StreamOutputSink(console)
    sink = PaneOutputSink(tmux, fallback) if tmux.available else fallback
    return OutputRouter(sink, streaming)

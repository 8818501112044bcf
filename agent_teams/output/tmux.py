"""
tmux pane management: one pane per worker so the main pane stays interactive.

Each pane runs ``tail -f`` on a log file; worker output is appended to that
file. Outside tmux every method is a no-op.
"""
import logging
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Dict, IO, Optional

from ..config.models import shorten_model

logger = logging.getLogger(__name__)

STATUS_LINES = {
    "thinking": "\x1b[33m⏳ Thinking...\x1b[0m",
    "idle": "\x1b[32m● Idle\x1b[0m",
    "working": "\x1b[33m▶ Working\x1b[0m",
    "done": "\x1b[32m✓ Done\x1b[0m",
}


@dataclass
class AgentPane:
    pane_id: str
    worker_id: str
    name: str
    role: str
    log_file: str
    stream: IO[str]


def tmux_available() -> bool:
    """True when the tmux binary exists and we run inside a tmux session."""
    return shutil.which("tmux") is not None and bool(os.environ.get("TMUX"))


class TmuxManager:
    """Creates, titles, writes to and closes per-worker tmux panes."""

    def __init__(self, available: Optional[bool] = None):
        self.available = tmux_available() if available is None else available
        self.panes: Dict[str, AgentPane] = {}
        self.tmp_dir: Optional[str] = None
        if self.available:
            self.tmp_dir = tempfile.mkdtemp(prefix=f"agent-teams-{os.getpid()}-")
            self._configure_pane_borders()
            logger.info("tmux detected, multi-pane mode enabled (tmp: %s)", self.tmp_dir)
        else:
            logger.info("tmux not detected, single-pane fallback mode")

    def _tmux(self, *args: str) -> str:
        result = subprocess.run(
            ["tmux", *args], check=True, capture_output=True, text=True
        )
        return result.stdout.strip()

    def _configure_pane_borders(self):
        """Show pane titles on the top border so names never scroll away."""
        try:
            self._tmux("set-option", "-w", "pane-border-status", "top")
            self._tmux(
                "set-option", "-w", "pane-border-format",
                " #{?pane_active,#[bold],}#[fg=cyan]#{pane_title}#[default] ",
            )
            self._tmux("set-option", "-w", "pane-border-style", "fg=colour240")
            self._tmux("set-option", "-w", "pane-active-border-style", "fg=green")
        except (subprocess.CalledProcessError, OSError):
            logger.debug("tmux pane border configuration not supported (older tmux?)")

    # Pane lifecycle

    def create_pane(self, worker_id: str, name: str, role: str,
                    model: Optional[str] = None) -> Optional[AgentPane]:
        if not self.available:
            return None

        log_file = os.path.join(self.tmp_dir, f"{worker_id}.log")
        try:
            with open(log_file, "w", encoding="utf-8") as f:
                f.write("\x1b[90m● Initializing...\x1b[0m\n")

            pane_id = self._tmux(
                "split-window", "-h", "-d", "-P", "-F", "#{pane_id}",
                f"tail -n +1 -f '{log_file}'",
            )
            self._set_title(pane_id, self._title(name, role, model))
            self._tmux("select-layout", "tiled")
        except (subprocess.CalledProcessError, OSError) as e:
            logger.error("Failed to create tmux pane for %s: %s", worker_id, e)
            return None

        pane = AgentPane(
            pane_id=pane_id,
            worker_id=worker_id,
            name=name,
            role=role,
            log_file=log_file,
            stream=open(log_file, "a", encoding="utf-8"),
        )
        self.panes[worker_id] = pane
        self._update_status_bar()
        logger.info("Created tmux pane %s for @%s", pane_id, name)
        return pane

    def close_pane(self, worker_id: str):
        pane = self.panes.pop(worker_id, None)
        if pane is None:
            return

        pane.stream.close()
        try:
            self._tmux("kill-pane", "-t", pane.pane_id)
        except (subprocess.CalledProcessError, OSError):
            pass  # already gone
        try:
            os.remove(pane.log_file)
        except OSError:
            pass

        self._update_status_bar()
        logger.info("Closed tmux pane for @%s", pane.name)

    def close_all(self):
        """Close every pane and remove the temp directory."""
        for worker_id in list(self.panes):
            self.close_pane(worker_id)
        if self.tmp_dir:
            shutil.rmtree(self.tmp_dir, ignore_errors=True)

    # Output

    def has_pane(self, worker_id: str) -> bool:
        return worker_id in self.panes

    def write(self, worker_id: str, text: str):
        pane = self.panes.get(worker_id)
        if pane is None:
            return
        pane.stream.write(text)
        pane.stream.flush()

    def write_status(self, worker_id: str, status: str, detail: Optional[str] = None):
        line = STATUS_LINES.get(status, status)
        if detail:
            line = f"{line} - {detail}"
        self.write(worker_id, line + "\n")

    def update_pane_title(self, worker_id: str, suffix: Optional[str] = None,
                          model: Optional[str] = None):
        pane = self.panes.get(worker_id)
        if pane is None:
            return
        title = self._title(pane.name, pane.role, model)
        if suffix:
            title = f"{title} {suffix}"
        self._set_title(pane.pane_id, title)

    def set_main_pane_title(self, title: str):
        if not self.available:
            return
        try:
            self._tmux("select-pane", "-T", title)
        except (subprocess.CalledProcessError, OSError):
            pass

    # Helpers

    @staticmethod
    def _title(name: str, role: str, model: Optional[str]) -> str:
        model_tag = f" [{shorten_model(model)}]" if model else ""
        return f"@{name} ({role}){model_tag}"

    def _set_title(self, pane_id: str, title: str):
        try:
            self._tmux("select-pane", "-t", pane_id, "-T", title)
        except (subprocess.CalledProcessError, OSError):
            logger.debug("tmux pane title not supported for %s", pane_id)

    def _update_status_bar(self):
        if not self.available:
            return
        names = " ".join(f"@{p.name}" for p in self.panes.values())
        count = len(self.panes)
        status = f" @main {names} │ {count} teammate(s) " if count else " @main │ 0 teammates "
        try:
            self._tmux("set-option", "-q", "status-right", status)
        except (subprocess.CalledProcessError, OSError):
            pass

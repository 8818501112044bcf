"""Pytest fixtures for agent teams tests."""

import asyncio
import io
from typing import Dict, List, Optional, Tuple

import pytest
from rich.console import Console

from agent_teams.agents.worker import ManagedWorker, WorkerRole
from agent_teams.backend.base import MESSAGE_DELTA, Backend, BackendSession, SessionConfig
from agent_teams.config.settings import Settings
from agent_teams.coordination.message_bus import MessageBus
from agent_teams.output.router import OutputRouter, OutputSink, StreamOutputSink


class FakeSession(BackendSession):
    """Backend session whose turns can be held open and made to fail."""

    def __init__(self, config: SessionConfig, gate: Optional[asyncio.Event] = None,
                 error: Optional[Exception] = None,
                 errors_by_prompt: Optional[Dict[str, Exception]] = None):
        super().__init__(config)
        self.gate = gate
        self.error = error
        self.errors_by_prompt = errors_by_prompt or {}
        self.prompts: List[str] = []

    async def _run_turn(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if prompt in self.errors_by_prompt:
            raise self.errors_by_prompt[prompt]
        self._emit(MESSAGE_DELTA, f"ok: {prompt}\n")
        return f"ok: {prompt}"


class FakeBackend(Backend):
    """Creates FakeSessions; per-name errors and a creation delay are configurable."""

    name = "fake"

    def __init__(self, errors: Optional[Dict[str, Exception]] = None, create_delay: float = 0.0):
        self.errors = errors or {}
        self.create_delay = create_delay
        self.sessions: Dict[str, FakeSession] = {}
        self.stopped = False

    async def create_session(self, config: SessionConfig) -> FakeSession:
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        session = FakeSession(config, error=self.errors.get(config.name))
        self.sessions[config.worker_id] = session
        return session

    async def stop(self):
        self.stopped = True


class RecordingSink(OutputSink):
    """Sink that gives every worker a channel and records everything sent to it."""

    def __init__(self):
        self.channels: Dict[str, str] = {}
        self.writes: List[Tuple[str, str]] = []
        self.titles: List[Tuple[str, Optional[str]]] = []
        self.statuses: List[Tuple[str, str, Optional[str]]] = []
        self.turns_ended: List[str] = []

    def has_channel(self, worker_id):
        return worker_id in self.channels

    def create_channel(self, worker_id, name, role, model):
        self.channels[worker_id] = name

    def write(self, worker_id, name, text):
        self.writes.append((worker_id, text))

    def end_turn(self, worker_id, name):
        self.turns_ended.append(worker_id)

    def close_channel(self, worker_id):
        self.channels.pop(worker_id, None)

    def close_all(self):
        self.channels.clear()

    def update_title(self, worker_id, status_icon=None, model=None):
        self.titles.append((worker_id, status_icon))

    def write_status(self, worker_id, status, detail=None):
        self.statuses.append((worker_id, status, detail))


def make_session(name: str = "alpha", **kwargs) -> FakeSession:
    config = SessionConfig(worker_id=name, name=name, model="sonnet")
    return FakeSession(config, **kwargs)


@pytest.fixture
def bus():
    """Fresh message bus."""
    return MessageBus()


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def recording_router(recording_sink):
    """Router whose sink records output and status changes."""
    return OutputRouter(recording_sink)


@pytest.fixture
def console_buffer():
    """Console writing into a StringIO, without colors."""
    buffer = io.StringIO()
    return Console(file=buffer, width=200, color_system=None), buffer


@pytest.fixture
def stream_router(console_buffer):
    console, _ = console_buffer
    return OutputRouter(StreamOutputSink(console))


@pytest.fixture
def make_worker():
    """Factory for workers backed by a FakeSession."""

    def _make(name: str = "alpha", role: WorkerRole = WorkerRole.TEAMMATE, **session_kwargs):
        session = make_session(name, **session_kwargs)
        return ManagedWorker(id=name, name=name, role=role, session=session, model="sonnet")

    return _make


@pytest.fixture
def echo_settings():
    """Settings for in-process runs with fast polling."""
    return Settings(backend="echo", poll_interval=0.01, language="en", _env_file=None)

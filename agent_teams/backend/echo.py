"""
Deterministic in-process backend for demos and tests without API access.
"""
import asyncio

from .base import MESSAGE_DELTA, Backend, BackendSession, SessionConfig


class EchoSession(BackendSession):
    """Streams the prompt back in small chunks."""

    def __init__(self, config: SessionConfig, delay: float = 0.0, chunk_size: int = 16):
        super().__init__(config)
        self.delay = delay
        self.chunk_size = chunk_size
        self.prompts = []

    async def _run_turn(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = f"[{self.config.name}] received: {prompt}\n"
        for i in range(0, len(reply), self.chunk_size):
            if self.config.streaming:
                self._emit(MESSAGE_DELTA, reply[i:i + self.chunk_size])
            await asyncio.sleep(self.delay)
        return reply


class EchoBackend(Backend):
    name = "echo"

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.sessions = []

    async def create_session(self, config: SessionConfig) -> EchoSession:
        session = EchoSession(config, delay=self.delay)
        self.sessions.append(session)
        return session

"""
Backend sessions that drive the workers.
"""
from .base import MESSAGE, MESSAGE_DELTA, Backend, BackendSession, SessionConfig
from .claude_cli import ClaudeCliBackend, ClaudeCliSession
from .echo import EchoBackend, EchoSession

__all__ = [
    'MESSAGE',
    'MESSAGE_DELTA',
    'Backend',
    'BackendSession',
    'SessionConfig',
    'ClaudeCliBackend',
    'ClaudeCliSession',
    'EchoBackend',
    'EchoSession',
]

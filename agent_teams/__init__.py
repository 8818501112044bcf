"""
Agent Teams - a lead agent and its teammates coordinating through a shared
mailbox and task board.
"""

__version__ = "0.1.0"

from .orchestrator import Orchestrator
from .coordination import MessageBus, MessagePoller
from .agents import DispatchGate, ManagedWorker

__all__ = [
    'Orchestrator',
    'MessageBus',
    'MessagePoller',
    'DispatchGate',
    'ManagedWorker',
]

"""
Worker records managed by the orchestrator.
"""
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Deque, Optional

from ..backend.base import BackendSession


class WorkerRole(str, Enum):
    LEAD = "lead"
    TEAMMATE = "teammate"


@dataclass
class ManagedWorker:
    """
    One agent of the team and the backend session driving it.

    ``busy`` is the single-flight flag, ``turn_count`` the loop-prevention
    counter and ``pending`` the FIFO of prompts that arrived while busy. Only
    the DispatchGate writes them.
    """
    id: str
    name: str
    role: WorkerRole
    session: Optional[BackendSession] = None
    specialty: Optional[str] = None
    model: Optional[str] = None
    busy: bool = False
    turn_count: int = 0
    pending: Deque[str] = field(default_factory=deque)
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_lead(self) -> bool:
        return self.role == WorkerRole.LEAD

    @property
    def label(self) -> str:
        """Role description shown next to the name."""
        return self.specialty or self.role.value

"""
In-memory message bus: per-agent mailboxes plus the shared task board.
All state lives on one MessageBus instance, mutated from the event loop thread.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import (
    DependencyBlocked,
    NotAssignedToCaller,
    NotClaimable,
    NotInProgress,
    TaskNotFound,
    UnknownRecipient,
)
from .events import EventHub, MESSAGE, TASK_COMPLETED, TASK_CREATED, TASK_UPDATED

logger = logging.getLogger(__name__)

BROADCAST = "*"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class AgentMessage:
    """Message delivered to an agent's mailbox."""
    id: str
    sender: str
    to: str  # recipient id, or "*" on the broadcast envelope
    content: str
    timestamp: datetime = field(default_factory=datetime.now)
    read: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from": self.sender,
            "to": self.to,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "read": self.read,
        }


@dataclass
class Task:
    """Work item on the shared task board."""
    id: str
    description: str
    created_by: str
    status: TaskStatus = TaskStatus.PENDING
    assignee: Optional[str] = None
    depends_on: List[str] = field(default_factory=list)
    result: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def touch(self):
        self.updated_at = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "status": self.status.value,
            "assignee": self.assignee,
            "created_by": self.created_by,
            "depends_on": list(self.depends_on),
            "result": self.result,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class MessageBus:
    """
    Mailboxes and task board shared by every agent of one orchestrator.

    Lifecycle notifications are published on ``self.events``:
    ``message``, ``task:created``, ``task:updated``, ``task:completed``.
    """

    def __init__(self):
        self.events = EventHub()
        self._mailboxes: Dict[str, List[AgentMessage]] = {}
        self._tasks: Dict[str, Task] = {}
        self._msg_counter = 0
        self._task_counter = 0

    # Agent registration

    def register_agent(self, agent_id: str):
        """Create an empty mailbox for an agent. Registering twice is a no-op."""
        if agent_id not in self._mailboxes:
            self._mailboxes[agent_id] = []

    def unregister_agent(self, agent_id: str):
        """Drop an agent's mailbox together with any unread messages."""
        self._mailboxes.pop(agent_id, None)

    def registered_agents(self) -> List[str]:
        return list(self._mailboxes)

    def is_registered(self, agent_id: str) -> bool:
        return agent_id in self._mailboxes

    # Messaging

    def send_message(self, sender: str, to: str, content: str) -> AgentMessage:
        """
        Deliver a message to one mailbox, or to every other mailbox for "*".

        Args:
            sender: Sending agent id
            to: Recipient agent id or "*" for broadcast
            content: Message text

        Returns:
            The message envelope. Broadcast recipients each get their own copy.

        Raises:
            UnknownRecipient: if a direct recipient has no mailbox
        """
        if to != BROADCAST and to not in self._mailboxes:
            raise UnknownRecipient(to)

        self._msg_counter += 1
        msg = AgentMessage(
            id=f"msg-{self._msg_counter}",
            sender=sender,
            to=to,
            content=content,
        )

        if to == BROADCAST:
            for agent_id, box in self._mailboxes.items():
                if agent_id != sender:
                    box.append(AgentMessage(
                        id=msg.id,
                        sender=sender,
                        to=agent_id,
                        content=content,
                        timestamp=msg.timestamp,
                    ))
        else:
            self._mailboxes[to].append(msg)

        logger.debug("%s -> %s: %s (%s)", sender, to, content[:80], msg.id)
        self.events.emit(MESSAGE, msg)
        return msg

    def read_messages(self, agent_id: str, mark_read: bool = True) -> List[AgentMessage]:
        """
        Return the unread messages of an agent in arrival order.

        Unknown agents have no messages; this never raises.
        """
        box = self._mailboxes.get(agent_id)
        if not box:
            return []

        unread = [m for m in box if not m.read]
        if mark_read:
            for m in unread:
                m.read = True
        return unread

    def has_unread_messages(self, agent_id: str) -> bool:
        return any(not m.read for m in self._mailboxes.get(agent_id, ()))

    # Task board

    def create_task(
        self,
        description: str,
        created_by: str,
        assignee: Optional[str] = None,
        depends_on: Optional[List[str]] = None,
    ) -> Task:
        """
        Add a pending task to the board.

        Dependencies must already exist, which also keeps the dependency
        graph acyclic.

        Raises:
            TaskNotFound: if a dependency id is unknown
        """
        depends_on = list(depends_on or [])
        for dep_id in depends_on:
            if dep_id not in self._tasks:
                raise TaskNotFound(dep_id)

        self._task_counter += 1
        task = Task(
            id=f"task-{self._task_counter}",
            description=description,
            created_by=created_by,
            assignee=assignee,
            depends_on=depends_on,
        )
        self._tasks[task.id] = task
        self.events.emit(TASK_CREATED, task)
        return task

    def claim_task(self, task_id: str, agent_id: str) -> Task:
        """
        Move a pending task to in-progress under ``agent_id``.

        Raises:
            TaskNotFound: unknown task
            NotClaimable: task is not pending, or pre-assigned to someone else
            DependencyBlocked: a dependency has not completed yet
        """
        task = self._get(task_id)
        if task.status != TaskStatus.PENDING:
            raise NotClaimable(task_id, f"status: {task.status.value}")
        if task.assignee is not None and task.assignee != agent_id:
            raise NotClaimable(task_id, f"assigned to {task.assignee}")

        for dep_id in task.depends_on:
            dep = self._tasks[dep_id]
            if dep.status != TaskStatus.COMPLETED:
                raise DependencyBlocked(task_id, dep_id, dep.status.value)

        task.assignee = agent_id
        task.status = TaskStatus.IN_PROGRESS
        task.touch()
        self.events.emit(TASK_UPDATED, task)
        return task

    def complete_task(self, task_id: str, agent_id: str, result: str) -> Task:
        """
        Mark an in-progress task completed. Only its assignee may do this.

        Raises:
            TaskNotFound: unknown task
            NotAssignedToCaller: ``agent_id`` is not the assignee
            NotInProgress: the task was never claimed or has already settled
        """
        task = self._get(task_id)
        if task.assignee != agent_id:
            raise NotAssignedToCaller(task_id, agent_id)
        if task.status != TaskStatus.IN_PROGRESS:
            raise NotInProgress(task_id, task.status.value)

        task.status = TaskStatus.COMPLETED
        task.result = result
        task.touch()
        self.events.emit(TASK_COMPLETED, task)
        return task

    def fail_task(self, task_id: str, agent_id: str, reason: str) -> Task:
        """Mark a task failed with a reason."""
        task = self._get(task_id)

        task.status = TaskStatus.FAILED
        task.result = reason
        task.touch()
        logger.info("Task %s failed by %s: %s", task_id, agent_id, reason[:120])
        self.events.emit(TASK_UPDATED, task)
        return task

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def list_tasks(
        self,
        status: Optional[TaskStatus] = None,
        assignee: Optional[str] = None,
    ) -> List[Task]:
        """Snapshot of the board in creation order, optionally filtered."""
        tasks = list(self._tasks.values())
        if status is not None:
            status = TaskStatus(status)
            tasks = [t for t in tasks if t.status == status]
        if assignee is not None:
            tasks = [t for t in tasks if t.assignee == assignee]
        return tasks

    def has_open_tasks(self) -> bool:
        return any(
            t.status in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)
            for t in self._tasks.values()
        )

    # Utilities

    def reset(self):
        """Clear mailboxes, tasks, counters and event handlers."""
        self._mailboxes.clear()
        self._tasks.clear()
        self._msg_counter = 0
        self._task_counter = 0
        self.events.clear()

    def _get(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

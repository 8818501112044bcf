"""
Coordination infrastructure: message bus, task board and mailbox poller.
"""
from .errors import (
    AuthenticationFailure,
    BackendError,
    BackendTimeout,
    BackendUnavailable,
    CoordinationError,
    DependencyBlocked,
    NotAssignedToCaller,
    NotClaimable,
    NotInProgress,
    TaskError,
    TaskNotFound,
    UnknownRecipient,
    WorkerNotFound,
    is_auth_failure,
)
from .events import EventHub
from .message_bus import BROADCAST, AgentMessage, MessageBus, Task, TaskStatus
from .poller import MessagePoller, format_messages

__all__ = [
    'AuthenticationFailure',
    'BackendError',
    'BackendTimeout',
    'BackendUnavailable',
    'CoordinationError',
    'DependencyBlocked',
    'NotAssignedToCaller',
    'NotClaimable',
    'NotInProgress',
    'TaskError',
    'TaskNotFound',
    'UnknownRecipient',
    'WorkerNotFound',
    'is_auth_failure',
    'EventHub',
    'BROADCAST',
    'AgentMessage',
    'MessageBus',
    'Task',
    'TaskStatus',
    'MessagePoller',
    'format_messages',
]

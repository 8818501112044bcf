"""
Exceptions raised by the coordination layer and the backends.
"""
import re


class CoordinationError(Exception):
    """Base class for message bus and coordinator failures."""


class UnknownRecipient(CoordinationError):
    """A message was addressed to an agent without a mailbox."""

    def __init__(self, agent_id: str):
        super().__init__(f'Agent "{agent_id}" not registered')
        self.agent_id = agent_id


class WorkerNotFound(CoordinationError):
    """The coordinator has no worker with the requested id."""

    def __init__(self, worker_id: str):
        super().__init__(f'Agent "{worker_id}" not found')
        self.worker_id = worker_id


class TaskError(CoordinationError):
    """Base class for task board state errors."""

    def __init__(self, task_id: str, message: str):
        super().__init__(message)
        self.task_id = task_id


class TaskNotFound(TaskError):
    def __init__(self, task_id: str):
        super().__init__(task_id, f'Task "{task_id}" not found')


class NotClaimable(TaskError):
    def __init__(self, task_id: str, reason: str):
        super().__init__(task_id, f'Task "{task_id}" is not claimable ({reason})')


class DependencyBlocked(TaskError):
    def __init__(self, task_id: str, dependency_id: str, dependency_status: str):
        super().__init__(
            task_id,
            f'Task "{task_id}" blocked by dependency "{dependency_id}" '
            f'(status: {dependency_status})',
        )
        self.dependency_id = dependency_id


class NotAssignedToCaller(TaskError):
    def __init__(self, task_id: str, agent_id: str):
        super().__init__(task_id, f'Task "{task_id}" is not assigned to "{agent_id}"')
        self.agent_id = agent_id


class NotInProgress(TaskError):
    def __init__(self, task_id: str, status: str):
        super().__init__(task_id, f'Task "{task_id}" is not in progress (status: {status})')
        self.status = status


class BackendError(Exception):
    """A backend session failed to create, run or tear down a turn."""


class BackendUnavailable(BackendError):
    """The backend could not be reached during pre-flight or session creation."""


class BackendTimeout(BackendError):
    """A backend call did not settle within its time limit."""


class AuthenticationFailure(BackendError):
    """The backend rejected our credentials. Retrying will not help."""


_AUTH_MARKERS = (
    "401",
    "403",
    "unauthorized",
    "forbidden",
    "authentication",
    "invalid api key",
    "not logged in",
)

_AUTH_PATTERN = re.compile(
    r"\b(?:" + "|".join(re.escape(m) for m in _AUTH_MARKERS) + r")\b",
    re.IGNORECASE,
)


def is_auth_failure(error: BaseException) -> bool:
    """
    Classify a backend error as authentication-related.

    Args:
        error: Exception raised by a backend call

    Returns:
        True for the fatal class that needs user action (re-login, new key)
    """
    if isinstance(error, AuthenticationFailure):
        return True
    return _AUTH_PATTERN.search(str(error)) is not None

from typing import List, Optional


class ScheduleError(ValueError):
    """Base class for errors raised by the scheduling engine."""


class TaskNotFoundError(ScheduleError):
    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id!r} not found")
        self.task_id = task_id


class InvalidTaskError(ScheduleError):
    """Raised when a form edit is malformed (missing fields, bad dates, bad references)."""


class DependencyConflictError(ScheduleError):
    """Raised when a commit would break the dependency ordering of two tasks.

    The offending pair and the boundary date are available on ``conflict``.
    """

    def __init__(self, conflict):
        super().__init__(conflict.message)
        self.conflict = conflict


class DependencyCycleError(ScheduleError):
    def __init__(self, cycle: List[str], message: Optional[str] = None):
        super().__init__(message or "Dependency cycle detected: " + " -> ".join(cycle))
        self.cycle = cycle


class GestureError(ScheduleError):
    """Raised on misuse of the drag interaction (double start, move while idle, read-only user)."""

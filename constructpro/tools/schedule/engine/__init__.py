from .errors import (
    ScheduleError,
    TaskNotFoundError,
    InvalidTaskError,
    DependencyConflictError,
    DependencyCycleError,
    GestureError,
)
from .timeline import (
    TimeScale,
    TimelineMapper,
    overall_range,
    parse_scale,
    start_of_week,
    end_of_week,
)
from .graph import DependencyGraph, format_dependency_graph
from .validation import (
    ConflictKind,
    DependencyConflict,
    validate,
    check_status_gate,
    validate_task_edit,
)
from .progress import (
    derive_status,
    task_progress,
    schedule_progress,
    earned_value,
    project_progress,
)
from .store import TaskStore
from .interaction import DragMode, InteractionController, format_range
from .gantt import build_gantt_view

__all__ = [
    "ScheduleError",
    "TaskNotFoundError",
    "InvalidTaskError",
    "DependencyConflictError",
    "DependencyCycleError",
    "GestureError",
    "TimeScale",
    "TimelineMapper",
    "overall_range",
    "parse_scale",
    "start_of_week",
    "end_of_week",
    "DependencyGraph",
    "format_dependency_graph",
    "ConflictKind",
    "DependencyConflict",
    "validate",
    "check_status_gate",
    "validate_task_edit",
    "derive_status",
    "task_progress",
    "schedule_progress",
    "earned_value",
    "project_progress",
    "TaskStore",
    "DragMode",
    "InteractionController",
    "format_range",
    "build_gantt_view",
]

import logging
from datetime import date, timedelta
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel

from constructpro.app.db.models import TaskModel
from .errors import DependencyConflictError, GestureError, TaskNotFoundError
from .store import TaskStore
from .timeline import TimelineMapper, TimeScale, parse_scale
from .validation import DependencyConflict

logger = logging.getLogger(__name__)


class DragMode(str, Enum):
    MOVE = "move"
    RESIZE_START = "resize-start"
    RESIZE_END = "resize-end"


class DragState(BaseModel):
    task_id: str
    task_name: str
    mode: DragMode
    anchor_x: float
    initial_start: date
    initial_end: date


class DragPreview(BaseModel):
    task_id: str
    start_date: date
    end_date: date
    left: float
    width: float
    tooltip: str


class GestureResult(BaseModel):
    committed: bool
    task_id: str
    start_date: date
    end_date: date
    left: float
    width: float
    task: Optional[TaskModel] = None
    conflict: Optional[DependencyConflict] = None


def format_range(start: date, end: date) -> str:
    return f"{start.strftime('%d/%m/%Y')} - {end.strftime('%d/%m/%Y')}"


class InteractionController:
    """Drag/resize state machine for one Gantt view.

    Idle until ``begin``; while dragging, ``move`` returns previews without
    touching the store; ``release`` validates and commits through the store, or
    rolls back to the dates captured at ``begin``. There is no cancel gesture:
    a release always ends the drag.
    """

    def __init__(self, store: TaskStore, scale=TimeScale.DAY, can_edit: bool = True, today: Optional[date] = None):
        self.store = store
        self.scale = parse_scale(scale)
        self.can_edit = can_edit
        self.today = today
        self.drag: Optional[DragState] = None
        self.mapper: Optional[TimelineMapper] = None

    @property
    def is_dragging(self) -> bool:
        return self.drag is not None

    @property
    def state(self) -> str:
        return "dragging" if self.drag is not None else "idle"

    def bind(self, store: TaskStore) -> None:
        """Point the controller at a freshly loaded store (e.g. a new request's data)."""
        self.store = store

    def set_scale(self, scale) -> None:
        if self.drag is not None:
            raise GestureError("Cannot change the time scale during a drag")
        self.scale = parse_scale(scale)

    def begin(self, task_id: str, mode, x: float) -> DragState:
        if not self.can_edit:
            raise GestureError("Read-only users cannot edit the schedule")
        if self.drag is not None:
            raise GestureError(f"A drag on task {self.drag.task_id!r} is already in progress")
        try:
            mode = DragMode(mode)
        except ValueError:
            raise GestureError(f"Unknown drag mode {mode!r}")
        try:
            task = self.store.get(task_id)
        except TaskNotFoundError as e:
            raise GestureError(str(e)) from e
        self.mapper = TimelineMapper.for_tasks(self.store.list_tasks(), self.scale, today=self.today)
        self.drag = DragState(
            task_id=task.id,
            task_name=task.name,
            mode=mode,
            anchor_x=x,
            initial_start=task.start_date,
            initial_end=task.end_date,
        )
        return self.drag

    def candidate(self, x: float) -> Tuple[date, date]:
        """Date range implied by the pointer at ``x``; resizes never invert the range."""
        drag = self._require_drag()
        days = self.mapper.days_for_delta(x - drag.anchor_x)
        start, end = drag.initial_start, drag.initial_end
        if drag.mode is DragMode.MOVE:
            start = start + timedelta(days=days)
            end = end + timedelta(days=days)
        elif drag.mode is DragMode.RESIZE_END:
            end = end + timedelta(days=days)
            if end < start:
                end = start
        else:
            start = start + timedelta(days=days)
            if start > end:
                start = end
        return start, end

    def move(self, x: float) -> DragPreview:
        drag = self._require_drag()
        start, end = self.candidate(x)
        left, width = self.mapper.bar_geometry(start, end)
        return DragPreview(
            task_id=drag.task_id,
            start_date=start,
            end_date=end,
            left=left,
            width=width,
            tooltip=format_range(start, end),
        )

    def release(self, x: float) -> GestureResult:
        drag = self._require_drag()
        start, end = self.candidate(x)
        mapper = self.mapper
        self.drag = None
        self.mapper = None
        try:
            task = self.store.update_dates(drag.task_id, start, end)
        except DependencyConflictError as e:
            logger.warning("Drag of %s rolled back: %s", drag.task_id, e.conflict.message)
            left, width = mapper.bar_geometry(drag.initial_start, drag.initial_end)
            return GestureResult(
                committed=False,
                task_id=drag.task_id,
                start_date=drag.initial_start,
                end_date=drag.initial_end,
                left=left,
                width=width,
                conflict=e.conflict,
            )
        except TaskNotFoundError as e:
            raise GestureError(str(e)) from e
        # The committed data may widen the visible range, so lay out from it.
        left, width = TimelineMapper.for_tasks(self.store.list_tasks(), self.scale, today=self.today).bar_geometry(
            task.start_date, task.end_date
        )
        return GestureResult(
            committed=True,
            task_id=task.id,
            start_date=task.start_date,
            end_date=task.end_date,
            left=left,
            width=width,
            task=task,
        )

    def _require_drag(self) -> DragState:
        if self.drag is None:
            raise GestureError("No drag in progress")
        return self.drag

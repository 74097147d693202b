import logging
import time
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from constructpro.app.db.models import TaskModel, TaskStatus
from .errors import DependencyConflictError, DependencyCycleError, InvalidTaskError, TaskNotFoundError
from .graph import DependencyGraph
from .progress import derive_status
from .validation import validate, validate_task_edit

logger = logging.getLogger(__name__)


class TaskStore:
    """Owns a project's ordered task collection and enforces its invariants.

    Every mutation goes through a narrow operation (add, update, update_dates,
    remove) and is followed by ``on_change(tasks)`` so the caller can persist
    the new collection. ``replace_all`` is kept for whole-collection loads.
    """

    def __init__(
        self,
        tasks: Optional[Iterable[TaskModel]] = None,
        on_change: Optional[Callable[[List[TaskModel]], None]] = None,
        today_fn: Optional[Callable[[], date]] = None,
    ):
        self._tasks: List[TaskModel] = list(tasks or [])
        self._graph: Optional[DependencyGraph] = None
        self.on_change = on_change
        self.today_fn = today_fn or date.today

    # ------------------------------
    # Read access
    # ------------------------------

    def list_tasks(self) -> List[TaskModel]:
        return list(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def get(self, task_id: str) -> TaskModel:
        for t in self._tasks:
            if t.id == task_id:
                return t
        raise TaskNotFoundError(task_id)

    def graph(self) -> DependencyGraph:
        if self._graph is None:
            self._graph = DependencyGraph(self._tasks)
        return self._graph

    # ------------------------------
    # Mutations
    # ------------------------------

    def replace_all(self, tasks: Iterable[TaskModel]) -> None:
        self._tasks = list(tasks)
        self._changed()

    def add_task(self, fields: Dict[str, Any]) -> TaskModel:
        data = {k: v for k, v in fields.items() if v is not None}
        data.setdefault("status", TaskStatus.NOT_STARTED)
        data.setdefault("depends_on", [])
        data.setdefault("photo_ids", [])
        task_id = data.get("id")
        if task_id:
            if any(t.id == task_id for t in self._tasks):
                raise InvalidTaskError(f"Task id {task_id!r} already exists")
        else:
            data["id"] = self._next_id()
        task = self._prepare(data, others=self._tasks)
        self._tasks.append(task)
        logger.info("Added task %s (%s)", task.id, task.name)
        self._changed()
        return task

    def update_task(self, task_id: str, changes: Dict[str, Any]) -> TaskModel:
        current = self.get(task_id)
        if changes.get("id") not in (None, task_id):
            raise InvalidTaskError("Task id cannot be changed")
        data = current.model_dump()
        data.update(changes)
        data["id"] = task_id
        others = [t for t in self._tasks if t.id != task_id]
        task = self._prepare(data, others=others)
        self._tasks = [task if t.id == task_id else t for t in self._tasks]
        logger.info("Updated task %s (%s)", task.id, task.name)
        self._changed()
        return task

    def update_dates(self, task_id: str, start: date, end: date) -> TaskModel:
        """Commit a new date range, as produced by a drag gesture.

        Only the dependency ordering is checked; status and volume are untouched.
        """
        current = self.get(task_id)
        if start > end:
            raise InvalidTaskError("Start date must be on or before end date")
        conflict = validate(current, start, end, self._tasks, graph=self.graph())
        if conflict is not None:
            logger.warning("Rejected date change for %s: %s", task_id, conflict.message)
            raise DependencyConflictError(conflict)
        task = current.model_copy(update={"start_date": start, "end_date": end})
        self._tasks = [task if t.id == task_id else t for t in self._tasks]
        logger.info("Moved task %s to %s..%s", task_id, start.isoformat(), end.isoformat())
        self._changed()
        return task

    def remove_task(self, task_id: str) -> TaskModel:
        """Delete a task and strip its id from every other task's prerequisites."""
        removed = self.get(task_id)
        remaining: List[TaskModel] = []
        for t in self._tasks:
            if t.id == task_id:
                continue
            if task_id in (t.depends_on or []):
                t = t.model_copy(update={"depends_on": [d for d in t.depends_on if d != task_id]})
            remaining.append(t)
        self._tasks = remaining
        logger.info("Removed task %s (%s)", removed.id, removed.name)
        self._changed()
        return removed

    # ------------------------------
    # Helpers
    # ------------------------------

    def _next_id(self) -> str:
        existing = {t.id for t in self._tasks}
        stamp = int(time.time() * 1000)
        while f"tsk-{stamp}" in existing:
            stamp += 1
        return f"tsk-{stamp}"

    def _prepare(self, data: Dict[str, Any], others: List[TaskModel]) -> TaskModel:
        """Validate a form submission and apply the derived fields."""
        if not (data.get("name") or "").strip() or not data.get("start_date") or not data.get("end_date"):
            raise InvalidTaskError("Task name and start/end dates are required.")
        try:
            task = TaskModel.model_validate(data)
        except ValidationError as e:
            raise InvalidTaskError(str(e)) from e
        if task.start_date > task.end_date:
            raise InvalidTaskError("Start date must be on or before end date")

        known = {t.id for t in others}
        deps: List[str] = []
        for dep in task.depends_on:
            if dep == task.id:
                raise InvalidTaskError("A task cannot depend on itself")
            if dep not in known:
                raise InvalidTaskError(f"Unknown prerequisite task {dep!r}")
            if dep not in deps:
                deps.append(dep)

        task = task.model_copy(update={"depends_on": deps, "photo_ids": list(dict.fromkeys(task.photo_ids))})
        cycle = DependencyGraph(others + [task]).find_cycle()
        if cycle:
            logger.warning("Rejected dependencies for %s: cycle %s", task.id, cycle)
            raise DependencyCycleError(cycle)

        task = task.model_copy(update={"status": derive_status(task)})
        conflict = validate_task_edit(task, others)
        if conflict is not None:
            logger.warning("Rejected edit for %s: %s", task.id, conflict.message)
            raise DependencyConflictError(conflict)

        if task.status == TaskStatus.COMPLETED:
            if task.completion_date is None:
                task = task.model_copy(update={"completion_date": self.today_fn()})
        elif task.completion_date is not None:
            task = task.model_copy(update={"completion_date": None})
        return task

    def _changed(self) -> None:
        self._graph = None
        if self.on_change is not None:
            self.on_change(self.list_tasks())

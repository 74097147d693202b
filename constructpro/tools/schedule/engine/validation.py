from datetime import date
from enum import Enum
from typing import Dict, Iterable, Optional

from pydantic import BaseModel

from constructpro.app.db.models import ADVANCED_STATUSES, TaskModel, TaskStatus
from .graph import DependencyGraph


class ConflictKind(str, Enum):
    PREDECESSOR = "predecessor"
    SUCCESSOR = "successor"
    STATUS = "status"


class DependencyConflict(BaseModel):
    kind: ConflictKind
    task_id: str
    task_name: str
    other_task_id: str
    other_task_name: str
    boundary_date: Optional[date] = None
    message: str


def _predecessor_conflict(task: TaskModel, dep: TaskModel) -> DependencyConflict:
    return DependencyConflict(
        kind=ConflictKind.PREDECESSOR,
        task_id=task.id,
        task_name=task.name,
        other_task_id=dep.id,
        other_task_name=dep.name,
        boundary_date=dep.end_date,
        message=(
            f'Dependency conflict: task "{task.name}" cannot start before '
            f'"{dep.name}" ends on {dep.end_date.isoformat()}.'
        ),
    )


def _successor_conflict(task: TaskModel, dependent: TaskModel) -> DependencyConflict:
    return DependencyConflict(
        kind=ConflictKind.SUCCESSOR,
        task_id=task.id,
        task_name=task.name,
        other_task_id=dependent.id,
        other_task_name=dependent.name,
        boundary_date=dependent.start_date,
        message=(
            f'Dependency conflict: task "{dependent.name}" depends on "{task.name}" and starts on '
            f'{dependent.start_date.isoformat()}, before "{task.name}" would end.'
        ),
    )


def validate(
    task: TaskModel,
    proposed_start: date,
    proposed_end: date,
    all_tasks: Iterable[TaskModel],
    graph: Optional[DependencyGraph] = None,
) -> Optional[DependencyConflict]:
    """Check a proposed date range for ``task`` against its neighbours.

    Prerequisites must end on or before the proposed start and dependents must
    start on or after the proposed end; back-to-back scheduling is allowed.
    ``task.depends_on`` is read from the given task, so a form edit can validate
    a dependency list that is not committed yet. Returns None when the range is
    acceptable, otherwise the first conflict found.
    """
    by_id: Dict[str, TaskModel] = graph.tasks if graph is not None else {t.id: t for t in all_tasks}

    for dep_id in task.depends_on or []:
        dep = by_id.get(dep_id)
        if dep is None or dep.id == task.id:
            continue
        if proposed_start < dep.end_date:
            return _predecessor_conflict(task, dep)

    if graph is not None:
        dependents = [by_id[d] for d in graph.successors(task.id)]
    else:
        dependents = [t for t in by_id.values() if t.id != task.id and task.id in (t.depends_on or [])]
    for dependent in dependents:
        if dependent.start_date < proposed_end:
            return _successor_conflict(task, dependent)
    return None


def check_status_gate(task: TaskModel, all_tasks: Iterable[TaskModel]) -> Optional[DependencyConflict]:
    """A task may only be in progress or completed once every prerequisite is completed.

    The rule is checked from both sides: a task that is not completed cannot
    have dependents that are already in progress or completed.
    """
    by_id = {t.id: t for t in all_tasks}
    if task.status != TaskStatus.COMPLETED:
        for dependent in by_id.values():
            if dependent.id == task.id or task.id not in (dependent.depends_on or []):
                continue
            if dependent.status in ADVANCED_STATUSES:
                return DependencyConflict(
                    kind=ConflictKind.STATUS,
                    task_id=task.id,
                    task_name=task.name,
                    other_task_id=dependent.id,
                    other_task_name=dependent.name,
                    message=(
                        f'Dependency conflict: task "{task.name}" cannot be marked '
                        f'"{task.status.value}" because "{dependent.name}" depends on it '
                        f'and is already "{dependent.status.value}".'
                    ),
                )
    if task.status not in ADVANCED_STATUSES:
        return None
    for dep_id in task.depends_on or []:
        dep = by_id.get(dep_id)
        if dep is None or dep.id == task.id:
            continue
        if dep.status != TaskStatus.COMPLETED:
            return DependencyConflict(
                kind=ConflictKind.STATUS,
                task_id=task.id,
                task_name=task.name,
                other_task_id=dep.id,
                other_task_name=dep.name,
                message=(
                    f'Dependency conflict: task "{task.name}" cannot be marked '
                    f'"{task.status.value}" because "{dep.name}" is not completed yet.'
                ),
            )
    return None


def validate_task_edit(task: TaskModel, all_tasks: Iterable[TaskModel]) -> Optional[DependencyConflict]:
    """Form-path validation: the date rule first, then the status gate."""
    all_tasks = list(all_tasks)
    conflict = validate(task, task.start_date, task.end_date, all_tasks)
    if conflict is not None:
        return conflict
    return check_status_gate(task, all_tasks)

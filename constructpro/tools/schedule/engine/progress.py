from datetime import date
from typing import Dict, Iterable, Optional

from constructpro.app.db.models import TaskModel, TaskStatus


def derive_status(task: TaskModel) -> TaskStatus:
    """Status implied by the recorded volume.

    Full volume forces Completed and partial volume forces In Progress, except
    that a Delayed task stays Delayed while partially done. Without a positive
    total volume, or with nothing completed yet, the manual status stands.
    """
    total = task.total_volume
    if not total or total <= 0:
        return task.status
    done = task.completed_volume or 0
    if done >= total:
        return TaskStatus.COMPLETED
    if done > 0:
        if task.status == TaskStatus.DELAYED:
            return TaskStatus.DELAYED
        return TaskStatus.IN_PROGRESS
    return task.status


def task_progress(task: TaskModel) -> float:
    """Percent complete, from volume when tracked, otherwise from status."""
    if task.total_volume and task.total_volume > 0:
        return min(100.0, ((task.completed_volume or 0) / task.total_volume) * 100)
    if task.status == TaskStatus.COMPLETED:
        return 100.0
    return 0.0


def schedule_progress(task: TaskModel, today: Optional[date] = None) -> float:
    """Percent of the planned duration that has elapsed."""
    if task.status == TaskStatus.COMPLETED:
        return 100.0
    if task.status == TaskStatus.NOT_STARTED:
        return 0.0
    today = today or date.today()
    total = (task.end_date - task.start_date).days
    elapsed = (today - task.start_date).days
    if total <= 0 or elapsed <= 0:
        return 0.0
    return min(100.0, elapsed / total * 100)


def earned_value(task: TaskModel) -> float:
    if not task.total_value:
        return 0.0
    return task.total_value * (task_progress(task) / 100)


def project_progress(tasks: Iterable[TaskModel]) -> Dict:
    """Aggregate progress for a task set.

    ``completion_pct`` counts completed tasks; ``value_progress_pct`` weights
    each task's progress by its monetary value.
    """
    tasks = list(tasks)
    by_status = {s.value: 0 for s in TaskStatus}
    for t in tasks:
        by_status[t.status.value] += 1
    completed = by_status[TaskStatus.COMPLETED.value]
    planned = sum(t.total_value or 0.0 for t in tasks)
    earned = sum(earned_value(t) for t in tasks)
    return {
        "tasks_count": len(tasks),
        "completed_count": completed,
        "by_status": by_status,
        "completion_pct": round(completed / len(tasks) * 100, 2) if tasks else 0.0,
        "planned_value": round(planned, 2),
        "earned_value": round(earned, 2),
        "value_progress_pct": round(earned / planned * 100, 2) if planned > 0 else 0.0,
    }

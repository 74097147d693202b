from datetime import date
from typing import Dict, Iterable, List, Optional

from constructpro.app.db.models import TaskModel, TaskStatus
from .graph import DependencyGraph
from .progress import task_progress
from .timeline import TimelineMapper, TimeScale

STATUS_COLORS: Dict[TaskStatus, str] = {
    TaskStatus.COMPLETED: "green",
    TaskStatus.IN_PROGRESS: "blue",
    TaskStatus.DELAYED: "red",
    TaskStatus.NOT_STARTED: "gray",
}

# Horizontal run of an elbow connector before it turns toward the dependent row
_ELBOW_RUN = 10


def _fmt(v: float) -> str:
    return f"{v:.2f}".rstrip("0").rstrip(".")


def sort_by_start(tasks: Iterable[TaskModel]) -> List[TaskModel]:
    return sorted(tasks, key=lambda t: t.start_date)


def connector_path(from_x: float, from_y: float, to_x: float, to_y: float) -> Dict:
    """SVG path between a prerequisite bar end and a dependent bar start.

    A dependent drawn at or before the prerequisite's end gets a straight red
    line; otherwise the connector runs right, down, then right again.
    """
    if to_x <= from_x:
        return {
            "d": f"M {_fmt(from_x)} {_fmt(from_y)} L {_fmt(to_x)} {_fmt(to_y)}",
            "overlapping": True,
            "color": "#ef4444",
        }
    return {
        "d": f"M {_fmt(from_x)} {_fmt(from_y)} H {_fmt(from_x + _ELBOW_RUN)} V {_fmt(to_y)} H {_fmt(to_x)}",
        "overlapping": False,
        "color": "#333",
    }


def build_gantt_view(
    tasks: Iterable[TaskModel],
    scale=TimeScale.DAY,
    today: Optional[date] = None,
    label_width: int = 150,
    row_height: int = 40,
) -> Dict:
    """Lay out a Gantt chart for the given tasks.

    Offsets inside ``bars`` and ``connectors`` are relative to the chart area
    (right of the ``label_width`` task-name column). Returns JSON-ready data:
    {scale, overall_start, overall_end, column_width, width, columns, bars,
     connectors, today_offset}
    """
    ordered = sort_by_start(tasks)
    mapper = TimelineMapper.for_tasks(ordered, scale, today=today)
    graph = DependencyGraph(ordered)
    row_of = {t.id: i for i, t in enumerate(ordered)}
    extra = mapper.column_width if mapper.scale is TimeScale.DAY else 0

    columns = [{"date": d.isoformat(), "label": mapper.header_label(d)} for d in mapper.grid_dates()]

    bars: List[Dict] = []
    for i, t in enumerate(ordered):
        left, width = mapper.bar_geometry(t.start_date, t.end_date)
        bars.append({
            "id": t.id,
            "name": t.name,
            "status": t.status.value,
            "color": STATUS_COLORS.get(t.status, "gray"),
            "start_date": t.start_date.isoformat(),
            "end_date": t.end_date.isoformat(),
            "row": i,
            "top": i * row_height + 6,
            "left": left,
            "width": width,
            "progress": round(task_progress(t), 2),
        })

    connectors: List[Dict] = []
    for dep_id, task_id in graph.edges():
        src = graph.tasks[dep_id]
        dst = graph.tasks[task_id]
        from_x = mapper.date_to_offset(src.end_date) + extra
        from_y = row_of[dep_id] * row_height + row_height / 2
        to_x = mapper.date_to_offset(dst.start_date)
        to_y = row_of[task_id] * row_height + row_height / 2
        connectors.append({"from": dep_id, "to": task_id, **connector_path(from_x, from_y, to_x, to_y)})

    return {
        "scale": mapper.scale.value,
        "overall_start": mapper.overall_start.isoformat(),
        "overall_end": mapper.overall_end.isoformat(),
        "column_width": mapper.column_width,
        "label_width": label_width,
        "row_height": row_height,
        "width": len(columns) * mapper.column_width + label_width,
        "columns": columns,
        "bars": bars,
        "connectors": connectors,
        "today_offset": mapper.today_offset(today),
    }

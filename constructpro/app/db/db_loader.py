from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from constructpro import config
from constructpro.tools.schedule.engine.store import TaskStore
from . import supabase_store
from .db_writer import save_project_tasks
from .models import PhotoModel, ProjectModel, TaskModel, WorkerModel

UNASSIGNED = "Sin asignar"


def _num(v) -> Optional[float]:
    # Postgres NUMERIC comes back as Decimal
    return float(v) if v is not None else None


def _date(v) -> Optional[date]:
    if v is None or v == "":
        return None
    if isinstance(v, date):
        return v
    return date.fromisoformat(str(v)[:10])


def _load_sql_tasks(db: Session, project_id: str) -> List[TaskModel]:
    task_rows = db.execute(text("""
        SELECT id, name, description, assigned_worker_id, start_date, end_date, status,
               completion_date, total_volume, completed_volume, volume_unit, total_value
        FROM tasks WHERE project_id = :pid
        ORDER BY position, id
    """), {"pid": project_id}).fetchall()

    dep_rows = db.execute(text("""
        SELECT d.task_id, d.depends_on
        FROM dependencies d
        JOIN tasks t ON t.id = d.task_id
        WHERE t.project_id = :pid
        ORDER BY d.task_id, d.position
    """), {"pid": project_id}).fetchall()
    dep_map: Dict[str, List[str]] = {}
    for dep in dep_rows:
        dep_map.setdefault(dep.task_id, []).append(dep.depends_on)

    photo_rows = db.execute(text("""
        SELECT p.task_id, p.photo_id
        FROM task_photos p
        JOIN tasks t ON t.id = p.task_id
        WHERE t.project_id = :pid
        ORDER BY p.task_id, p.position
    """), {"pid": project_id}).fetchall()
    photo_map: Dict[str, List[str]] = {}
    for ph in photo_rows:
        photo_map.setdefault(ph.task_id, []).append(ph.photo_id)

    tasks = []
    for row in task_rows:
        tasks.append(TaskModel(
            id=row.id,
            name=row.name,
            description=row.description or "",
            assigned_worker_id=row.assigned_worker_id,
            start_date=_date(row.start_date),
            end_date=_date(row.end_date),
            status=row.status,
            completion_date=_date(row.completion_date),
            total_volume=_num(row.total_volume),
            completed_volume=_num(row.completed_volume),
            volume_unit=row.volume_unit,
            total_value=_num(row.total_value),
            depends_on=dep_map.get(row.id, []),
            photo_ids=photo_map.get(row.id, []),
        ))
    return tasks


def load_project_tasks(db: Session, project_id: str) -> List[TaskModel]:
    if config.TASK_BACKEND == "supabase":
        return supabase_store.fetch_project_tasks(project_id)
    return _load_sql_tasks(db, project_id)


def load_task_store(db: Session, project_id: str, persist: bool = True) -> TaskStore:
    """Build a TaskStore over a project's tasks.

    With ``persist`` every committed mutation is written back through the
    configured backend as a whole-collection replace.
    """
    tasks = load_project_tasks(db, project_id)
    store = TaskStore(tasks)
    if persist:
        if config.TASK_BACKEND == "supabase":
            store.on_change = lambda ts: supabase_store.replace_project_tasks(project_id, ts)
        else:
            store.on_change = lambda ts: save_project_tasks(db, project_id, ts)
    return store


def get_project(db: Session, project_id: str) -> Optional[ProjectModel]:
    row = db.execute(text("""
        SELECT id, name, owner_id, pin FROM projects WHERE id = :id
    """), {"id": project_id}).fetchone()
    if not row:
        return None
    return ProjectModel(id=row.id, name=row.name, owner_id=row.owner_id, pin=row.pin)


def list_projects(db: Session, owner_id: Optional[str] = None) -> List[ProjectModel]:
    """All projects, or those owned by ``owner_id`` plus the unowned ones."""
    if owner_id is None:
        rows = db.execute(text("""
            SELECT id, name, owner_id, pin FROM projects ORDER BY name, id
        """)).fetchall()
    else:
        rows = db.execute(text("""
            SELECT id, name, owner_id, pin FROM projects
            WHERE owner_id = :owner OR owner_id IS NULL
            ORDER BY name, id
        """), {"owner": owner_id}).fetchall()
    return [ProjectModel(id=r.id, name=r.name, owner_id=r.owner_id, pin=r.pin) for r in rows]


# ------------------------------
# Collaborator lookups (Labor, PhotoLog)
# ------------------------------

def load_workers(db: Session, project_id: str) -> Dict[str, WorkerModel]:
    if config.TASK_BACKEND == "supabase":
        rows = supabase_store.fetch_rows("workers", project_id)
        return {r["id"]: WorkerModel(id=r["id"], name=r.get("name") or "", role=r.get("role"),
                                     hourly_rate=_num(r.get("hourly_rate"))) for r in rows}
    rows = db.execute(text("""
        SELECT id, name, role, hourly_rate FROM workers WHERE project_id = :pid
    """), {"pid": project_id}).fetchall()
    return {r.id: WorkerModel(id=r.id, name=r.name, role=r.role, hourly_rate=_num(r.hourly_rate)) for r in rows}


def load_photos(db: Session, project_id: str) -> Dict[str, PhotoModel]:
    if config.TASK_BACKEND == "supabase":
        rows = supabase_store.fetch_rows("photos", project_id)
        return {r["id"]: PhotoModel(id=r["id"], url=r.get("url") or "", description=r.get("description") or "",
                                    upload_date=_date(r.get("upload_date"))) for r in rows}
    rows = db.execute(text("""
        SELECT id, url, description, upload_date FROM photos WHERE project_id = :pid
    """), {"pid": project_id}).fetchall()
    return {r.id: PhotoModel(id=r.id, url=r.url, description=r.description or "",
                             upload_date=_date(r.upload_date)) for r in rows}


def worker_name(workers: Dict[str, WorkerModel], worker_id: Optional[str]) -> str:
    """Display name of the assigned worker; unknown or missing ids read as unassigned."""
    worker = workers.get(worker_id) if worker_id else None
    return worker.name if worker else UNASSIGNED


def attached_photos(photos: Dict[str, PhotoModel], photo_ids: List[str]) -> List[PhotoModel]:
    """Photos that still exist, in the task's order; deleted ones are skipped."""
    return [photos[p] for p in photo_ids if p in photos]

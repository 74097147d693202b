import logging
import time
import uuid
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from .models import ProjectModel, TaskModel

logger = logging.getLogger(__name__)


# ------------------------------
# DB write helpers
# ------------------------------

def _stamp_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


def save_project_tasks(db: Session, project_id: str, tasks: List[TaskModel]) -> None:
    """Replace every task (with dependencies and photo links) of a project in one transaction."""
    try:
        db.execute(text("""
            DELETE FROM dependencies
            WHERE task_id IN (SELECT id FROM tasks WHERE project_id = :pid)
        """), {"pid": project_id})
        db.execute(text("""
            DELETE FROM task_photos
            WHERE task_id IN (SELECT id FROM tasks WHERE project_id = :pid)
        """), {"pid": project_id})
        db.execute(text("""
            DELETE FROM tasks WHERE project_id = :pid
        """), {"pid": project_id})
        for position, t in enumerate(tasks):
            db.execute(text("""
                INSERT INTO tasks (id, project_id, position, name, description, assigned_worker_id,
                                   start_date, end_date, status, completion_date,
                                   total_volume, completed_volume, volume_unit, total_value)
                VALUES (:id, :pid, :position, :name, :description, :assigned_worker_id,
                        :start_date, :end_date, :status, :completion_date,
                        :total_volume, :completed_volume, :volume_unit, :total_value)
            """), {
                "id": t.id,
                "pid": project_id,
                "position": position,
                "name": t.name,
                "description": t.description,
                "assigned_worker_id": t.assigned_worker_id,
                "start_date": t.start_date.isoformat(),
                "end_date": t.end_date.isoformat(),
                "status": t.status.value,
                "completion_date": t.completion_date.isoformat() if t.completion_date else None,
                "total_volume": t.total_volume,
                "completed_volume": t.completed_volume,
                "volume_unit": t.volume_unit,
                "total_value": t.total_value,
            })
            for i, dep in enumerate(t.depends_on):
                db.execute(text("""
                    INSERT INTO dependencies (task_id, depends_on, position) VALUES (:tid, :dep, :position)
                """), {"tid": t.id, "dep": dep, "position": i})
            for i, photo_id in enumerate(t.photo_ids):
                db.execute(text("""
                    INSERT INTO task_photos (task_id, photo_id, position) VALUES (:tid, :photo, :position)
                """), {"tid": t.id, "photo": photo_id, "position": i})
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Saved %d tasks for project %s", len(tasks), project_id)


def create_project(db: Session, name: str, owner_id: Optional[str], pin: Optional[str] = None) -> ProjectModel:
    project_id = _stamp_id("proj")
    db.execute(text("""
        INSERT INTO projects (id, name, owner_id, pin) VALUES (:id, :name, :owner_id, :pin)
    """), {"id": project_id, "name": name, "owner_id": owner_id, "pin": pin})
    db.commit()
    return ProjectModel(id=project_id, name=name, owner_id=owner_id, pin=pin)


def create_user(db: Session, username: str, hashed_password: str, role: str = "editor") -> str:
    user_id = _stamp_id("usr")
    db.execute(text("""
        INSERT INTO users (id, username, hashed_password, role) VALUES (:id, :username, :hp, :role)
    """), {"id": user_id, "username": username, "hp": hashed_password, "role": role})
    db.commit()
    return user_id

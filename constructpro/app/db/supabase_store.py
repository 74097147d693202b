"""Thin pass-through to a hosted Supabase (PostgREST) backend.

Rows use the snake_case columns of the hosted schema; ``depends_on`` and
``photo_ids`` are array columns on the ``tasks`` table.
"""
import logging
from typing import Dict, List

import requests

from constructpro import config
from .models import TaskModel

logger = logging.getLogger(__name__)

_TASK_COLUMNS = [
    "id",
    "name",
    "description",
    "assigned_worker_id",
    "start_date",
    "end_date",
    "status",
    "completion_date",
    "total_volume",
    "completed_volume",
    "volume_unit",
    "photo_ids",
    "depends_on",
    "total_value",
]


def _supabase_env():
    if not config.SUPABASE_URL or not config.SUPABASE_KEY:
        raise ValueError("Supabase environment variables (SUPABASE_URL, SUPABASE_KEY) are not set.")
    return config.SUPABASE_URL.rstrip("/"), config.SUPABASE_KEY


def _headers(key: str) -> Dict[str, str]:
    return {
        "apikey": key,
        "Authorization": f"Bearer {key}",
        "Accept": "application/json",
        "Content-Type": "application/json",
    }


def task_from_row(row: dict) -> TaskModel:
    data = {k: row.get(k) for k in _TASK_COLUMNS if row.get(k) is not None}
    data["depends_on"] = list(row.get("depends_on") or [])
    data["photo_ids"] = list(row.get("photo_ids") or [])
    return TaskModel.model_validate(data)


def task_to_row(project_id: str, task: TaskModel) -> dict:
    row = task.model_dump(mode="json")
    row["project_id"] = project_id
    return row


def fetch_rows(table: str, project_id: str) -> List[dict]:
    """Fetch every row of a project-scoped table."""
    url, key = _supabase_env()
    params = {"select": "*", "project_id": f"eq.{project_id}"}
    resp = requests.get(f"{url}/rest/v1/{table}", headers=_headers(key), params=params,
                        timeout=config.SUPABASE_TIMEOUT_SECONDS)
    resp.raise_for_status()
    return resp.json() or []


def fetch_project_tasks(project_id: str) -> List[TaskModel]:
    return [task_from_row(r) for r in fetch_rows("tasks", project_id)]


def replace_project_tasks(project_id: str, tasks: List[TaskModel]) -> None:
    """Replace a project's whole task collection.

    Rows are upserted first and only the leftovers are deleted afterwards, so
    a failed write never leaves the project without its stored tasks.
    """
    url, key = _supabase_env()
    headers = _headers(key)
    params = {"project_id": f"eq.{project_id}"}
    if tasks:
        rows = [task_to_row(project_id, t) for t in tasks]
        resp = requests.post(f"{url}/rest/v1/tasks",
                             headers={**headers, "Prefer": "resolution=merge-duplicates,return=minimal"},
                             json=rows, timeout=config.SUPABASE_TIMEOUT_SECONDS)
        resp.raise_for_status()
        params["id"] = "not.in.({})".format(",".join(f'"{t.id}"' for t in tasks))
    resp = requests.delete(f"{url}/rest/v1/tasks", headers=headers, params=params,
                           timeout=config.SUPABASE_TIMEOUT_SECONDS)
    resp.raise_for_status()
    logger.info("Replaced %d tasks for project %s on Supabase", len(tasks), project_id)

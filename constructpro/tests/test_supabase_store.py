"""
Tests for the Supabase pass-through, with requests mocked.
"""
from datetime import date
from unittest.mock import Mock, patch

import pytest
import requests

from constructpro import config
from constructpro.app.db import db_loader, supabase_store
from constructpro.app.db.models import TaskStatus
from conftest import make_task


@pytest.fixture
def supabase_env():
    with patch.object(config, "SUPABASE_URL", "https://demo.supabase.co/"), \
         patch.object(config, "SUPABASE_KEY", "anon-key"):
        yield


class TestSupabaseStore:
    """REST calls against the hosted tasks table."""

    def test_missing_configuration(self):
        with patch.object(config, "SUPABASE_URL", ""), patch.object(config, "SUPABASE_KEY", ""):
            with pytest.raises(ValueError) as exc_info:
                supabase_store.fetch_project_tasks("proj-1")
        assert "SUPABASE_URL" in str(exc_info.value)

    def test_fetch_project_tasks(self, supabase_env, mock_requests):
        mock_requests["response"].json.return_value = [
            {
                "id": "t1",
                "project_id": "proj-1",
                "name": "Excavación",
                "description": None,
                "start_date": "2024-08-01",
                "end_date": "2024-08-05",
                "status": "Completado",
                "completion_date": "2024-08-05",
                "depends_on": None,
                "photo_ids": ["ph-1"],
                "total_volume": 10,
            }
        ]
        tasks = supabase_store.fetch_project_tasks("proj-1")

        assert len(tasks) == 1
        task = tasks[0]
        assert task.status == TaskStatus.COMPLETED
        assert task.depends_on == []
        assert task.photo_ids == ["ph-1"]
        assert task.description == ""
        assert task.completion_date == date(2024, 8, 5)

        args, kwargs = mock_requests["get"].call_args
        assert args[0] == "https://demo.supabase.co/rest/v1/tasks"
        assert kwargs["params"] == {"select": "*", "project_id": "eq.proj-1"}
        assert kwargs["headers"]["apikey"] == "anon-key"
        assert kwargs["headers"]["Authorization"] == "Bearer anon-key"

    def test_replace_project_tasks(self, supabase_env, mock_requests):
        tasks = [make_task("t1", date(2024, 8, 1), date(2024, 8, 5)),
                 make_task("t2", date(2024, 8, 6), date(2024, 8, 9), depends_on=["t1"])]
        supabase_store.replace_project_tasks("proj-1", tasks)

        _, post_kwargs = mock_requests["post"].call_args
        rows = post_kwargs["json"]
        assert [r["id"] for r in rows] == ["t1", "t2"]
        assert rows[1]["depends_on"] == ["t1"]
        assert rows[0]["start_date"] == "2024-08-01"
        assert rows[0]["status"] == "No Iniciado"
        assert rows[0]["project_id"] == "proj-1"
        assert post_kwargs["headers"]["Prefer"] == "resolution=merge-duplicates,return=minimal"

        _, delete_kwargs = mock_requests["delete"].call_args
        assert delete_kwargs["params"] == {"project_id": "eq.proj-1", "id": 'not.in.("t1","t2")'}

    def test_replace_with_no_tasks_only_deletes(self, supabase_env, mock_requests):
        supabase_store.replace_project_tasks("proj-1", [])
        mock_requests["delete"].assert_called_once()
        mock_requests["post"].assert_not_called()
        assert mock_requests["delete"].call_args[1]["params"] == {"project_id": "eq.proj-1"}

    def test_failed_insert_keeps_stored_tasks(self, supabase_env, mock_requests):
        failing = Mock()
        failing.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        mock_requests["post"].return_value = failing

        with pytest.raises(requests.HTTPError):
            supabase_store.replace_project_tasks("proj-1", [make_task("t1", date(2024, 8, 1), date(2024, 8, 5))])

        mock_requests["delete"].assert_not_called()

    def test_http_errors_propagate(self, supabase_env, mock_requests):
        mock_requests["response"].raise_for_status.side_effect = requests.HTTPError("503 Server Error")
        with pytest.raises(requests.HTTPError):
            supabase_store.fetch_project_tasks("proj-1")


class TestSupabaseBackend:
    """db_loader routes through Supabase when configured."""

    def test_task_store_persists_through_supabase(self):
        tasks = [make_task("t1", date(2024, 8, 1), date(2024, 8, 5))]
        with patch.object(config, "TASK_BACKEND", "supabase"), \
             patch.object(db_loader.supabase_store, "fetch_project_tasks", return_value=tasks) as mock_fetch, \
             patch.object(db_loader.supabase_store, "replace_project_tasks") as mock_replace:
            store = db_loader.load_task_store(None, "proj-1")
            store.update_dates("t1", date(2024, 8, 2), date(2024, 8, 6))

        mock_fetch.assert_called_once_with("proj-1")
        project_id, saved = mock_replace.call_args[0]
        assert project_id == "proj-1"
        assert saved[0].start_date == date(2024, 8, 2)

    def test_workers_from_supabase(self, supabase_env, mock_requests):
        mock_requests["response"].json.return_value = [
            {"id": "w-1", "project_id": "proj-1", "name": "Juan Pérez", "role": "Albañil", "hourly_rate": 12.5},
        ]
        with patch.object(config, "TASK_BACKEND", "supabase"):
            workers = db_loader.load_workers(None, "proj-1")
        assert db_loader.worker_name(workers, "w-1") == "Juan Pérez"
        assert mock_requests["get"].call_args[0][0].endswith("/rest/v1/workers")

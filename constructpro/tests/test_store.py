"""
Tests for the task store.
"""
from datetime import date
from unittest.mock import Mock

import pytest

from constructpro.app.db.models import TaskStatus
from constructpro.tools.schedule.engine import (
    DependencyConflictError,
    DependencyCycleError,
    InvalidTaskError,
    TaskNotFoundError,
    TaskStore,
)
from conftest import make_task


@pytest.fixture
def store(today):
    return TaskStore(
        [
            make_task("P", date(2024, 8, 1), date(2024, 8, 5), name="Excavación"),
            make_task("T", date(2024, 8, 6), date(2024, 8, 9), depends_on=["P"], name="Cimentación"),
        ],
        today_fn=lambda: today,
    )


def _assert_dependencies_hold(store):
    graph = store.graph()
    for dep_id, task_id in graph.edges():
        assert graph.tasks[task_id].start_date >= graph.tasks[dep_id].end_date


class TestReads:
    """Lookups."""

    def test_get_and_list(self, store):
        assert [t.id for t in store.list_tasks()] == ["P", "T"]
        assert store.get("T").name == "Cimentación"
        assert len(store) == 2

    def test_get_unknown_raises(self, store):
        with pytest.raises(TaskNotFoundError):
            store.get("nope")

    def test_list_is_a_copy(self, store):
        store.list_tasks().clear()
        assert len(store) == 2


class TestAddTask:
    """Form path for new tasks."""

    def test_defaults_and_generated_id(self, store):
        task = store.add_task({"name": "Muros", "start_date": date(2024, 8, 10), "end_date": date(2024, 8, 12)})
        assert task.id.startswith("tsk-")
        assert task.status == TaskStatus.NOT_STARTED
        assert task.depends_on == []
        assert store.list_tasks()[-1].id == task.id

    def test_generated_ids_are_unique(self, store):
        fields = {"name": "Muros", "start_date": date(2024, 8, 10), "end_date": date(2024, 8, 12)}
        first = store.add_task(dict(fields))
        second = store.add_task(dict(fields))
        assert first.id != second.id

    def test_missing_fields_rejected(self, store):
        with pytest.raises(InvalidTaskError):
            store.add_task({"name": " ", "start_date": date(2024, 8, 10), "end_date": date(2024, 8, 12)})
        with pytest.raises(InvalidTaskError):
            store.add_task({"name": "Muros", "start_date": date(2024, 8, 10)})

    def test_start_after_end_rejected(self, store):
        with pytest.raises(InvalidTaskError):
            store.add_task({"name": "Muros", "start_date": date(2024, 8, 12), "end_date": date(2024, 8, 10)})

    def test_duplicate_id_rejected(self, store):
        with pytest.raises(InvalidTaskError):
            store.add_task({"id": "P", "name": "Dup", "start_date": date(2024, 8, 1), "end_date": date(2024, 8, 2)})

    def test_unknown_and_self_dependencies_rejected(self, store):
        with pytest.raises(InvalidTaskError):
            store.add_task({"name": "X", "start_date": date(2024, 8, 10), "end_date": date(2024, 8, 12),
                            "depends_on": ["ghost"]})
        with pytest.raises(InvalidTaskError):
            store.add_task({"id": "X", "name": "X", "start_date": date(2024, 8, 10), "end_date": date(2024, 8, 12),
                            "depends_on": ["X"]})

    def test_duplicate_dependencies_collapse(self, store):
        task = store.add_task({"name": "X", "start_date": date(2024, 8, 10), "end_date": date(2024, 8, 12),
                               "depends_on": ["T", "P", "T"]})
        assert task.depends_on == ["T", "P"]

    def test_dates_checked_against_prerequisites(self, store):
        with pytest.raises(DependencyConflictError) as exc_info:
            store.add_task({"name": "X", "start_date": date(2024, 8, 8), "end_date": date(2024, 8, 12),
                            "depends_on": ["T"]})
        assert exc_info.value.conflict.other_task_id == "T"
        assert len(store) == 2

    def test_full_volume_stamps_completion(self, store, today):
        task = store.add_task({"name": "Limpieza", "start_date": date(2024, 8, 1), "end_date": date(2024, 8, 2),
                               "total_volume": 10, "completed_volume": 10})
        assert task.status == TaskStatus.COMPLETED
        assert task.completion_date == today


class TestUpdateTask:
    """Form path for edits."""

    def test_status_gate_rejects_completion(self, store):
        """Completing T while P is still in progress names P."""
        store.update_task("P", {"status": TaskStatus.IN_PROGRESS})
        with pytest.raises(DependencyConflictError) as exc_info:
            store.update_task("T", {"status": TaskStatus.COMPLETED})
        assert exc_info.value.conflict.other_task_name == "Excavación"
        assert store.get("T").status == TaskStatus.NOT_STARTED

    def test_completion_date_set_and_cleared(self, store, today):
        done = store.update_task("P", {"total_volume": 10, "completed_volume": 10})
        assert done.status == TaskStatus.COMPLETED
        assert done.completion_date == today
        reopened = store.update_task("P", {"completed_volume": 4})
        assert reopened.status == TaskStatus.IN_PROGRESS
        assert reopened.completion_date is None

    def test_cycle_rejected(self, store):
        with pytest.raises(DependencyCycleError) as exc_info:
            store.update_task("P", {"depends_on": ["T"]})
        assert set(exc_info.value.cycle) == {"P", "T"}
        assert store.get("P").depends_on == []

    def test_id_is_immutable(self, store):
        with pytest.raises(InvalidTaskError):
            store.update_task("P", {"id": "Q"})

    def test_unknown_task(self, store):
        with pytest.raises(TaskNotFoundError):
            store.update_task("nope", {"name": "x"})

    def test_partial_update_keeps_other_fields(self, store):
        task = store.update_task("T", {"description": "Zapatas corridas"})
        assert task.description == "Zapatas corridas"
        assert task.depends_on == ["P"]
        assert task.start_date == date(2024, 8, 6)

    def test_reopening_prerequisite_of_completed_task_is_rejected(self, store):
        """P cannot go back to not started while T, which depends on it, is completed."""
        store.update_task("P", {"status": TaskStatus.COMPLETED})
        store.update_task("T", {"status": TaskStatus.COMPLETED})
        with pytest.raises(DependencyConflictError) as exc_info:
            store.update_task("P", {"status": TaskStatus.NOT_STARTED})
        assert exc_info.value.conflict.other_task_id == "T"
        assert exc_info.value.conflict.kind.value == "status"
        assert store.get("P").status == TaskStatus.COMPLETED
        assert store.get("T").status == TaskStatus.COMPLETED

    def test_reopening_prerequisite_of_unstarted_task_is_allowed(self, store):
        store.update_task("P", {"status": TaskStatus.COMPLETED})
        reopened = store.update_task("P", {"status": TaskStatus.IN_PROGRESS})
        assert reopened.status == TaskStatus.IN_PROGRESS
        assert reopened.completion_date is None


class TestUpdateDates:
    """Direct date commits (drag releases)."""

    def test_back_to_back_is_allowed(self, store):
        task = store.update_dates("T", date(2024, 8, 5), date(2024, 8, 9))
        assert task.start_date == date(2024, 8, 5)
        _assert_dependencies_hold(store)

    def test_conflict_leaves_store_unchanged(self, store):
        with pytest.raises(DependencyConflictError) as exc_info:
            store.update_dates("T", date(2024, 8, 3), date(2024, 8, 9))
        assert exc_info.value.conflict.other_task_id == "P"
        assert store.get("T").start_date == date(2024, 8, 6)
        assert store.get("T").end_date == date(2024, 8, 9)

    def test_inverted_range_rejected(self, store):
        with pytest.raises(InvalidTaskError):
            store.update_dates("T", date(2024, 8, 9), date(2024, 8, 6))

    def test_status_untouched(self, store):
        store.update_task("P", {"status": TaskStatus.DELAYED})
        task = store.update_dates("P", date(2024, 8, 1), date(2024, 8, 6))
        assert task.status == TaskStatus.DELAYED


class TestRemoveTask:
    """Cascade delete."""

    def test_removing_prerequisite_strips_references(self, store):
        store.add_task({"id": "X", "name": "X", "start_date": date(2024, 8, 10), "end_date": date(2024, 8, 12),
                        "depends_on": ["P", "T"]})
        store.remove_task("P")
        assert [t.id for t in store.list_tasks()] == ["T", "X"]
        for t in store.list_tasks():
            assert "P" not in t.depends_on
        assert store.get("X").depends_on == ["T"]

    def test_remove_unknown(self, store):
        with pytest.raises(TaskNotFoundError):
            store.remove_task("nope")


class TestChangeNotification:
    """on_change fires after each committed mutation only."""

    def test_on_change_called_with_snapshot(self, store):
        listener = Mock()
        store.on_change = listener
        store.update_dates("T", date(2024, 8, 7), date(2024, 8, 10))
        listener.assert_called_once()
        tasks = listener.call_args[0][0]
        assert [t.id for t in tasks] == ["P", "T"]
        assert tasks[1].start_date == date(2024, 8, 7)

    def test_rejected_mutation_does_not_notify(self, store):
        listener = Mock()
        store.on_change = listener
        with pytest.raises(DependencyConflictError):
            store.update_dates("T", date(2024, 8, 3), date(2024, 8, 9))
        listener.assert_not_called()

    def test_graph_refreshed_after_change(self, store):
        assert "X" not in store.graph()
        store.add_task({"id": "X", "name": "X", "start_date": date(2024, 8, 10), "end_date": date(2024, 8, 12),
                        "depends_on": ["T"]})
        assert store.graph().predecessors("X") == ["T"]

    def test_replace_all(self, store):
        listener = Mock()
        store.on_change = listener
        store.replace_all([make_task("Z", date(2024, 9, 1), date(2024, 9, 2))])
        assert [t.id for t in store.list_tasks()] == ["Z"]
        listener.assert_called_once()

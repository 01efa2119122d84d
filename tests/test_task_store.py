from __future__ import annotations

from datetime import date

import pytest

from smart_todo.tasks.models import TaskNotFoundError, TaskValidationError
from smart_todo.tasks.store import SqliteTaskStore, advance_due_date


def test_create_applies_defaults_and_assignee_scope(task_store: SqliteTaskStore) -> None:
    task = task_store.create("alice", {"title": "  Write tests  ", "unknown": "dropped"})

    assert task.id > 0
    assert task.title == "Write tests"
    assert task.status == "todo"
    assert task.urgency == "normal"
    assert task.recurrence == "none"
    assert task.assignee_id == "alice"
    assert task.due_date is None


def test_create_requires_title(task_store: SqliteTaskStore) -> None:
    with pytest.raises(TaskValidationError) as excinfo:
        task_store.create("alice", {"description": "no title"})

    assert excinfo.value.errors == {"title": ["can't be blank"]}
    assert str(excinfo.value) == "title: can't be blank"


def test_create_rejects_long_title_and_bad_enums(task_store: SqliteTaskStore) -> None:
    with pytest.raises(TaskValidationError) as excinfo:
        task_store.create("alice", {"title": "x" * 201, "urgency": "urgent", "due_date": "soon"})

    assert excinfo.value.errors == {
        "title": ["should be at most 200 character(s)"],
        "urgency": ["is invalid"],
        "due_date": ["is invalid"],
    }
    assert task_store.list_tasks("alice") == []


def test_update_changes_only_supplied_fields(task_store: SqliteTaskStore) -> None:
    task = task_store.create("alice", {"title": "Draft", "urgency": "low"})

    updated = task_store.update("alice", task, {"urgency": "high", "due_date": "2025-03-01"})

    assert updated.title == "Draft"
    assert updated.urgency == "high"
    assert updated.due_date == date(2025, 3, 1)


def test_prerequisites_stay_within_scope(task_store: SqliteTaskStore) -> None:
    foreign = task_store.create("bob", {"title": "Bob's task"})
    prereq = task_store.create("alice", {"title": "First"})

    blocked = task_store.create(
        "alice",
        {"title": "Second", "prerequisite_ids": [prereq.id, foreign.id]},
    )

    assert blocked.prerequisite_ids == [prereq.id]
    assert task_store.get("alice", prereq.id).dependent_ids == [blocked.id]


def test_complete_requires_finished_prerequisites(task_store: SqliteTaskStore) -> None:
    prereq = task_store.create("alice", {"title": "First"})
    blocked = task_store.create("alice", {"title": "Second", "prerequisite_ids": [prereq.id]})

    with pytest.raises(TaskValidationError) as excinfo:
        task_store.complete("alice", blocked)
    assert excinfo.value.errors == {"status": ["cannot complete: has incomplete prerequisites"]}

    task_store.complete("alice", prereq)
    done = task_store.complete("alice", blocked)
    assert done.status == "done"


def test_completing_recurring_task_schedules_next_instance(task_store: SqliteTaskStore) -> None:
    task = task_store.create(
        "alice",
        {"title": "Water plants", "recurrence": "weekly", "due_date": "2025-01-28"},
    )

    task_store.complete("alice", task)

    open_tasks = task_store.list_open("alice")
    assert len(open_tasks) == 1
    assert open_tasks[0].id != task.id
    assert open_tasks[0].title == "Water plants"
    assert open_tasks[0].due_date == date(2025, 2, 4)


def test_advance_due_date_steps() -> None:
    start = date(2025, 1, 31)
    assert advance_due_date(start, "daily") == date(2025, 2, 1)
    assert advance_due_date(start, "monthly") == date(2025, 3, 2)
    assert advance_due_date(start, "yearly") == date(2026, 1, 31)
    assert advance_due_date(None, "daily") is None


def test_list_open_excludes_done_and_other_scopes(task_store: SqliteTaskStore) -> None:
    keep = task_store.create("alice", {"title": "Keep"})
    done = task_store.create("alice", {"title": "Done"})
    task_store.create("bob", {"title": "Elsewhere"})
    task_store.complete("alice", done)

    assert [task.id for task in task_store.list_open("alice")] == [keep.id]
    assert len(task_store.list_tasks("alice")) == 2


def test_get_and_delete_are_scoped(task_store: SqliteTaskStore) -> None:
    task = task_store.create("alice", {"title": "Private"})

    with pytest.raises(TaskNotFoundError):
        task_store.get("bob", task.id)

    deleted = task_store.delete("alice", task)
    assert deleted.title == "Private"
    with pytest.raises(TaskNotFoundError):
        task_store.get("alice", task.id)


def test_transaction_rolls_back_everything_on_error(task_store: SqliteTaskStore) -> None:
    existing = task_store.create("alice", {"title": "Existing"})

    with pytest.raises(RuntimeError):
        with task_store.transaction("alice") as unit:
            unit.create("alice", {"title": "New"})
            unit.update("alice", existing, {"title": "Renamed"})
            raise RuntimeError("boom")

    tasks = task_store.list_tasks("alice")
    assert [task.title for task in tasks] == ["Existing"]


def test_transaction_commits_on_success(task_store: SqliteTaskStore) -> None:
    with task_store.transaction("alice") as unit:
        created = unit.create("alice", {"title": "New"})
        unit.update("alice", created, {"urgency": "critical"})

    assert task_store.get("alice", created.id).urgency == "critical"

from __future__ import annotations

import json

from smart_todo.agent.session.state_machine import handle_command, start_session


def _apply(session, command, params=None):
    outcome = handle_command(session, command, params or {})
    assert outcome.ok, outcome.response.message
    return outcome


def test_open_tasks_preview_reflects_staged_operations(task_store, recording_store) -> None:
    renamed = task_store.create("alice", {"title": "Old name", "due_date": "2025-05-01"})
    completed = task_store.create("alice", {"title": "Finish me"})
    done = task_store.create("alice", {"title": "Already done"})
    task_store.complete("alice", done)
    session, _ = start_session("alice", recording_store)

    session = _apply(session, "select_task", {"task_id": renamed.id}).session
    session = _apply(session, "update_task_fields", {"title": "New name", "prerequisite_ids": ["3"]}).session
    session = _apply(session, "select_task", {"task_id": completed.id}).session
    session = _apply(session, "complete_task").session
    response = _apply(session, "create_task", {"title": "Brand new", "urgency": "high"}).response

    by_target = {item["target"]: item for item in response.open_tasks}
    assert set(by_target) == {f"existing:{renamed.id}", "pending:1"}
    assert by_target[f"existing:{renamed.id}"]["title"] == "New name"
    assert by_target[f"existing:{renamed.id}"]["due_date"] == "2025-05-01"
    assert by_target[f"existing:{renamed.id}"]["prerequisites"] == [3]
    assert by_target["pending:1"]["id"] == "pending-1"
    assert by_target["pending:1"]["urgency"] == "high"
    assert by_target["pending:1"]["recurrence"] == "none"
    assert response.pending_operations == [
        {
            "type": "update_task",
            "target": f"existing:{renamed.id}",
            "params": {"title": "New name", "prerequisite_ids": ["3"]},
        },
        {"type": "complete_task", "target": f"existing:{completed.id}", "params": {}},
        {"type": "create_task", "target": "pending:1", "params": {"title": "Brand new", "urgency": "high"}},
    ]


def test_editing_view_shows_target_and_preview(task_store, recording_store) -> None:
    task = task_store.create("alice", {"title": "Focus"})
    session, _ = start_session("alice", recording_store)
    session = _apply(session, "select_task", {"task_id": task.id}).session

    response = _apply(session, "update_task_fields", {"urgency": "critical"}).response

    assert response.state == f"editing:existing:{task.id}"
    assert response.editing == {
        "target": f"existing:{task.id}",
        "pending_changes": {"urgency": "critical"},
        "current_preview": {
            "id": task.id,
            "title": "Focus",
            "description": None,
            "status": "todo",
            "urgency": "critical",
            "due_date": None,
            "recurrence": "none",
            "prerequisites": [],
            "dependents": [],
        },
    }


def test_commit_description_depends_on_staged_work(recording_store) -> None:
    session, response = start_session("alice", recording_store)
    idle = response.available_commands[-1]

    staged = _apply(session, "create_task", {"title": "Something"}).response.available_commands[-1]

    assert idle["name"] == staged["name"] == "complete_session"
    assert idle["description"].startswith("Close the session without committing")
    assert staged["description"].startswith("Apply all staged operations in a single transaction")


def test_response_serializes_to_json(recording_store) -> None:
    session, _ = start_session("alice", recording_store)
    session = _apply(session, "record_plan", {"plan": "Add one task", "steps": ["create", "commit"]}).session

    payload = json.loads(json.dumps(_apply(session, "create_task", {"title": "T"}).response.to_dict()))

    assert payload["state"] == "awaiting_command"
    assert payload["error"] is False
    assert payload["plan_notes"] == [{"plan": "Add one task", "steps": ["create", "commit"]}]
    assert {"name", "description", "params"} <= set(payload["available_commands"][0])

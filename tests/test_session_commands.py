from __future__ import annotations

import pytest

from smart_todo.agent.session.commands import (
    CommandValidationError,
    CreateTask,
    RecordPlan,
    SelectTask,
    UnsupportedCommandError,
    UpdateTaskFields,
    parse_command,
)
from smart_todo.agent.session.targets import ExistingTarget, PendingTarget


def test_select_task_prefers_task_id() -> None:
    command = parse_command("select_task", {"task_id": "7", "pending_ref": 2})

    assert isinstance(command, SelectTask)
    assert command.target == ExistingTarget(7)
    assert command.target.external == "existing:7"


def test_select_task_accepts_pending_ref() -> None:
    command = parse_command("select_task", {"pending_ref": 3})

    assert command.target == PendingTarget(3)
    assert command.target.external == "pending:3"


@pytest.mark.parametrize("value", [True, -1, "1.5", None, [1]])
def test_select_task_rejects_non_positive_integers(value: object) -> None:
    with pytest.raises(CommandValidationError) as excinfo:
        parse_command("select_task", {"task_id": value})

    assert str(excinfo.value) == "Expected a positive integer value."


def test_task_field_commands_keep_only_known_fields() -> None:
    create = parse_command("create_task", {"title": "A", "priority": 1, "due_date": "2025-01-01"})
    update = parse_command("update_task_fields", {"assignee_id": "bob", "name": "ignored"})

    assert isinstance(create, CreateTask)
    assert create.attrs == {"title": "A", "due_date": "2025-01-01"}
    assert isinstance(update, UpdateTaskFields)
    assert update.attrs == {"assignee_id": "bob"}


def test_record_plan_falls_back_to_joined_steps() -> None:
    command = parse_command("record_plan", {"steps": ["select", "update", "commit"]})

    assert isinstance(command, RecordPlan)
    assert command.plan == "select | update | commit"
    assert command.steps == ["select", "update", "commit"]


def test_unknown_command_is_unsupported() -> None:
    with pytest.raises(UnsupportedCommandError) as excinfo:
        parse_command("drop_database", {})

    assert str(excinfo.value) == "Unsupported command: drop_database."


def test_parameterless_commands_ignore_params() -> None:
    command = parse_command("discard_all", {"force": True})

    assert command.name == "discard_all"

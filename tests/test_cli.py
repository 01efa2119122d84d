from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from smart_todo import cli
from smart_todo.agent.orchestration import loop


class _FakeClient:
    tool_result_message_style = "openai"

    def __init__(self, replies: list[dict[str, Any]]) -> None:
        self._replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    def complete_with_tools(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(kwargs)
        return self._replies.pop(0)


def _tool_call(name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"content": "", "tool_calls": [{"id": f"call-{name}", "name": name, "arguments": arguments or {}}]}


def test_cli_tasks_add_then_list(tmp_path: Path, capsys) -> None:
    db_path = str(tmp_path / "cli.db")

    assert cli.main(["--db-path", db_path, "tasks", "add", "Buy milk", "--scope", "alice", "--urgency", "high"]) == 0
    assert cli.main(["--db-path", db_path, "tasks", "list", "--scope", "alice"]) == 0
    assert cli.main(["--db-path", db_path, "tasks", "list", "--scope", "bob"]) == 0

    out = capsys.readouterr().out.splitlines()
    assert out[0] == "Created task 1: Buy milk"
    assert out[1] == "- [1] Buy milk (todo, high)"
    assert out[2] == "No tasks."


def test_cli_tasks_add_reports_validation_errors(tmp_path: Path, capsys) -> None:
    db_path = str(tmp_path / "cli.db")

    code = cli.main(["--db-path", db_path, "tasks", "add", "Task", "--scope", "alice", "--urgency", "urgent"])

    assert code == 1
    assert capsys.readouterr().out.strip() == "Could not create task: urgency: is invalid"


def test_cli_init_db_applies_schema(tmp_path: Path, capsys) -> None:
    db_path = tmp_path / "fresh.db"

    assert cli.main(["--db-path", str(db_path), "init-db"]) == 0

    assert db_path.exists()
    assert capsys.readouterr().out.strip() == f"Applied schema to {db_path}"


def test_cli_run_drives_session_with_configured_client(
    tmp_path: Path, capsys, monkeypatch: pytest.MonkeyPatch
) -> None:
    db_path = str(tmp_path / "cli.db")
    client = _FakeClient(
        [
            _tool_call("create_task", {"title": "Write tests"}),
            _tool_call("complete_session"),
        ]
    )
    monkeypatch.setattr(loop, "build_llm_client", lambda: client)

    code = cli.main(["--db-path", db_path, "run", "add a task", "--scope", "alice", "--timeout-ms", "2000"])

    assert code == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "Session committed (1 created). Session closed."
    assert out[1] == "- create_task: Task creation staged with pending_ref 1."
    assert client.calls[0]["tool_choice"] == "required"
    assert client.calls[0]["timeout"] == 2.0

    cli.main(["--db-path", db_path, "tasks", "list", "--scope", "alice"])
    assert "Write tests" in capsys.readouterr().out


def test_cli_run_json_output(tmp_path: Path, capsys, monkeypatch: pytest.MonkeyPatch) -> None:
    client = _FakeClient([_tool_call("complete_session")])
    monkeypatch.setattr(loop, "build_llm_client", lambda: client)

    code = cli.main(["--db-path", str(tmp_path / "cli.db"), "run", "noop", "--scope", "alice", "--json"])

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["state"] == "completed"
    assert payload["message"] == "Nothing to commit. Session closed."
    assert payload["available_commands"] == []


def test_cli_run_reports_failure_kind(tmp_path: Path, capsys, monkeypatch: pytest.MonkeyPatch) -> None:
    client = _FakeClient([{"content": "no tools today", "tool_calls": []}])
    monkeypatch.setattr(loop, "build_llm_client", lambda: client)

    code = cli.main(["--db-path", str(tmp_path / "cli.db"), "run", "noop", "--scope", "alice"])

    assert code == 1
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "Run failed: no_function_call"
    assert out[1] == "Last message: Session started. Awaiting command."


def test_cli_log_level_default_reads_dotenv(
    tmp_path: Path, capsys, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("SMART_TODO_LOG_LEVEL=DEBUG\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    loaded: list[Path] = []
    levels: list[str] = []

    def _fake_load_dotenv(path: Path) -> bool:
        loaded.append(path)
        monkeypatch.setenv("SMART_TODO_LOG_LEVEL", "DEBUG")
        return True

    monkeypatch.setattr(cli, "load_dotenv", _fake_load_dotenv)
    monkeypatch.setattr(cli, "_configure_logging", levels.append)

    assert cli.main(["--db-path", str(tmp_path / "cli.db"), "tasks", "list", "--scope", "alice"]) == 0

    assert loaded == [Path.cwd() / ".env"]
    assert levels == ["DEBUG"]
    assert capsys.readouterr().out.strip() == "No tasks."

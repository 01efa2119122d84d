from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import pytest

from smart_todo.tasks.store import SqliteTaskStore

_WRITE_CALLS = {"create", "update", "delete", "complete", "transaction"}


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # Keep tests away from the developer's database and overrides.
    monkeypatch.setenv("SMART_TODO_DB_PATH", str(tmp_path / "default-tasks.db"))
    for name in (
        "SMART_TODO_MAX_ROUNDS",
        "SMART_TODO_MAX_ERRORS",
        "SMART_TODO_LLM_RECEIVE_TIMEOUT_MS",
        "SMART_TODO_LLM_PROVIDER",
        "SMART_TODO_PROMPT_PREFERENCES",
        "SMART_TODO_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def task_store(tmp_path: Path) -> SqliteTaskStore:
    return SqliteTaskStore(tmp_path / "tasks.db")


class RecordingStore:
    """Task store wrapper that records every call made through it."""

    def __init__(self, inner: Any, calls: list[str] | None = None) -> None:
        self._inner = inner
        self.calls: list[str] = calls if calls is not None else []

    @property
    def write_calls(self) -> list[str]:
        return [name for name in self.calls if name in _WRITE_CALLS]

    def create(self, scope: str, attrs: dict[str, Any]) -> Any:
        self.calls.append("create")
        return self._inner.create(scope, attrs)

    def update(self, scope: str, task: Any, attrs: dict[str, Any]) -> Any:
        self.calls.append("update")
        return self._inner.update(scope, task, attrs)

    def delete(self, scope: str, task: Any) -> Any:
        self.calls.append("delete")
        return self._inner.delete(scope, task)

    def complete(self, scope: str, task: Any) -> Any:
        self.calls.append("complete")
        return self._inner.complete(scope, task)

    def get(self, scope: str, task_id: int) -> Any:
        self.calls.append("get")
        return self._inner.get(scope, task_id)

    def list_open(self, scope: str) -> Any:
        self.calls.append("list_open")
        return self._inner.list_open(scope)

    def list_tasks(self, scope: str) -> Any:
        self.calls.append("list_tasks")
        return self._inner.list_tasks(scope)

    @contextmanager
    def transaction(self, scope: str) -> Iterator["RecordingStore"]:
        self.calls.append("transaction")
        with self._inner.transaction(scope) as bound:
            yield RecordingStore(bound, self.calls)


@pytest.fixture
def recording_store(task_store: SqliteTaskStore) -> RecordingStore:
    return RecordingStore(task_store)

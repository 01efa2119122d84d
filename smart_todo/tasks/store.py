from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, ContextManager, Iterator, Protocol

from smart_todo.tasks.migrate import apply_schema
from smart_todo.tasks.models import (
    DESCRIPTION_MAX_LENGTH,
    RECURRENCE_STEP_DAYS,
    RECURRENCE_VALUES,
    STATUS_VALUES,
    TITLE_MAX_LENGTH,
    URGENCY_VALUES,
    Task,
    TaskNotFoundError,
    TaskRecurrence,
    TaskStatus,
    TaskValidationError,
)
from smart_todo.tasks.paths import resolve_tasks_db_path

logger = logging.getLogger(__name__)

TASK_FIELDS = (
    "title",
    "description",
    "status",
    "urgency",
    "due_date",
    "recurrence",
    "assignee_id",
    "prerequisite_ids",
)

_ORDER_BY = """
ORDER BY
  CASE status WHEN 'todo' THEN 0 WHEN 'in_progress' THEN 1 ELSE 2 END,
  CASE WHEN due_date IS NULL THEN 1 ELSE 0 END,
  due_date,
  CASE urgency WHEN 'critical' THEN 0 WHEN 'high' THEN 1 WHEN 'normal' THEN 2 ELSE 3 END,
  id
"""


class TaskStore(Protocol):
    """Persistence contract consumed by agent sessions.

    Every call is scoped to an owning principal. Validation problems raise
    ``TaskValidationError``; unknown ids raise ``TaskNotFoundError``.
    """

    def create(self, scope: str, attrs: dict[str, Any]) -> Task: ...

    def update(self, scope: str, task: Task, attrs: dict[str, Any]) -> Task: ...

    def delete(self, scope: str, task: Task) -> Task: ...

    def complete(self, scope: str, task: Task) -> Task: ...

    def list_open(self, scope: str) -> list[Task]: ...

    def list_tasks(self, scope: str) -> list[Task]: ...

    def get(self, scope: str, task_id: int) -> Task: ...

    def transaction(self, scope: str) -> ContextManager["TaskStore"]: ...


class SqliteTaskStore:
    def __init__(
        self,
        db_path: str | Path | None = None,
        *,
        connection: sqlite3.Connection | None = None,
    ) -> None:
        self._db_path = Path(db_path) if db_path is not None else resolve_tasks_db_path()
        self._conn = connection
        if connection is None:
            apply_schema(self._db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    @contextmanager
    def transaction(self, scope: str) -> Iterator["SqliteTaskStore"]:
        """Yield a store bound to a single all-or-nothing unit of work.

        Every call made through the yielded store shares one connection and
        one ``BEGIN IMMEDIATE`` transaction. Leaving the block normally
        commits; any exception rolls everything back and propagates.
        """
        if self._conn is not None:
            yield self
            return
        with self._unit_of_work() as conn:
            logger.debug("SqliteTaskStore transaction begin scope=%s", scope)
            yield SqliteTaskStore(self._db_path, connection=conn)

    def create(self, scope: str, attrs: dict[str, Any]) -> Task:
        cleaned, prereq_ids = _clean_attrs(attrs, creating=True)
        cleaned.setdefault("assignee_id", scope)
        now = _now_iso()
        with self._unit_of_work() as conn:
            cur = conn.execute(
                """
                INSERT INTO tasks (
                  scope, title, description, status, urgency, due_date,
                  recurrence, assignee_id, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    scope,
                    cleaned["title"],
                    cleaned.get("description"),
                    cleaned.get("status") or TaskStatus.TODO.value,
                    cleaned.get("urgency") or "normal",
                    _date_to_text(cleaned.get("due_date")),
                    cleaned.get("recurrence") or TaskRecurrence.NONE.value,
                    cleaned.get("assignee_id"),
                    now,
                    now,
                ),
            )
            task_id = int(cur.lastrowid)
            if prereq_ids:
                _replace_dependencies(conn, scope=scope, task_id=task_id, prereq_ids=prereq_ids)
            return _fetch_task(conn, scope=scope, task_id=task_id)

    def update(self, scope: str, task: Task, attrs: dict[str, Any]) -> Task:
        cleaned, prereq_ids = _clean_attrs(attrs, creating=False)
        with self._unit_of_work() as conn:
            _fetch_task(conn, scope=scope, task_id=task.id)
            if cleaned:
                assignments = ", ".join(f"{key} = ?" for key in cleaned)
                values = [
                    _date_to_text(value) if key == "due_date" else value
                    for key, value in cleaned.items()
                ]
                conn.execute(
                    f"UPDATE tasks SET {assignments}, updated_at = ? WHERE id = ? AND scope = ?",
                    (*values, _now_iso(), task.id, scope),
                )
            if prereq_ids is not None:
                _replace_dependencies(conn, scope=scope, task_id=task.id, prereq_ids=prereq_ids)
            return _fetch_task(conn, scope=scope, task_id=task.id)

    def delete(self, scope: str, task: Task) -> Task:
        with self._unit_of_work() as conn:
            current = _fetch_task(conn, scope=scope, task_id=task.id)
            conn.execute(
                "DELETE FROM task_dependencies WHERE blocked_task_id = ? OR prereq_task_id = ?",
                (task.id, task.id),
            )
            conn.execute("DELETE FROM tasks WHERE id = ? AND scope = ?", (task.id, scope))
        return current

    def complete(self, scope: str, task: Task) -> Task:
        with self._unit_of_work() as conn:
            current = _fetch_task(conn, scope=scope, task_id=task.id)
            if not _prerequisites_done(conn, current.prerequisite_ids):
                raise TaskValidationError(
                    {"status": ["cannot complete: has incomplete prerequisites"]}
                )
            now = _now_iso()
            conn.execute(
                "UPDATE tasks SET status = ?, updated_at = ? WHERE id = ? AND scope = ?",
                (TaskStatus.DONE.value, now, current.id, scope),
            )
            if current.recurrence != TaskRecurrence.NONE.value:
                conn.execute(
                    """
                    INSERT INTO tasks (
                      scope, title, description, status, urgency, due_date,
                      recurrence, assignee_id, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        scope,
                        current.title,
                        current.description,
                        TaskStatus.TODO.value,
                        current.urgency,
                        _date_to_text(advance_due_date(current.due_date, current.recurrence)),
                        current.recurrence,
                        current.assignee_id,
                        now,
                        now,
                    ),
                )
            return _fetch_task(conn, scope=scope, task_id=current.id)

    def get(self, scope: str, task_id: int) -> Task:
        with self._reader() as conn:
            return _fetch_task(conn, scope=scope, task_id=int(task_id))

    def list_tasks(self, scope: str) -> list[Task]:
        with self._reader() as conn:
            rows = conn.execute(
                f"SELECT * FROM tasks WHERE scope = ? {_ORDER_BY}",
                (scope,),
            ).fetchall()
            return _hydrate(conn, rows)

    def list_open(self, scope: str) -> list[Task]:
        with self._reader() as conn:
            rows = conn.execute(
                f"SELECT * FROM tasks WHERE scope = ? AND status != 'done' {_ORDER_BY}",
                (scope,),
            ).fetchall()
            return _hydrate(conn, rows)

    @contextmanager
    def _unit_of_work(self) -> Iterator[sqlite3.Connection]:
        if self._conn is not None:
            yield self._conn
            return
        conn = self._connect()
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
            conn.execute("COMMIT")
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    @contextmanager
    def _reader(self) -> Iterator[sqlite3.Connection]:
        if self._conn is not None:
            yield self._conn
            return
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn


def advance_due_date(due_date: date | None, recurrence: str) -> date | None:
    if due_date is None:
        return None
    step = RECURRENCE_STEP_DAYS.get(str(recurrence))
    if step is None:
        return due_date
    return due_date + timedelta(days=step)


def _clean_attrs(
    attrs: dict[str, Any],
    *,
    creating: bool,
) -> tuple[dict[str, Any], list[int] | None]:
    errors: dict[str, list[str]] = {}
    cleaned: dict[str, Any] = {}
    prereq_ids: list[int] | None = None
    for raw_key, value in (attrs or {}).items():
        key = str(raw_key)
        if key not in TASK_FIELDS:
            continue
        if key == "prerequisite_ids":
            try:
                prereq_ids = _normalize_prereq_ids(value)
            except ValueError:
                errors.setdefault(key, []).append("is invalid")
            continue
        if key == "title":
            title = str(value).strip() if value is not None else ""
            if not title:
                errors.setdefault(key, []).append("can't be blank")
            elif len(title) > TITLE_MAX_LENGTH:
                errors.setdefault(key, []).append(
                    f"should be at most {TITLE_MAX_LENGTH} character(s)"
                )
            cleaned[key] = title
        elif key == "description":
            text = None if value is None else str(value)
            if text is not None and len(text) > DESCRIPTION_MAX_LENGTH:
                errors.setdefault(key, []).append(
                    f"should be at most {DESCRIPTION_MAX_LENGTH} character(s)"
                )
            cleaned[key] = text
        elif key in ("status", "urgency", "recurrence"):
            allowed = {
                "status": STATUS_VALUES,
                "urgency": URGENCY_VALUES,
                "recurrence": RECURRENCE_VALUES,
            }[key]
            text = str(getattr(value, "value", value) or "").strip().lower()
            if text not in allowed:
                errors.setdefault(key, []).append("is invalid")
            cleaned[key] = text
        elif key == "due_date":
            try:
                cleaned[key] = _parse_due_date(value)
            except ValueError:
                errors.setdefault(key, []).append("is invalid")
        elif key == "assignee_id":
            cleaned[key] = None if value in (None, "") else str(value)
    if creating and "title" not in cleaned and "title" not in errors:
        errors["title"] = ["can't be blank"]
    if errors:
        raise TaskValidationError(errors)
    return cleaned, prereq_ids


def _normalize_prereq_ids(value: Any) -> list[int]:
    if value in (None, ""):
        return []
    items = value if isinstance(value, (list, tuple)) else [value]
    out: list[int] = []
    for item in items:
        if item in (None, ""):
            continue
        if isinstance(item, bool):
            raise ValueError("invalid_prerequisite_id")
        out.append(int(item))
    return out


def _parse_due_date(value: Any) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def _replace_dependencies(
    conn: sqlite3.Connection,
    *,
    scope: str,
    task_id: int,
    prereq_ids: list[int],
) -> None:
    valid_ids: list[int] = []
    if prereq_ids:
        placeholders = ", ".join("?" for _ in prereq_ids)
        rows = conn.execute(
            f"SELECT id FROM tasks WHERE scope = ? AND id IN ({placeholders})",
            (scope, *prereq_ids),
        ).fetchall()
        valid_ids = sorted({int(row[0]) for row in rows if int(row[0]) != task_id})
    conn.execute("DELETE FROM task_dependencies WHERE blocked_task_id = ?", (task_id,))
    now = _now_iso()
    conn.executemany(
        "INSERT INTO task_dependencies (blocked_task_id, prereq_task_id, created_at) VALUES (?, ?, ?)",
        [(task_id, prereq_id, now) for prereq_id in valid_ids],
    )


def _prerequisites_done(conn: sqlite3.Connection, prereq_ids: list[int]) -> bool:
    if not prereq_ids:
        return True
    placeholders = ", ".join("?" for _ in prereq_ids)
    row = conn.execute(
        f"SELECT COUNT(*) FROM tasks WHERE id IN ({placeholders}) AND status != 'done'",
        tuple(prereq_ids),
    ).fetchone()
    return int(row[0]) == 0


def _fetch_task(conn: sqlite3.Connection, *, scope: str, task_id: int) -> Task:
    row = conn.execute(
        "SELECT * FROM tasks WHERE id = ? AND scope = ?",
        (task_id, scope),
    ).fetchone()
    if row is None:
        raise TaskNotFoundError(task_id)
    return _hydrate(conn, [row])[0]


def _hydrate(conn: sqlite3.Connection, rows: list[sqlite3.Row]) -> list[Task]:
    if not rows:
        return []
    ids = [int(row["id"]) for row in rows]
    placeholders = ", ".join("?" for _ in ids)
    links = conn.execute(
        f"""
        SELECT blocked_task_id, prereq_task_id FROM task_dependencies
        WHERE blocked_task_id IN ({placeholders}) OR prereq_task_id IN ({placeholders})
        ORDER BY prereq_task_id, blocked_task_id
        """,
        (*ids, *ids),
    ).fetchall()
    prerequisites: dict[int, list[int]] = {task_id: [] for task_id in ids}
    dependents: dict[int, list[int]] = {task_id: [] for task_id in ids}
    for blocked_id, prereq_id in links:
        if blocked_id in prerequisites:
            prerequisites[blocked_id].append(int(prereq_id))
        if prereq_id in dependents:
            dependents[prereq_id].append(int(blocked_id))
    return [
        Task.from_row(
            dict(row),
            prerequisite_ids=prerequisites[int(row["id"])],
            dependent_ids=dependents[int(row["id"])],
        )
        for row in rows
    ]


def _date_to_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

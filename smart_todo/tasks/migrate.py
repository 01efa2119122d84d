"""Apply schema to the tasks SQLite database."""

from __future__ import annotations

import sqlite3
from pathlib import Path

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS tasks (
  id          INTEGER PRIMARY KEY AUTOINCREMENT,
  scope       TEXT NOT NULL,
  title       TEXT NOT NULL,
  description TEXT,
  status      TEXT NOT NULL DEFAULT 'todo'
              CHECK (status IN ('todo', 'in_progress', 'done')),
  urgency     TEXT NOT NULL DEFAULT 'normal'
              CHECK (urgency IN ('low', 'normal', 'high', 'critical')),
  due_date    TEXT,
  recurrence  TEXT NOT NULL DEFAULT 'none'
              CHECK (recurrence IN ('none', 'daily', 'weekly', 'monthly', 'yearly')),
  assignee_id TEXT,
  created_at  TEXT NOT NULL,
  updated_at  TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tasks_scope_status
  ON tasks (scope, status);

CREATE TABLE IF NOT EXISTS task_dependencies (
  blocked_task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
  prereq_task_id  INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
  created_at      TEXT NOT NULL,
  PRIMARY KEY (blocked_task_id, prereq_task_id)
);
CREATE INDEX IF NOT EXISTS idx_task_dependencies_prereq
  ON task_dependencies (prereq_task_id);
"""


def apply_schema(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.executescript(_SCHEMA_SQL)
        _ensure_task_columns(conn)


def _ensure_task_columns(conn: sqlite3.Connection) -> None:
    columns = {
        "assignee_id": "TEXT",
        "recurrence": "TEXT NOT NULL DEFAULT 'none'",
    }
    for name, definition in columns.items():
        try:
            conn.execute(f"ALTER TABLE tasks ADD COLUMN {name} {definition}")
        except sqlite3.OperationalError:
            continue


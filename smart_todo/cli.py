from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv

from smart_todo.agent.orchestration import RunOptions, SessionRunError, run
from smart_todo.config import settings
from smart_todo.tasks.migrate import apply_schema
from smart_todo.tasks.models import TaskStoreError
from smart_todo.tasks.paths import resolve_tasks_db_path
from smart_todo.tasks.store import SqliteTaskStore


def main(argv: Sequence[str] | None = None) -> int:
    _load_env()
    parser = argparse.ArgumentParser(prog="smart-todo")
    parser.add_argument("--log-level", default=settings.get_log_level())
    parser.add_argument("--db-path", default=None, help="Override the tasks database path")
    sub = parser.add_subparsers(dest="command", required=True)

    run_parser = sub.add_parser("run", help="Let the model fulfil a request through a task session")
    run_parser.add_argument("text", help="Natural language request")
    run_parser.add_argument("--scope", required=True, help="Owner identity for the task list")
    run_parser.add_argument("--max-rounds", type=int, default=None)
    run_parser.add_argument("--max-errors", type=int, default=None)
    run_parser.add_argument("--timeout-ms", type=int, default=None, help="Model receive timeout")
    run_parser.add_argument("--json", action="store_true", help="Print the final response as JSON")

    tasks_parser = sub.add_parser("tasks", help="Inspect and seed tasks directly")
    tasks_sub = tasks_parser.add_subparsers(dest="tasks_command", required=True)
    tasks_list = tasks_sub.add_parser("list", help="List tasks for a scope")
    tasks_list.add_argument("--scope", required=True)
    tasks_list.add_argument("--all", action="store_true", help="Include completed tasks")
    tasks_add = tasks_sub.add_parser("add", help="Create a task without the model")
    tasks_add.add_argument("title")
    tasks_add.add_argument("--scope", required=True)
    tasks_add.add_argument("--description", default=None)
    tasks_add.add_argument("--urgency", default=None)
    tasks_add.add_argument("--due-date", default=None)
    tasks_add.add_argument("--recurrence", default=None)

    sub.add_parser("init-db", help="Apply the tasks schema")

    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    db_path = Path(args.db_path) if args.db_path else resolve_tasks_db_path()
    logging.info("Tasks DB path=%s exists=%s", db_path, db_path.exists())

    if args.command == "init-db":
        apply_schema(db_path)
        print(f"Applied schema to {db_path}")
        return 0
    store = SqliteTaskStore(db_path)
    if args.command == "tasks":
        return _command_tasks(args, store)
    if args.command == "run":
        return _command_run(args, store)
    return 2


def _command_run(args: argparse.Namespace, store: SqliteTaskStore) -> int:
    overrides = {
        key: value
        for key, value in (
            ("max_rounds", args.max_rounds),
            ("max_errors", args.max_errors),
            ("receive_timeout_ms", args.timeout_ms),
        )
        if value is not None
    }
    try:
        result = run(args.scope, args.text, RunOptions(**overrides), store=store)
    except SessionRunError as exc:
        print(f"Run failed: {exc.kind}")
        print(f"Last message: {exc.context.response.message}")
        if exc.context.executed:
            print("Executed before failure:")
            for command in exc.context.executed:
                print(f"- {command.name} {json.dumps(command.params, ensure_ascii=False)}")
        return 1
    if args.json:
        print(json.dumps(result.response.to_dict(), ensure_ascii=False, indent=2, default=str))
        return 0
    print(result.response.message)
    for command in result.executed:
        print(f"- {command.name}: {command.message}")
    return 0


def _command_tasks(args: argparse.Namespace, store: SqliteTaskStore) -> int:
    if args.tasks_command == "list":
        tasks = store.list_tasks(args.scope) if args.all else store.list_open(args.scope)
        if not tasks:
            print("No tasks.")
            return 0
        for task in tasks:
            due = f" due={task.due_date.isoformat()}" if task.due_date else ""
            print(f"- [{task.id}] {task.title} ({task.status}, {task.urgency}){due}")
        return 0
    if args.tasks_command == "add":
        attrs = {
            key: value
            for key, value in (
                ("title", args.title),
                ("description", args.description),
                ("urgency", args.urgency),
                ("due_date", args.due_date),
                ("recurrence", args.recurrence),
            )
            if value is not None
        }
        try:
            task = store.create(args.scope, attrs)
        except TaskStoreError as exc:
            print(f"Could not create task: {exc}")
            return 1
        print(f"Created task {task.id}: {task.title}")
        return 0
    return 2


def _load_env() -> None:
    for env_path in (Path.cwd() / ".env", Path(__file__).resolve().parent / ".env"):
        if env_path.exists():
            load_dotenv(env_path)
            return


def _configure_logging(level_name: str) -> None:
    logging.basicConfig(level=getattr(logging, str(level_name).upper(), logging.INFO))


if __name__ == "__main__":
    raise SystemExit(main())

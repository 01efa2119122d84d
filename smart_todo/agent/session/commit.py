from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from smart_todo.agent.session.targets import ExistingTarget, PendingTarget, Target, describe_target
from smart_todo.tasks.models import Task, TaskNotFoundError, TaskStoreError, TaskValidationError
from smart_todo.tasks.store import TaskStore

CREATE = "create_task"
UPDATE = "update_task"
DELETE = "delete_task"
COMPLETE = "complete_task"


@dataclass(frozen=True)
class PendingOperation:
    type: str
    target: Target
    attrs: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "target": self.target.external, "params": dict(self.attrs)}


@dataclass(frozen=True)
class CommitSummary:
    created: list[Task] = field(default_factory=list)
    updated: list[Task] = field(default_factory=list)
    deleted: list[Task] = field(default_factory=list)
    completed: list[Task] = field(default_factory=list)

    def message(self) -> str:
        parts = [
            f"{len(items)} {label}"
            for label, items in (
                ("created", self.created),
                ("updated", self.updated),
                ("deleted", self.deleted),
                ("completed", self.completed),
            )
            if items
        ]
        if not parts:
            return "Session committed. No staged changes were applied. Session closed."
        return f"Session committed ({', '.join(parts)}). Session closed."

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": [task.to_dict() for task in self.created],
            "updated": [task.to_dict() for task in self.updated],
            "deleted": [task.to_dict() for task in self.deleted],
            "completed": [task.to_dict() for task in self.completed],
        }


class CommitError(Exception):
    """Raised when staged operations cannot be persisted; nothing was written."""


def apply_pending_operations(
    store: TaskStore,
    scope: str,
    operations: Sequence[PendingOperation],
) -> CommitSummary:
    """Persist ``operations`` in staging order inside one store transaction.

    Pending targets resolve through the ids produced by earlier creates in
    the same commit. The first failure aborts the transaction and surfaces
    as ``CommitError`` with a readable message.
    """
    summary = CommitSummary()
    pending_ids: dict[int, int] = {}
    with store.transaction(scope) as unit:
        for op in operations:
            _apply_operation(unit, scope, op, pending_ids, summary)
    return summary


def _apply_operation(
    store: TaskStore,
    scope: str,
    op: PendingOperation,
    pending_ids: dict[int, int],
    summary: CommitSummary,
) -> None:
    if op.type == CREATE:
        try:
            task = store.create(scope, dict(op.attrs))
        except TaskValidationError as exc:
            raise CommitError(_failure_message(op, exc)) from exc
        if isinstance(op.target, PendingTarget):
            pending_ids[op.target.ref] = task.id
        summary.created.append(task)
        return
    task_id = _resolve_target(op.target, pending_ids)
    try:
        task = store.get(scope, task_id)
    except TaskNotFoundError as exc:
        raise CommitError(f"Task {task_id} could not be found during commit.") from exc
    try:
        if op.type == UPDATE:
            summary.updated.append(store.update(scope, task, dict(op.attrs)))
        elif op.type == DELETE:
            summary.deleted.append(store.delete(scope, task))
        elif op.type == COMPLETE:
            summary.completed.append(store.complete(scope, task))
        else:
            raise CommitError(f"Unsupported operation {op.type} for task {task_id}.")
    except TaskNotFoundError as exc:
        raise CommitError(f"Task {task_id} could not be found during commit.") from exc
    except TaskStoreError as exc:
        raise CommitError(_failure_message(op, exc, label=str(task_id))) from exc


def _resolve_target(target: Target, pending_ids: dict[int, int]) -> int:
    if isinstance(target, ExistingTarget):
        return target.id
    task_id = pending_ids.get(target.ref)
    if task_id is None:
        raise CommitError(
            f"Pending reference {target.ref} was not created before it was referenced."
        )
    return task_id


def _failure_message(op: PendingOperation, exc: TaskStoreError, *, label: str | None = None) -> str:
    action = op.type.replace("_", " ")
    return f"{action} failed for {label or describe_target(op.target)}: {exc}"

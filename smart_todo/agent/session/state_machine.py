"""Staged task-command session.

A session exposes a small set of commands to an agent, stages task changes
in memory and writes them to the task store in one transaction when the agent
issues ``complete_session``. Failed commands leave the session untouched so
the agent can correct itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Mapping
from uuid import uuid4

from smart_todo.agent.observability.log_manager import get_log_manager
from smart_todo.agent.session.commands import (
    COMMAND_NAMES,
    Command,
    CommandValidationError,
    CompleteSession,
    CompleteTask,
    CreateTask,
    DeleteTask,
    DiscardAll,
    ExitEditing,
    RecordPlan,
    SelectTask,
    UnsupportedCommandError,
    UpdateTaskFields,
    parse_command,
)
from smart_todo.agent.session.commit import (
    COMPLETE,
    CREATE,
    DELETE,
    UPDATE,
    CommitError,
    CommitSummary,
    PendingOperation,
    apply_pending_operations,
)
from smart_todo.agent.session.rendering import SessionResponse, build_response
from smart_todo.agent.session.targets import ExistingTarget, PendingTarget, Target
from smart_todo.tasks.store import TaskStore

AWAITING_COMMAND = "awaiting_command"
EDITING = "editing"
COMPLETED = "completed"

_LOG = get_log_manager()

_REQUIRES_SELECTION = {
    "update_task_fields": "Select a task before updating its fields.",
    "delete_task": "Select a task before deleting it.",
    "complete_task": "Select a task before marking it complete.",
    "exit_editing": "Not currently editing a task.",
}


@dataclass(frozen=True)
class EditContext:
    target: Target
    staged: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PlanNote:
    plan: str
    steps: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"plan": self.plan, "steps": list(self.steps)}


@dataclass(frozen=True)
class Session:
    scope: str
    store: TaskStore = field(repr=False, compare=False)
    state: str = AWAITING_COMMAND
    pending_ops: tuple[PendingOperation, ...] = ()
    edit_context: EditContext | None = None
    next_pending_ref: int = 1
    plan_notes: tuple[PlanNote, ...] = ()
    last_commit: CommitSummary | None = None
    session_id: str = field(default_factory=lambda: uuid4().hex, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.state == COMPLETED

    @property
    def editing_target(self) -> Target | None:
        if self.state != EDITING or self.edit_context is None:
            return None
        return self.edit_context.target

    @property
    def rendered_state(self) -> str:
        target = self.editing_target
        if target is not None:
            return f"{EDITING}:{target.external}"
        return self.state


@dataclass(frozen=True)
class CommandOutcome:
    ok: bool
    session: Session
    response: SessionResponse


def start_session(scope: str, store: TaskStore) -> tuple[Session, SessionResponse]:
    session = Session(scope=scope, store=store)
    _LOG.emit(
        event="session.started",
        component="session",
        session_id=session.session_id,
        scope=scope,
        state=session.rendered_state,
    )
    return session, build_response(session, "Session started. Awaiting command.")


def handle_command(
    session: Session,
    command: str | Command,
    params: Mapping[str, Any] | None = None,
) -> CommandOutcome:
    """Apply one command. On failure the input session is returned unchanged."""
    name = _command_name(command)
    if session.is_terminal:
        return _reject(session, name, "Session already completed. Restart to issue commands.")
    if params is None:
        params = {}
    if not isinstance(params, Mapping):
        return _reject(session, name, "Command parameters must be provided as a map.")
    try:
        updated, message = _dispatch(session, command, params)
    except (CommandValidationError, UnsupportedCommandError, CommitError) as exc:
        return _reject(session, name, str(exc))
    _LOG.emit(
        event="session.command.applied",
        component="session",
        session_id=session.session_id,
        scope=session.scope,
        state=updated.rendered_state,
        command=str(name),
        message=message,
        payload={"pending_ops": len(updated.pending_ops)},
    )
    return CommandOutcome(ok=True, session=updated, response=build_response(updated, message))


def _dispatch(
    session: Session,
    command: str | Command,
    params: Mapping[str, Any],
) -> tuple[Session, str]:
    name = _command_name(command)
    if name not in COMMAND_NAMES:
        raise UnsupportedCommandError(name)
    selection_message = _REQUIRES_SELECTION.get(name)
    if selection_message and session.editing_target is None:
        raise CommandValidationError(selection_message)
    parsed = parse_command(name, params) if isinstance(command, str) else command
    if isinstance(parsed, SelectTask):
        return _select_task(session, parsed)
    if isinstance(parsed, CreateTask):
        return _stage_create(session, parsed.attrs)
    if isinstance(parsed, UpdateTaskFields):
        return _stage_update(session, parsed.attrs)
    if isinstance(parsed, DeleteTask):
        return _stage_delete(session)
    if isinstance(parsed, CompleteTask):
        return _stage_complete(session)
    if isinstance(parsed, ExitEditing):
        return _clear_editing(session), "Exited editing mode."
    if isinstance(parsed, DiscardAll):
        cleared = replace(session, pending_ops=(), edit_context=None, state=AWAITING_COMMAND)
        return cleared, "Pending operations discarded."
    if isinstance(parsed, RecordPlan):
        note = PlanNote(plan=parsed.plan, steps=list(parsed.steps))
        return replace(session, plan_notes=session.plan_notes + (note,)), "Plan recorded for reference."
    if isinstance(parsed, CompleteSession):
        return _commit(session)
    raise UnsupportedCommandError(name)


def _select_task(session: Session, command: SelectTask) -> tuple[Session, str]:
    target = command.target
    if isinstance(target, ExistingTarget):
        task = next((t for t in session.store.list_tasks(session.scope) if t.id == target.id), None)
        if task is None:
            raise CommandValidationError(f"Task {target.id} not found for the current scope.")
        if task.is_done:
            raise CommandValidationError(f"Task {target.id} is already completed.")
    elif _find_create(session.pending_ops, target) is None:
        raise CommandValidationError(f"Pending ref {target.ref} not found.")
    updated = replace(session, state=EDITING, edit_context=EditContext(target=target))
    return updated, "Editing started."


def _stage_create(session: Session, attrs: dict[str, Any]) -> tuple[Session, str]:
    ref = session.next_pending_ref
    op = PendingOperation(type=CREATE, target=PendingTarget(ref), attrs=dict(attrs))
    updated = replace(
        session,
        pending_ops=session.pending_ops + (op,),
        next_pending_ref=ref + 1,
    )
    return updated, f"Task creation staged with pending_ref {ref}."


def _stage_update(session: Session, attrs: dict[str, Any]) -> tuple[Session, str]:
    target = _require_target(session, "update_task_fields")
    if isinstance(target, PendingTarget):
        if _find_create(session.pending_ops, target) is None:
            raise CommandValidationError("Pending task not found for update.")
        ops = tuple(
            _merge_attrs(op, attrs) if op.type == CREATE and op.target == target else op
            for op in session.pending_ops
            if not (op.type == UPDATE and op.target == target)
        )
    else:
        ops = _merge_update(session.pending_ops, target, attrs)
    updated = replace(
        session,
        pending_ops=ops,
        edit_context=_stage_in_context(session, target, attrs),
    )
    return updated, "Field changes staged."


def _stage_delete(session: Session) -> tuple[Session, str]:
    target = _require_target(session, "delete_task")
    if isinstance(target, PendingTarget):
        if _find_create(session.pending_ops, target) is None:
            raise CommandValidationError(f"No pending task with ref {target.ref}.")
        remaining = tuple(op for op in session.pending_ops if op.target != target)
        return _clear_editing(replace(session, pending_ops=remaining)), "Pending task creation removed."
    remaining = tuple(op for op in session.pending_ops if op.target != target)
    ops = remaining + (PendingOperation(type=DELETE, target=target),)
    return _clear_editing(replace(session, pending_ops=ops)), "Task marked for deletion."


def _stage_complete(session: Session) -> tuple[Session, str]:
    target = _require_target(session, "complete_task")
    if isinstance(target, PendingTarget):
        raise CommandValidationError(
            f"Cannot complete pending task {target.ref}. Create it first or discard it."
        )
    remaining = tuple(
        op for op in session.pending_ops if not (op.target == target and op.type == COMPLETE)
    )
    ops = remaining + (PendingOperation(type=COMPLETE, target=target),)
    return replace(session, pending_ops=ops), "Task will be completed when committed."


def _commit(session: Session) -> tuple[Session, str]:
    if not session.pending_ops:
        closed = replace(session, state=COMPLETED, edit_context=None)
        return closed, "Nothing to commit. Session closed."
    try:
        summary = apply_pending_operations(session.store, session.scope, session.pending_ops)
    except CommitError as exc:
        _LOG.emit(
            level="warning",
            event="session.commit.failed",
            component="session",
            session_id=session.session_id,
            scope=session.scope,
            state=session.rendered_state,
            command="complete_session",
            error_code="commit_failed",
            message=str(exc),
        )
        raise
    _LOG.emit(
        event="session.commit.succeeded",
        component="session",
        session_id=session.session_id,
        scope=session.scope,
        command="complete_session",
        message=summary.message(),
        payload={
            "created": len(summary.created),
            "updated": len(summary.updated),
            "deleted": len(summary.deleted),
            "completed": len(summary.completed),
        },
    )
    closed = replace(
        session,
        state=COMPLETED,
        edit_context=None,
        pending_ops=(),
        last_commit=summary,
    )
    return closed, summary.message()


def _merge_update(
    ops: tuple[PendingOperation, ...],
    target: Target,
    attrs: dict[str, Any],
) -> tuple[PendingOperation, ...]:
    merged: list[PendingOperation] = []
    found = False
    for op in ops:
        if op.type == UPDATE and op.target == target:
            merged.append(_merge_attrs(op, attrs))
            found = True
        else:
            merged.append(op)
    if not found:
        # Updates for a target always run before its completion.
        update = PendingOperation(type=UPDATE, target=target, attrs=dict(attrs))
        position = next(
            (
                index
                for index, op in enumerate(merged)
                if op.type == COMPLETE and op.target == target
            ),
            len(merged),
        )
        merged.insert(position, update)
    return tuple(merged)


def _require_target(session: Session, command_name: str) -> Target:
    target = session.editing_target
    if target is None:
        raise CommandValidationError(_REQUIRES_SELECTION[command_name])
    return target


def _merge_attrs(op: PendingOperation, attrs: dict[str, Any]) -> PendingOperation:
    return replace(op, attrs={**op.attrs, **attrs})


def _stage_in_context(session: Session, target: Target, attrs: dict[str, Any]) -> EditContext | None:
    context = session.edit_context
    if context is None or context.target != target:
        return context
    return EditContext(target=target, staged={**context.staged, **attrs})


def _find_create(ops: tuple[PendingOperation, ...], target: Target) -> PendingOperation | None:
    return next((op for op in ops if op.type == CREATE and op.target == target), None)


def _clear_editing(session: Session) -> Session:
    return replace(session, state=AWAITING_COMMAND, edit_context=None)


def _reject(session: Session, name: Any, message: str) -> CommandOutcome:
    _LOG.emit(
        level="warning",
        event="session.command.rejected",
        component="session",
        session_id=session.session_id,
        scope=session.scope,
        state=session.rendered_state,
        command=str(name),
        error_code="command_rejected",
        message=message,
    )
    return CommandOutcome(
        ok=False,
        session=session,
        response=build_response(session, message, error=True),
    )


def _command_name(command: Any) -> Any:
    if isinstance(command, str):
        return command
    return getattr(command, "name", command)

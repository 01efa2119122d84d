from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from smart_todo.agent.session.commands import awaiting_commands, editing_commands
from smart_todo.agent.session.commit import COMPLETE, CREATE, DELETE, UPDATE, PendingOperation
from smart_todo.agent.session.targets import ExistingTarget, PendingTarget, Target
from smart_todo.tasks.models import Task

if TYPE_CHECKING:
    from smart_todo.agent.session.state_machine import Session

_PREVIEW_FIELDS = ("title", "description", "status", "urgency", "due_date", "recurrence")


@dataclass(frozen=True)
class SessionResponse:
    state: str
    message: str
    error: bool = False
    open_tasks: list[dict[str, Any]] = field(default_factory=list)
    pending_operations: list[dict[str, Any]] = field(default_factory=list)
    editing: dict[str, Any] | None = None
    plan_notes: list[dict[str, Any]] = field(default_factory=list)
    available_commands: list[dict[str, Any]] = field(default_factory=list)

    @property
    def command_names(self) -> list[str]:
        return [str(item.get("name")) for item in self.available_commands]

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "message": self.message,
            "error": self.error,
            "open_tasks": [dict(item) for item in self.open_tasks],
            "pending_operations": [dict(item) for item in self.pending_operations],
            "editing": dict(self.editing) if self.editing is not None else None,
            "plan_notes": [dict(item) for item in self.plan_notes],
            "available_commands": [dict(item) for item in self.available_commands],
        }


@dataclass
class _PreviewEntry:
    target: Target
    pending: bool
    data: dict[str, Any]

    def public_view(self) -> dict[str, Any]:
        return {**self.data, "target": self.target.external, "pending": self.pending}


def build_response(session: "Session", message: str, *, error: bool = False) -> SessionResponse:
    preview = _tasks_preview(session)
    return SessionResponse(
        state=session.rendered_state,
        message=message,
        error=error,
        open_tasks=[entry.public_view() for entry in preview],
        pending_operations=[op.to_dict() for op in session.pending_ops],
        editing=_render_editing(session, preview),
        plan_notes=[note.to_dict() for note in session.plan_notes],
        available_commands=[spec.to_dict() for spec in _available_commands(session)],
    )


def _available_commands(session: "Session") -> list[Any]:
    if session.is_terminal:
        return []
    has_pending = bool(session.pending_ops)
    if session.editing_target is not None:
        return editing_commands(has_pending)
    return awaiting_commands(has_pending)


def _render_editing(session: "Session", preview: list[_PreviewEntry]) -> dict[str, Any] | None:
    context = session.edit_context
    if context is None or session.editing_target is None:
        return None
    current = next((entry for entry in preview if entry.target == context.target), None)
    return {
        "target": context.target.external,
        "pending_changes": dict(context.staged),
        "current_preview": dict(current.data) if current is not None else None,
    }


def _tasks_preview(session: "Session") -> list[_PreviewEntry]:
    preview = [
        _PreviewEntry(target=ExistingTarget(task.id), pending=False, data=_task_data(task))
        for task in session.store.list_open(session.scope)
        if not task.is_done
    ]
    for op in session.pending_ops:
        preview = _apply_preview_op(preview, op)
    return preview


def _apply_preview_op(preview: list[_PreviewEntry], op: PendingOperation) -> list[_PreviewEntry]:
    if op.type == CREATE and isinstance(op.target, PendingTarget):
        attrs = op.attrs
        data = {
            "id": f"pending-{op.target.ref}",
            "title": attrs.get("title", "Pending Task"),
            "description": attrs.get("description"),
            "status": _render_value(attrs.get("status", "todo")),
            "urgency": _render_value(attrs.get("urgency", "normal")),
            "due_date": _render_value(attrs.get("due_date")),
            "recurrence": _render_value(attrs.get("recurrence", "none")),
            "prerequisites": _prereq_preview(attrs.get("prerequisite_ids")),
            "dependents": [],
        }
        return preview + [_PreviewEntry(target=op.target, pending=True, data=data)]
    if op.type == UPDATE:
        for entry in preview:
            if entry.target != op.target:
                continue
            for key in _PREVIEW_FIELDS:
                if key in op.attrs:
                    entry.data[key] = _render_value(op.attrs[key])
            if "prerequisite_ids" in op.attrs:
                entry.data["prerequisites"] = _prereq_preview(op.attrs["prerequisite_ids"])
        return preview
    if op.type in (DELETE, COMPLETE):
        return [entry for entry in preview if entry.target != op.target]
    return preview


def _task_data(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "urgency": task.urgency,
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "recurrence": task.recurrence,
        "prerequisites": list(task.prerequisite_ids),
        "dependents": list(task.dependent_ids),
    }


def _render_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(getattr(value, "value", value))


def _prereq_preview(values: Any) -> list[Any]:
    if values is None:
        return []
    items = values if isinstance(values, (list, tuple)) else [values]
    out: list[Any] = []
    for item in items:
        if isinstance(item, str) and item.strip().isdigit():
            out.append(int(item.strip()))
        else:
            out.append(item)
    return out

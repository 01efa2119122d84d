from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from smart_todo.agent.session.targets import ExistingTarget, PendingTarget, Target
from smart_todo.tasks.store import TASK_FIELDS

COMMAND_NAMES = (
    "select_task",
    "create_task",
    "update_task_fields",
    "delete_task",
    "complete_task",
    "exit_editing",
    "discard_all",
    "record_plan",
    "complete_session",
)

_STEP_SPLIT = re.compile(r"[;\n]")


class CommandValidationError(ValueError):
    """Raised when a known command receives unusable parameters."""


class UnsupportedCommandError(ValueError):
    def __init__(self, name: Any) -> None:
        super().__init__(f"Unsupported command: {name}.")
        self.name = name


class _CommandModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "_CommandModel":
        return cls.model_validate({})


class SelectTask(_CommandModel):
    name: Literal["select_task"] = "select_task"
    task_id: int | None = None
    pending_ref: int | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "SelectTask":
        return cls.model_validate(dict(params))

    @model_validator(mode="before")
    @classmethod
    def _pick_one_reference(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if "task_id" in data:
            return {"task_id": _positive_int(data.get("task_id"))}
        if "pending_ref" in data:
            return {"pending_ref": _positive_int(data.get("pending_ref"))}
        raise ValueError("Provide either task_id or pending_ref.")

    @property
    def target(self) -> Target:
        if self.task_id is not None:
            return ExistingTarget(self.task_id)
        return PendingTarget(int(self.pending_ref or 0))


class CreateTask(_CommandModel):
    name: Literal["create_task"] = "create_task"
    attrs: dict[str, Any]

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "CreateTask":
        return cls.model_validate({"attrs": select_task_fields(params)})

    @model_validator(mode="after")
    def _require_title(self) -> "CreateTask":
        title = self.attrs.get("title")
        if title is None or not str(title).strip():
            raise ValueError("Creating a task requires at least a title.")
        return self


class UpdateTaskFields(_CommandModel):
    name: Literal["update_task_fields"] = "update_task_fields"
    attrs: dict[str, Any]

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "UpdateTaskFields":
        return cls.model_validate({"attrs": select_task_fields(params)})

    @model_validator(mode="after")
    def _require_fields(self) -> "UpdateTaskFields":
        if not self.attrs:
            raise ValueError("No recognized task fields provided.")
        return self


class DeleteTask(_CommandModel):
    name: Literal["delete_task"] = "delete_task"


class CompleteTask(_CommandModel):
    name: Literal["complete_task"] = "complete_task"


class ExitEditing(_CommandModel):
    name: Literal["exit_editing"] = "exit_editing"


class DiscardAll(_CommandModel):
    name: Literal["discard_all"] = "discard_all"


class CompleteSession(_CommandModel):
    name: Literal["complete_session"] = "complete_session"


class RecordPlan(_CommandModel):
    name: Literal["record_plan"] = "record_plan"
    plan: str
    steps: list[str] = Field(default_factory=list)

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "RecordPlan":
        return cls.model_validate({"plan": params.get("plan"), "steps": params.get("steps")})

    @model_validator(mode="before")
    @classmethod
    def _normalize_plan(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        plan = data.get("plan")
        steps = _normalize_steps(data.get("steps"))
        plan_text = plan.strip() if isinstance(plan, str) else ""
        if not plan_text and not steps:
            raise ValueError("Provide a non-empty plan summary or at least one textual step.")
        if steps is None:
            raise ValueError("Steps must be provided as a list of strings.")
        return {"plan": plan_text or " | ".join(steps), "steps": steps}


Command = (
    SelectTask
    | CreateTask
    | UpdateTaskFields
    | DeleteTask
    | CompleteTask
    | ExitEditing
    | DiscardAll
    | RecordPlan
    | CompleteSession
)

_COMMAND_MODELS: dict[str, type[_CommandModel]] = {
    "select_task": SelectTask,
    "create_task": CreateTask,
    "update_task_fields": UpdateTaskFields,
    "delete_task": DeleteTask,
    "complete_task": CompleteTask,
    "exit_editing": ExitEditing,
    "discard_all": DiscardAll,
    "record_plan": RecordPlan,
    "complete_session": CompleteSession,
}


def parse_command(name: str, params: Mapping[str, Any] | None = None) -> Command:
    model = _COMMAND_MODELS.get(str(name))
    if model is None:
        raise UnsupportedCommandError(name)
    try:
        return model.from_params(dict(params or {}))
    except ValidationError as exc:
        raise CommandValidationError(_first_error_message(exc)) from exc


def select_task_fields(params: Mapping[str, Any]) -> dict[str, Any]:
    """Keep whitelisted task attributes; unknown keys are dropped."""
    return {str(key): value for key, value in params.items() if str(key) in TASK_FIELDS}


def _positive_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("Expected a positive integer value.")
    if isinstance(value, int) and value > 0:
        return value
    if isinstance(value, str) and value.strip().isdigit() and int(value.strip()) > 0:
        return int(value.strip())
    raise ValueError("Expected a positive integer value.")


def _normalize_steps(steps: Any) -> list[str] | None:
    if steps is None:
        return []
    if isinstance(steps, str):
        raw_items: list[Any] = _STEP_SPLIT.split(steps)
    elif isinstance(steps, (list, tuple)):
        raw_items = list(steps)
    else:
        return None
    return [item.strip() for item in raw_items if isinstance(item, str) and item.strip()]


def _first_error_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    ctx = first.get("ctx") or {}
    cause = ctx.get("error")
    if isinstance(cause, BaseException):
        return str(cause)
    location = ".".join(str(part) for part in first.get("loc") or ())
    message = str(first.get("msg") or "is invalid")
    return f"{location}: {message}" if location else message


# Command catalog advertised to the model per state.


@dataclass(frozen=True)
class CommandSpec:
    name: str
    description: str
    params: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "params": dict(self.params)}


_PLAN_PARAMS = {
    "plan": "string summary (required if no steps)",
    "steps": "optional list of strings detailing each step",
}

_FIELD_PARAMS = {
    "description": "optional string",
    "due_date": "optional ISO8601 date",
    "urgency": "optional: low|normal|high|critical",
    "status": "optional: todo|in_progress",
    "recurrence": "optional: none|daily|weekly|monthly|yearly",
    "prerequisite_ids": "optional list of task ids",
}


def awaiting_commands(has_pending: bool) -> list[CommandSpec]:
    return [
        CommandSpec(
            name="record_plan",
            params=dict(_PLAN_PARAMS),
            description=(
                "Document a step-by-step plan whenever fulfilling the request will take "
                "multiple commands."
            ),
        ),
        CommandSpec(
            name="select_task",
            params={
                "task_id": "integer id of an existing open task",
                "pending_ref": "integer pending_ref returned by create_task (optional)",
            },
            description="Focus on a task before issuing update, delete, or complete commands.",
        ),
        CommandSpec(
            name="create_task",
            params={"title": "required string", **_FIELD_PARAMS},
            description="Stage a brand new task. Returns a pending_ref for further edits.",
        ),
        CommandSpec(
            name="discard_all",
            description="Remove every staged operation and reset the session.",
        ),
        _commit_command(has_pending),
    ]


def editing_commands(has_pending: bool) -> list[CommandSpec]:
    return [
        CommandSpec(
            name="record_plan",
            params=dict(_PLAN_PARAMS),
            description=(
                "Capture or refine your multi-step plan before issuing further edits or "
                "deletions."
            ),
        ),
        CommandSpec(
            name="update_task_fields",
            params={"title": "optional string", **_FIELD_PARAMS},
            description="Merge the supplied fields into the staged update for the focused task.",
        ),
        CommandSpec(
            name="complete_task",
            description="Mark the focused task to be completed when the session commits.",
        ),
        CommandSpec(
            name="delete_task",
            description="Delete the focused task when the session commits.",
        ),
        CommandSpec(
            name="exit_editing",
            description="Return to awaiting commands while keeping staged changes.",
        ),
        CommandSpec(
            name="discard_all",
            description="Drop every staged change and reset the session.",
        ),
        _commit_command(has_pending),
    ]


def _commit_command(has_pending: bool) -> CommandSpec:
    if has_pending:
        description = (
            "Apply all staged operations in a single transaction and finish. "
            "This must always be your final command."
        )
    else:
        description = (
            "Close the session without committing any changes. "
            "This must be the final command you issue."
        )
    return CommandSpec(name="complete_session", description=description)

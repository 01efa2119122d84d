from __future__ import annotations

import json
from typing import Any

from smart_todo.agent.session.rendering import SessionResponse
from smart_todo.tasks.models import RECURRENCE_VALUES, STATUS_VALUES, URGENCY_VALUES

SYSTEM_PROMPT = """\
You manage smart_todo tasks strictly through the provided function-call tools. Follow these rules:
1. Every reply MUST be exactly one function call defined in `available_commands`.
2. Read the state snapshot each turn; `available_commands` is the source of truth for what you can call.
3. To change, complete, or delete an existing task you MUST call `select_task` first. Once a task is selected, the editing commands (update, complete, delete, exit_editing) become available. If you are not editing, those commands are unavailable.
4. New tasks are staged with `create_task`; existing tasks accumulate staged changes until you `complete_session` (commit) or `discard_all`.
5. Whenever solving the request requires more than one command, call `record_plan` first to capture the steps you intend to take.
6. `complete_session` MUST be the final command you ever issue in a session; after calling it you may not send any further commands.
"""

FAILED_COMMAND_TEXT = "The previous command failed. Review the error details and try another command."
FOLLOWUP_TEXT = "State updated. Provide the next command."

_FIELD_ENUMS = {
    "status": STATUS_VALUES,
    "urgency": URGENCY_VALUES,
    "recurrence": RECURRENCE_VALUES,
}
_FIELD_COMMANDS = {"create_task", "update_task_fields"}


def build_system_prompt(preferences: str | None = None) -> str:
    if isinstance(preferences, str) and preferences.strip():
        return f"{SYSTEM_PROMPT}\n\nUser preferences:\n{preferences.strip()}"
    return SYSTEM_PROMPT


def initial_user_message(request_text: str, response: SessionResponse) -> dict[str, Any]:
    return {
        "role": "user",
        "content": f"User request: {request_text}\n{render_state_text(response)}",
    }


def followup_user_message(response: SessionResponse) -> dict[str, Any]:
    return {"role": "user", "content": f"{FOLLOWUP_TEXT}\n{render_state_text(response)}"}


def error_user_message(response: SessionResponse) -> dict[str, Any]:
    return {"role": "user", "content": f"{FAILED_COMMAND_TEXT}\n{render_state_text(response)}"}


def tool_result_message(
    *,
    call_id: str,
    name: str,
    params: dict[str, Any],
    response: SessionResponse,
    status: str,
    style: str = "openai",
) -> dict[str, Any]:
    """Tool-role turn carrying the command outcome and a state snapshot.

    OpenAI-compatible endpoints correlate results through ``tool_call_id``;
    Ollama matches them by tool ``name``.
    """
    content = json.dumps(
        {"status": status, "state": render_state_snapshot(response), "echo": params},
        ensure_ascii=False,
        default=str,
    )
    if style == "ollama":
        return {"role": "tool", "name": name, "content": content}
    return {"role": "tool", "tool_call_id": call_id, "content": content}


def render_state_snapshot(response: SessionResponse) -> dict[str, Any]:
    return {
        "message": response.message,
        "state": response.state,
        "error": response.error,
        "open_tasks": response.open_tasks,
        "pending_operations": response.pending_operations,
        "plan_notes": response.plan_notes,
        "available_commands": response.available_commands,
    }


def render_state_text(response: SessionResponse) -> str:
    lines = [
        f"Session message: {response.message}",
        f"State: {response.state}",
        f"Error?: {str(response.error).lower()}",
        "Open tasks:",
        _render_tasks(response.open_tasks),
        "Pending operations:",
        _render_ops(response.pending_operations),
        "Recorded plans:",
        _render_plan_notes(response.plan_notes),
        "Available commands:",
        _render_commands(response.available_commands),
    ]
    return "\n".join(lines)


def tool_declarations(response: SessionResponse) -> list[dict[str, Any]]:
    """OpenAI-style function tools for the commands the response advertises."""
    return [
        {
            "type": "function",
            "function": {
                "name": str(command.get("name")),
                "description": str(command.get("description") or ""),
                "parameters": _parameters_schema(
                    str(command.get("name")),
                    command.get("params") or {},
                ),
            },
        }
        for command in response.available_commands
    ]


def _parameters_schema(command_name: str, params: dict[str, str]) -> dict[str, Any]:
    properties: dict[str, Any] = {}
    required: list[str] = []
    for key, description in params.items():
        schema = _parameter_schema(command_name, key)
        schema["description"] = description
        properties[key] = schema
        if "required" in description.lower() and "required if" not in description.lower():
            required.append(key)
    return {"type": "object", "properties": properties, "required": required}


def _parameter_schema(command_name: str, key: str) -> dict[str, Any]:
    if command_name == "record_plan" and key == "steps":
        return {"type": "array", "items": {"type": "string"}}
    if key in ("task_id", "pending_ref"):
        return {"type": "integer"}
    if key == "prerequisite_ids":
        return {"type": "array", "items": {"type": "integer"}}
    if command_name in _FIELD_COMMANDS and key in _FIELD_ENUMS:
        return {"type": "string", "enum": list(_FIELD_ENUMS[key])}
    if key == "due_date":
        return {"type": "string", "format": "date"}
    return {"type": "string"}


def _render_tasks(tasks: list[dict[str, Any]]) -> str:
    if not tasks:
        return "- none"
    lines = []
    for task in tasks:
        data = {key: value for key, value in task.items() if key not in ("target", "pending")}
        lines.append(f"- {task.get('target')}: {_json(data)}")
    return "\n".join(lines)


def _render_ops(ops: list[dict[str, Any]]) -> str:
    if not ops:
        return "- none"
    return "\n".join(
        f"- {op.get('type')} -> {op.get('target')} {_json(op.get('params') or {})}" for op in ops
    )


def _render_plan_notes(notes: list[dict[str, Any]]) -> str:
    if not notes:
        return "- none"
    lines = []
    for note in notes:
        plan = str(note.get("plan") or "")
        steps_text = " | ".join(str(step) for step in note.get("steps") or [])
        if plan and steps_text:
            lines.append(f"- {plan} (steps: {steps_text})")
        elif plan:
            lines.append(f"- {plan}")
        elif steps_text:
            lines.append(f"- steps: {steps_text}")
        else:
            lines.append("- (empty plan)")
    return "\n".join(lines)


def _render_commands(commands: list[dict[str, Any]]) -> str:
    if not commands:
        return "- none"
    return "\n".join(
        f"- {command.get('name')}: {command.get('description')} | params: {_json(command.get('params') or {})}"
        for command in commands
    )


def _json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)

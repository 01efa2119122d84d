from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Literal

from smart_todo.agent.session.rendering import SessionResponse
from smart_todo.agent.session.state_machine import Session
from smart_todo.config import settings

RunErrorKind = Literal[
    "max_rounds",
    "max_errors",
    "transport",
    "no_function_call",
    "invalid_arguments",
    "unsupported_command",
]

ModelCall = Callable[..., dict[str, Any]]


@dataclass(frozen=True)
class RunOptions:
    """Budgets and collaborators for one orchestration run.

    ``model_call`` receives ``messages``, ``tools`` and ``timeout`` (seconds)
    keyword arguments and returns a provider reply dict with ``tool_calls``.
    When omitted, the configured provider client is used.
    """

    max_rounds: int = field(default_factory=settings.get_max_rounds)
    max_errors: int = field(default_factory=settings.get_max_errors)
    receive_timeout_ms: int = field(default_factory=settings.get_receive_timeout_ms)
    model_call: ModelCall | None = None
    system_preferences: str | None = field(default_factory=settings.get_prompt_preferences)
    tool_result_style: Literal["openai", "ollama"] | None = None


@dataclass(frozen=True)
class ExecutedCommand:
    name: str
    params: dict[str, Any]
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "params": dict(self.params), "message": self.message}


@dataclass(frozen=True)
class SessionRunResult:
    executed: list[ExecutedCommand]
    response: SessionResponse
    session: Session
    history: list[dict[str, Any]]
    rounds: int


@dataclass(frozen=True)
class RunFailureContext:
    session: Session
    response: SessionResponse
    executed: list[ExecutedCommand]
    history: list[dict[str, Any]]
    errors: int
    rounds: int
    extra: dict[str, Any] = field(default_factory=dict)


class SessionRunError(Exception):
    def __init__(self, kind: RunErrorKind, context: RunFailureContext) -> None:
        detail = context.extra.get("command_name") or context.extra.get("cause")
        message = f"session run failed: {kind}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.kind = kind
        self.context = context

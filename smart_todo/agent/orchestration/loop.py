"""Bounded request/apply cycle between a model endpoint and a task session.

Each round renders the latest session response, asks the model for exactly
one tool call, applies it and feeds the outcome back. The loop stops when the
session completes, when a budget runs out, or on a protocol or transport
failure.
"""

from __future__ import annotations

import json
import time
from typing import Any

import requests

from smart_todo.agent.cognition.providers.factory import build_llm_client
from smart_todo.agent.observability.log_manager import get_component_logger, get_log_manager
from smart_todo.agent.orchestration.prompts import (
    build_system_prompt,
    error_user_message,
    followup_user_message,
    initial_user_message,
    tool_declarations,
    tool_result_message,
)
from smart_todo.agent.orchestration.types import (
    ExecutedCommand,
    ModelCall,
    RunErrorKind,
    RunFailureContext,
    RunOptions,
    SessionRunError,
    SessionRunResult,
)
from smart_todo.agent.session.rendering import SessionResponse
from smart_todo.agent.session.state_machine import Session, handle_command, start_session
from smart_todo.tasks.store import SqliteTaskStore, TaskStore

logger = get_component_logger("orchestration.loop")
_LOG = get_log_manager()


class _RunState:
    def __init__(self, session: Session, response: SessionResponse, history: list[dict[str, Any]]) -> None:
        self.session = session
        self.response = response
        self.history = history
        self.executed: list[ExecutedCommand] = []
        self.errors = 0
        self.rounds = 0

    def failure(self, kind: RunErrorKind, **extra: Any) -> SessionRunError:
        context = RunFailureContext(
            session=self.session,
            response=self.response,
            executed=list(self.executed),
            history=list(self.history),
            errors=self.errors,
            rounds=self.rounds,
            extra={key: value for key, value in extra.items() if value is not None},
        )
        _LOG.emit(
            level="error",
            event="orchestration.failed",
            component="orchestration",
            session_id=self.session.session_id,
            scope=self.session.scope,
            state=self.session.rendered_state,
            round_index=self.rounds,
            error_code=kind,
            payload={"errors": self.errors, **{k: str(v) for k, v in context.extra.items()}},
        )
        return SessionRunError(kind, context)


def run(
    scope: str,
    request_text: str,
    options: RunOptions | None = None,
    *,
    store: TaskStore | None = None,
) -> SessionRunResult:
    """Drive one session to completion for ``request_text``.

    Raises ``SessionRunError`` carrying the last session snapshot when the
    run cannot finish.
    """
    options = options or RunOptions()
    model_call, style = _resolve_model_call(options)
    session, response = start_session(scope, store if store is not None else SqliteTaskStore())
    ctx = _RunState(session, response, [initial_user_message(request_text, response)])
    system_prompt = build_system_prompt(options.system_preferences)
    timeout_seconds = options.receive_timeout_ms / 1000.0

    while True:
        if ctx.session.is_terminal:
            _LOG.emit(
                event="orchestration.finished",
                component="orchestration",
                session_id=ctx.session.session_id,
                scope=scope,
                state=ctx.session.rendered_state,
                round_index=ctx.rounds,
                message=ctx.response.message,
                payload={"executed": len(ctx.executed), "errors": ctx.errors},
            )
            return SessionRunResult(
                executed=list(ctx.executed),
                response=ctx.response,
                session=ctx.session,
                history=list(ctx.history),
                rounds=ctx.rounds,
            )
        if ctx.rounds >= options.max_rounds:
            raise ctx.failure("max_rounds")
        if ctx.errors >= options.max_errors:
            raise ctx.failure("max_errors")

        messages = [{"role": "system", "content": system_prompt}, *ctx.history]
        started = time.monotonic()
        try:
            reply = model_call(
                messages=messages,
                tools=tool_declarations(ctx.response),
                timeout=timeout_seconds,
            )
        except (requests.RequestException, OSError, ValueError) as exc:
            # OSError covers TimeoutError and ConnectionError from injected callables.
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            logger.exception(
                "model call failed round=%s",
                ctx.rounds,
                exc_info=exc,
                extra={
                    "event": "orchestration.model_call.failed",
                    "session_id": ctx.session.session_id,
                    "scope": scope,
                    "error_code": "transport",
                },
            )
            raise ctx.failure("transport", cause=exc, status_code=status_code) from exc
        latency_ms = int((time.monotonic() - started) * 1000)

        call = _first_tool_call(reply)
        if call is None:
            raise ctx.failure("no_function_call", content=_reply_content(reply))
        name = str(call.get("name") or "").strip()
        params = call.get("arguments")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise ctx.failure("invalid_arguments", command_name=name, arguments=params)
        if name not in ctx.response.command_names:
            raise ctx.failure("unsupported_command", command_name=name)

        call_id = str(call.get("id") or f"call-{ctx.rounds + 1}")
        outcome = handle_command(ctx.session, name, params)
        ctx.rounds += 1
        ctx.session, ctx.response = outcome.session, outcome.response
        ctx.history.append(_assistant_turn(reply, call_id, name, params, style))
        logger.info(
            "orchestration round round=%s command=%s ok=%s",
            ctx.rounds,
            name,
            outcome.ok,
            extra={
                "event": "orchestration.round",
                "session_id": ctx.session.session_id,
                "scope": scope,
                "state": ctx.session.rendered_state,
                "latency_ms": latency_ms,
            },
        )
        if outcome.ok:
            status = "completed" if ctx.session.is_terminal else "ok"
            ctx.history.append(
                tool_result_message(
                    call_id=call_id,
                    name=name,
                    params=params,
                    response=outcome.response,
                    status=status,
                    style=style,
                )
            )
            if not ctx.session.is_terminal:
                ctx.history.append(followup_user_message(outcome.response))
            ctx.executed.append(
                ExecutedCommand(name=name, params=dict(params), message=outcome.response.message)
            )
            ctx.errors = 0
            continue
        ctx.history.append(
            tool_result_message(
                call_id=call_id,
                name=name,
                params=params,
                response=outcome.response,
                status="error",
                style=style,
            )
        )
        ctx.history.append(error_user_message(outcome.response))
        ctx.errors += 1
        if ctx.errors >= options.max_errors:
            raise ctx.failure("max_errors")


def _resolve_model_call(options: RunOptions) -> tuple[ModelCall, str]:
    if options.model_call is not None:
        return options.model_call, options.tool_result_style or "openai"
    client = build_llm_client()
    style = options.tool_result_style or getattr(client, "tool_result_message_style", "openai")

    def _call(*, messages: list[dict[str, Any]], tools: list[dict[str, Any]], timeout: float) -> dict[str, Any]:
        return client.complete_with_tools(
            messages=messages,
            tools=tools,
            tool_choice="required",
            timeout=timeout,
        )

    return _call, style


def _first_tool_call(reply: Any) -> dict[str, Any] | None:
    if not isinstance(reply, dict):
        return None
    tool_calls = reply.get("tool_calls")
    if not isinstance(tool_calls, list):
        return None
    for item in tool_calls:
        if isinstance(item, dict) and str(item.get("name") or "").strip():
            return item
    return None


def _reply_content(reply: Any) -> str | None:
    if isinstance(reply, dict) and isinstance(reply.get("content"), str):
        return reply["content"] or None
    return None


def _assistant_turn(
    reply: Any,
    call_id: str,
    name: str,
    params: dict[str, Any],
    style: str,
) -> dict[str, Any]:
    arguments: Any = params if style == "ollama" else json.dumps(params, ensure_ascii=False)
    return {
        "role": "assistant",
        "content": _reply_content(reply) or "",
        "tool_calls": [
            {
                "id": call_id,
                "type": "function",
                "function": {"name": name, "arguments": arguments},
            }
        ],
    }

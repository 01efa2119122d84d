from __future__ import annotations

import json
import logging
import re
import traceback
from typing import Any

_DEFAULT_LOGGER_NAME = "smart_todo.agent.observability"


class LogManager:
    """Centralized structured logging for session and orchestration events."""

    def __init__(self, logger_name: str = _DEFAULT_LOGGER_NAME) -> None:
        self._logger = logging.getLogger(logger_name)

    def emit(
        self,
        *,
        level: str = "info",
        event: str,
        message: str | None = None,
        component: str | None = None,
        session_id: str | None = None,
        scope: str | None = None,
        state: str | None = None,
        command: str | None = None,
        round_index: int | None = None,
        error_code: str | None = None,
        latency_ms: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        normalized_level = str(level or "info").lower()
        event_payload: dict[str, Any] = {
            "level": normalized_level,
            "event": str(event or "unknown_event"),
            "component": component,
            "session_id": session_id,
            "scope": scope,
            "state": state,
            "command": command,
            "round": round_index,
            "error_code": error_code,
            "latency_ms": latency_ms,
            "message": message,
        }
        if isinstance(payload, dict) and payload:
            event_payload.update(payload)
        self._log_text_line(level=normalized_level, payload=event_payload)

    def emit_exception(
        self,
        *,
        event: str,
        exc: BaseException,
        message: str | None = None,
        component: str | None = None,
        session_id: str | None = None,
        scope: str | None = None,
        state: str | None = None,
        command: str | None = None,
        round_index: int | None = None,
        error_code: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        merged_payload = dict(payload or {})
        merged_payload.update(
            {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
                "stack_excerpt": "".join(
                    traceback.format_exception(type(exc), exc, exc.__traceback__, limit=10)
                ),
            }
        )
        self.emit(
            level="error",
            event=event,
            message=message or str(exc),
            component=component,
            session_id=session_id,
            scope=scope,
            state=state,
            command=command,
            round_index=round_index,
            error_code=error_code or type(exc).__name__,
            payload=merged_payload,
        )

    def _log_text_line(self, *, level: str, payload: dict[str, Any]) -> None:
        compact = {key: value for key, value in payload.items() if value is not None}
        line = json.dumps(compact, ensure_ascii=False, separators=(",", ":"), default=str)
        if level == "debug":
            self._logger.debug("event %s", line)
        elif level in {"warning", "warn"}:
            self._logger.warning("event %s", line)
        elif level == "error":
            self._logger.error("event %s", line)
        else:
            self._logger.info("event %s", line)


class StructuredLoggerAdapter:
    """Drop-in logger-style adapter that writes via LogManager."""

    def __init__(self, *, manager: LogManager, component: str) -> None:
        self._manager = manager
        self._component = component

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(level="info", msg=msg, args=args, kwargs=kwargs)

    def exception(self, msg: str, *args: Any, exc_info: BaseException, **kwargs: Any) -> None:
        text = self._format(msg, args)
        context = self._extract_context(text=text, kwargs=kwargs)
        self._manager.emit_exception(
            event=context["event"],
            exc=exc_info,
            component=self._component,
            session_id=context["session_id"],
            scope=context["scope"],
            state=context["state"],
            command=context["command"],
            round_index=context["round"],
            error_code=context["error_code"],
            message=text,
            payload=context["payload"],
        )

    def _emit(self, *, level: str, msg: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        text = self._format(msg, args)
        context = self._extract_context(text=text, kwargs=kwargs)
        self._manager.emit(
            level=level,
            event=context["event"],
            component=self._component,
            session_id=context["session_id"],
            scope=context["scope"],
            state=context["state"],
            command=context["command"],
            round_index=context["round"],
            error_code=context["error_code"],
            latency_ms=context["latency_ms"],
            message=text,
            payload=context["payload"],
        )

    @staticmethod
    def _format(msg: str, args: tuple[Any, ...]) -> str:
        if not args:
            return str(msg)
        try:
            return str(msg) % args
        except (TypeError, ValueError):
            arg_text = ", ".join(str(v) for v in args)
            return f"{msg} | args={arg_text}"

    def _extract_context(self, *, text: str, kwargs: dict[str, Any]) -> dict[str, Any]:
        extra = kwargs.get("extra")
        extra_map = extra if isinstance(extra, dict) else {}
        kv_from_text = _extract_kv_pairs(text)
        merged: dict[str, Any] = {**kv_from_text, **extra_map}
        event = str(merged.get("event") or f"{self._component}.log")
        return {
            "event": event,
            "session_id": _as_text_or_none(merged.get("session_id")),
            "scope": _as_text_or_none(merged.get("scope")),
            "state": _as_text_or_none(merged.get("state")),
            "command": _as_text_or_none(merged.get("command")),
            "round": _as_int_or_none(merged.get("round")),
            "error_code": _as_text_or_none(merged.get("error_code")),
            "latency_ms": _as_int_or_none(merged.get("latency_ms")),
            "payload": {"parsed_fields": merged or None},
        }


_DEFAULT_MANAGER: LogManager | None = None


def get_log_manager() -> LogManager:
    global _DEFAULT_MANAGER
    if _DEFAULT_MANAGER is None:
        _DEFAULT_MANAGER = LogManager()
    return _DEFAULT_MANAGER


def get_component_logger(component: str) -> StructuredLoggerAdapter:
    return StructuredLoggerAdapter(manager=get_log_manager(), component=component)


_KEY_VALUE_PATTERN = re.compile(r"([A-Za-z_][A-Za-z0-9_.-]*)=([^\s]+)")


def _extract_kv_pairs(text: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for key, raw_value in _KEY_VALUE_PATTERN.findall(str(text or "")):
        value = raw_value.strip().strip(",")
        if value.startswith(("'", '"')) and value.endswith(("'", '"')) and len(value) >= 2:
            value = value[1:-1]
        result[key] = value
    return result


def _as_text_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_int_or_none(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None

from __future__ import annotations

import os

DEFAULT_MAX_ROUNDS = 20
DEFAULT_MAX_ERRORS = 3
DEFAULT_RECEIVE_TIMEOUT_MS = 10 * 60 * 1000
DEFAULT_LLM_PROVIDER = "openai"
DEFAULT_LOG_LEVEL = "INFO"
SUPPORTED_LLM_PROVIDERS = {"openai", "ollama"}


def get_max_rounds() -> int:
    return _positive_int_env("SMART_TODO_MAX_ROUNDS", DEFAULT_MAX_ROUNDS)


def get_max_errors() -> int:
    return _positive_int_env("SMART_TODO_MAX_ERRORS", DEFAULT_MAX_ERRORS)


def get_receive_timeout_ms() -> int:
    return _positive_int_env("SMART_TODO_LLM_RECEIVE_TIMEOUT_MS", DEFAULT_RECEIVE_TIMEOUT_MS)


def get_llm_provider() -> str:
    configured = str(os.getenv("SMART_TODO_LLM_PROVIDER") or "").strip().lower()
    if configured in SUPPORTED_LLM_PROVIDERS:
        return configured
    return DEFAULT_LLM_PROVIDER


def get_prompt_preferences() -> str | None:
    configured = os.getenv("SMART_TODO_PROMPT_PREFERENCES")
    if isinstance(configured, str) and configured.strip():
        return configured.strip()
    return None


def get_log_level() -> str:
    configured = os.getenv("SMART_TODO_LOG_LEVEL")
    level = (
        configured.strip().upper()
        if isinstance(configured, str) and configured.strip()
        else DEFAULT_LOG_LEVEL
    )
    if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        return DEFAULT_LOG_LEVEL
    return level


def _positive_int_env(name: str, default: int) -> int:
    configured = os.getenv(name)
    if configured is None:
        return default
    try:
        value = int(configured)
    except (TypeError, ValueError):
        return default
    if value <= 0:
        return default
    return value

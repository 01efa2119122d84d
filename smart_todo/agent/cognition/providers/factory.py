from __future__ import annotations

import os
from typing import Any

from smart_todo.agent.cognition.providers.ollama import OllamaClient
from smart_todo.agent.cognition.providers.openai import OpenAIClient
from smart_todo.config import settings


def build_llm_client() -> Any:
    provider = settings.get_llm_provider()
    if provider == "ollama":
        return _build_ollama_client()
    return _build_openai_client()


def _build_ollama_client() -> OllamaClient:
    base_url = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    model = os.getenv("LOCAL_LLM_MODEL", "mistral:7b-instruct")
    return OllamaClient(
        base_url=base_url,
        model=model,
        timeout=_default_timeout_seconds(),
    )


def _build_openai_client() -> OpenAIClient:
    base_url = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    model = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    return OpenAIClient(
        base_url=base_url,
        model=model,
        api_key_env=os.getenv("OPENAI_API_KEY_ENV", "OPENAI_API_KEY"),
        timeout=_default_timeout_seconds(),
    )


def _default_timeout_seconds() -> float:
    return settings.get_receive_timeout_ms() / 1000.0

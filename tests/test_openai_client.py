from __future__ import annotations

import json
from typing import Any

import pytest
import requests

from smart_todo.agent.cognition.providers import ollama as ollama_module
from smart_todo.agent.cognition.providers import openai as openai_module
from smart_todo.agent.cognition.providers.ollama import OllamaClient
from smart_todo.agent.cognition.providers.openai import OpenAIClient, decode_tool_arguments


class _FakeResponse:
    def __init__(self, body: Any, status_code: int = 200) -> None:
        self._body = body
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def json(self) -> Any:
        return self._body


class _FakePost:
    def __init__(self, response: _FakeResponse) -> None:
        self.response = response
        self.calls: list[dict[str, Any]] = []

    def __call__(self, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append({"url": url, **kwargs})
        return self.response


def _openai_body(arguments: Any) -> dict[str, Any]:
    return {
        "choices": [
            {
                "message": {
                    "content": None,
                    "tool_calls": [
                        {
                            "id": "call_abc",
                            "type": "function",
                            "function": {"name": "create_task", "arguments": arguments},
                        }
                    ],
                }
            }
        ]
    }


def test_openai_client_posts_required_tool_choice(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    fake = _FakePost(_FakeResponse(_openai_body('{"title": "Write tests"}')))
    monkeypatch.setattr(openai_module.requests, "post", fake)
    client = OpenAIClient(base_url="http://llm.local/v1", model="gpt-test", timeout=30)

    result = client.complete_with_tools(
        messages=[{"role": "user", "content": "hi"}],
        tools=[{"type": "function", "function": {"name": "create_task"}}],
        timeout=1.5,
    )

    [call] = fake.calls
    assert call["url"] == "http://llm.local/v1/chat/completions"
    assert call["headers"] == {"Authorization": "Bearer sk-test"}
    assert call["timeout"] == 1.5
    assert call["json"]["tool_choice"] == "required"
    assert call["json"]["model"] == "gpt-test"
    assert result["content"] == ""
    assert result["tool_calls"] == [
        {"id": "call_abc", "name": "create_task", "arguments": {"title": "Write tests"}}
    ]
    assistant_call = result["assistant_message"]["tool_calls"][0]
    assert json.loads(assistant_call["function"]["arguments"]) == {"title": "Write tests"}


def test_openai_client_uses_default_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    fake = _FakePost(_FakeResponse({"choices": []}))
    monkeypatch.setattr(openai_module.requests, "post", fake)

    result = OpenAIClient(timeout=42).complete_with_tools(messages=[], tools=[])

    assert fake.calls[0]["timeout"] == 42
    assert result == {"content": "", "tool_calls": []}


def test_openai_client_requires_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_KEY", raising=False)
    client = OpenAIClient(api_key_env="MISSING_KEY")

    with pytest.raises(ValueError, match="Missing API key in MISSING_KEY."):
        client.complete_with_tools(messages=[], tools=[])


def test_openai_client_raises_http_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(openai_module.requests, "post", _FakePost(_FakeResponse({}, status_code=503)))

    with pytest.raises(requests.HTTPError) as excinfo:
        OpenAIClient().complete_with_tools(messages=[], tools=[])

    assert excinfo.value.response.status_code == 503


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ({"title": "x"}, {"title": "x"}),
        (None, {}),
        ("   ", {}),
        ('{"task_id": 3}', {"task_id": 3}),
        ("[1, 2]", [1, 2]),
        ("not json", "not json"),
    ],
)
def test_decode_tool_arguments(raw: Any, expected: Any) -> None:
    assert decode_tool_arguments(raw) == expected


def test_ollama_client_parses_tool_calls(monkeypatch: pytest.MonkeyPatch) -> None:
    body = {
        "message": {
            "content": "",
            "tool_calls": [{"function": {"name": "select_task", "arguments": {"task_id": 7}}}],
        }
    }
    fake = _FakePost(_FakeResponse(body))
    monkeypatch.setattr(ollama_module.requests, "post", fake)
    client = OllamaClient(base_url="http://ollama.local", model="llama3")

    result = client.complete_with_tools(messages=[], tools=[], timeout=3.0)

    [call] = fake.calls
    assert call["url"] == "http://ollama.local/api/chat"
    assert call["json"]["stream"] is False
    assert call["timeout"] == 3.0
    assert result["tool_calls"] == [
        {"id": "ollama-call-0", "name": "select_task", "arguments": {"task_id": 7}}
    ]

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest

from querytriage.config import Settings
from querytriage.errors import (
    AIResponseParseError,
    EmptyAIResponseError,
    LLMRequestError,
    LLMTimeoutError,
    LLMUnavailableError,
)
from querytriage.llm import JSONChatClient, parse_ai_json

_PAYLOAD = {
    "queries": [
        {"query": "автошкола уфа", "category": "target", "reason": "коммерческий", "minusWords": []}
    ],
    "suggestedMinusWords": [],
}


def test_fenced_json_parses_to_same_object_as_plain_json() -> None:
    inner = json.dumps(_PAYLOAD, ensure_ascii=False)

    assert parse_ai_json(f"```json\n{inner}\n```") == parse_ai_json(inner)
    assert parse_ai_json(f"```\n{inner}\n```") == _PAYLOAD


def test_malformed_json_is_fatal() -> None:
    with pytest.raises(AIResponseParseError):
        parse_ai_json('Here you go: {"queries": []}')


def _ollama_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "chat_backend": "ollama",
        "ollama_base_url": "http://ollama.test",
        "ollama_model": "llama3",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.mark.asyncio
async def test_ollama_backend_posts_chat_request() -> None:
    captured: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"message": {"content": json.dumps(_PAYLOAD)}})

    client = JSONChatClient(_ollama_settings(), transport=httpx.MockTransport(handler))

    result = await client.complete_json("classify")

    assert result == _PAYLOAD
    assert captured["url"] == "http://ollama.test/api/chat"
    assert captured["body"]["format"] == "json"
    assert captured["body"]["stream"] is False
    assert captured["body"]["messages"][-1] == {"role": "user", "content": "classify"}


@pytest.mark.asyncio
async def test_vllm_backend_sends_bearer_token() -> None:
    captured: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"choices": [{"message": {"content": '{"minusWords": []}'}}]})

    settings = Settings(
        chat_backend="vllm",
        vllm_base_url="http://vllm.test/v1",
        vllm_model="mock-chat",
        vllm_api_key="secret",
    )
    client = JSONChatClient(settings, transport=httpx.MockTransport(handler))

    assert await client.complete_json("words") == {"minusWords": []}
    assert captured["url"] == "http://vllm.test/v1/chat/completions"
    assert captured["auth"] == "Bearer secret"


@pytest.mark.asyncio
async def test_http_error_carries_upstream_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="model is loading")

    client = JSONChatClient(_ollama_settings(), transport=httpx.MockTransport(handler))

    with pytest.raises(LLMRequestError, match="model is loading"):
        await client.complete_json("classify")


@pytest.mark.asyncio
async def test_non_json_body_is_a_request_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>Bad Gateway</html>")

    client = JSONChatClient(_ollama_settings(), transport=httpx.MockTransport(handler))

    with pytest.raises(LLMRequestError, match="ollama returned a non-JSON body"):
        await client.complete_json("classify")


@pytest.mark.asyncio
async def test_empty_completion_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    client = JSONChatClient(_ollama_settings())

    async def fake_invoke(messages):
        return "   "

    monkeypatch.setattr(client, "_invoke_backend", fake_invoke)

    with pytest.raises(EmptyAIResponseError, match="empty AI response"):
        await client.complete_json("classify")


@pytest.mark.asyncio
async def test_non_object_json_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    client = JSONChatClient(_ollama_settings())

    async def fake_invoke(messages):
        return "[1, 2, 3]"

    monkeypatch.setattr(client, "_invoke_backend", fake_invoke)

    with pytest.raises(AIResponseParseError):
        await client.complete_json("classify")


@pytest.mark.asyncio
async def test_slow_backend_times_out(monkeypatch: pytest.MonkeyPatch) -> None:
    client = JSONChatClient(_ollama_settings(llm_timeout=0.05))

    async def slow_invoke(messages):
        await asyncio.sleep(5)
        return "{}"

    monkeypatch.setattr(client, "_invoke_backend", slow_invoke)

    with pytest.raises(LLMTimeoutError):
        await client.complete_json("classify")


@pytest.mark.asyncio
async def test_disabled_backend_is_unavailable() -> None:
    client = JSONChatClient(Settings(chat_backend="none"))

    assert not client.enabled
    assert client.disable_reason == "chat-backend-disabled"
    with pytest.raises(LLMUnavailableError):
        await client.complete_json("classify")


def test_openai_backend_requires_key() -> None:
    client = JSONChatClient(Settings(chat_backend="openai", openai_api_key=None))

    assert not client.enabled
    assert client.disable_reason == "missing-openai-key"

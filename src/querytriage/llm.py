"""JSON-only chat completion client used by the AI classification stages."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx
from openai import APITimeoutError, AsyncOpenAI, OpenAIError

from .config import Settings, normalize_vllm_base_url
from .errors import (
    AIResponseParseError,
    EmptyAIResponseError,
    LLMRequestError,
    LLMTimeoutError,
    LLMUnavailableError,
)

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "Ты - эксперт по контекстной рекламе Яндекс.Директ. "
    "Отвечай строго валидным JSON без пояснений и без Markdown."
)


def parse_ai_json(content: str) -> Any:
    """Decode a completion body, tolerating a Markdown code fence around it.

    Only a leading ```json / ``` marker and a trailing ``` marker are removed.
    Anything that still fails to decode raises :class:`AIResponseParseError`.
    """

    cleaned = content.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[len("```json"):]
    elif cleaned.startswith("```"):
        cleaned = cleaned[len("```"):]
    if cleaned.endswith("```"):
        cleaned = cleaned[: -len("```")]
    try:
        return json.loads(cleaned.strip())
    except json.JSONDecodeError as exc:
        raise AIResponseParseError(f"AI response is not valid JSON: {exc.msg} (pos {exc.pos})") from exc


class JSONChatClient:
    """Send one prompt to the configured chat backend and decode the JSON reply.

    The client is built explicitly from :class:`Settings` and handed to the
    classifiers, so tests can stub ``_invoke_backend`` or pass an
    ``httpx`` transport without touching the environment.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        openai_client: AsyncOpenAI | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._timeout = max(0.01, float(settings.llm_timeout))
        self._temperature = settings.llm_temperature
        self._transport = transport
        self._backend: str | None = None
        self._enabled = False
        self._disable_reason: str | None = None
        self._openai_client = openai_client
        self._base_url: str | None = None
        self._model: str | None = None
        reason: str | None = None

        backend = settings.normalized_chat_backend
        if backend == "openai":
            if self._openai_client is None and not settings.openai_api_key:
                reason = "missing-openai-key"
            elif not settings.openai_chat_model:
                reason = "missing-openai-model"
            else:
                if self._openai_client is None:
                    self._openai_client = AsyncOpenAI(
                        api_key=settings.openai_api_key,
                        base_url=settings.openai_base_url or None,
                        timeout=self._timeout,
                        max_retries=0,
                    )
                self._model = settings.openai_chat_model
                self._backend = "openai"
        elif backend == "ollama":
            self._base_url = settings.ollama_base_url.rstrip("/")
            self._model = settings.ollama_model
            if self._base_url and self._model:
                self._backend = "ollama"
            else:
                reason = "missing-ollama-config"
        elif backend == "vllm":
            self._base_url = normalize_vllm_base_url(settings.vllm_base_url)
            self._model = settings.vllm_model
            if self._base_url and self._model:
                self._backend = "vllm"
            else:
                reason = "missing-vllm-config"
        else:
            reason = "chat-backend-disabled"

        if self._backend is not None:
            self._enabled = True
            logger.info(
                "triage.llm.backend_ready backend=%s model=%s url=%s",
                self._backend,
                self._model,
                self._base_url,
            )
        else:
            self._disable_reason = reason
            logger.info("triage.llm.disabled reason=%s", reason)

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def backend(self) -> str | None:
        return self._backend

    @property
    def disable_reason(self) -> str | None:
        return self._disable_reason

    @property
    def timeout(self) -> float:
        return self._timeout

    async def complete_json(self, prompt: str, *, system: str | None = None) -> dict[str, Any]:
        """Run one completion and return the decoded JSON object."""

        content = await self.complete(prompt, system=system)
        payload = parse_ai_json(content)
        if not isinstance(payload, dict):
            raise AIResponseParseError(
                f"AI response must be a JSON object, got {type(payload).__name__}"
            )
        return payload

    async def complete(self, prompt: str, *, system: str | None = None) -> str:
        if not self._enabled:
            raise LLMUnavailableError(
                f"AI backend is not configured ({self._disable_reason or 'disabled'})"
            )
        messages = [
            {"role": "system", "content": system or DEFAULT_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        logger.debug(
            "triage.llm.request backend=%s prompt_chars=%s", self._backend, len(prompt)
        )
        try:
            content = await asyncio.wait_for(self._invoke_backend(messages), timeout=self._timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException, APITimeoutError) as exc:
            logger.warning("triage.llm.timeout backend=%s timeout=%s", self._backend, self._timeout)
            raise LLMTimeoutError(f"AI request timed out after {self._timeout:g}s") from exc
        except httpx.HTTPStatusError as exc:
            body = exc.response.text[:200] if exc.response is not None else ""
            logger.warning(
                "triage.llm.http_error backend=%s status=%s", self._backend, exc.response.status_code
            )
            raise LLMRequestError(
                f"{self._backend} returned HTTP {exc.response.status_code}: {body}".strip()
            ) from exc
        except (httpx.HTTPError, OpenAIError) as exc:
            logger.warning("triage.llm.invoke_failed backend=%s error=%s", self._backend, exc)
            raise LLMRequestError(str(exc) or exc.__class__.__name__) from exc

        if content is None or not str(content).strip():
            raise EmptyAIResponseError()
        logger.debug("triage.llm.response backend=%s text=%s", self._backend, str(content)[:500])
        return str(content)

    async def _invoke_backend(self, messages: list[dict[str, str]]) -> str | None:
        if self._backend == "openai" and self._openai_client is not None:
            response = await self._openai_client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=self._temperature,
                response_format={"type": "json_object"},
            )
            if not response.choices:
                return None
            return response.choices[0].message.content

        if self._backend == "ollama" and self._base_url and self._model:
            payload = {
                "model": self._model,
                "messages": messages,
                "stream": False,
                "format": "json",
                "options": {"temperature": self._temperature},
            }
            data = await self._post_json(f"{self._base_url}/api/chat", payload)
            message = data.get("message") or {}
            return message.get("content") or data.get("response")

        if self._backend == "vllm" and self._base_url and self._model:
            headers: dict[str, str] = {"Content-Type": "application/json"}
            if self._settings.vllm_api_key:
                headers["Authorization"] = f"Bearer {self._settings.vllm_api_key}"
            payload = {
                "model": self._model,
                "messages": messages,
                "stream": False,
                "temperature": self._temperature,
                "response_format": {"type": "json_object"},
            }
            data = await self._post_json(
                f"{self._base_url}/v1/chat/completions", payload, headers=headers
            )
            for choice in data.get("choices") or []:
                message = choice.get("message") or {}
                content = message.get("content")
                if content:
                    return content
            return None

        raise LLMUnavailableError("LLM backend is not correctly configured")

    async def _post_json(
        self,
        url: str,
        payload: dict[str, object],
        *,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            try:
                data = response.json()
            except ValueError as exc:
                raise LLMRequestError(f"{self._backend} returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise LLMRequestError(f"{self._backend} returned an unexpected payload")
        return data


__all__ = ["DEFAULT_SYSTEM_PROMPT", "JSONChatClient", "parse_ai_json"]

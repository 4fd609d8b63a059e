"""Provider client interfaces and the OpenAI-compatible implementation."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, Field

from blueprint_orchestrator.intelligence.errors import GenerationError, TransientGenerationError
from blueprint_orchestrator.intelligence.models import Credentials

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 409, 429, 500, 502, 503, 504}


class GenerationClient(Protocol):
    """Interface for text generation in streaming and JSON-constrained modes."""

    def stream(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        model: str,
        credentials: Credentials,
    ) -> AsyncIterator[str]: ...

    async def generate_json(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        model: str,
        credentials: Credentials,
    ) -> dict[str, Any]: ...


class EmbeddingClient(Protocol):
    """Returns ``None`` for unsupported providers or failures; never raises."""

    async def embed(self, text: str, model: str, credentials: Credentials) -> list[float] | None: ...


class FactCheckResult(BaseModel):
    is_grounded: bool
    sources: list[str] = Field(default_factory=list)


class FactChecker(Protocol):
    async def fact_check(self, claim: str, credentials: Credentials) -> FactCheckResult: ...


class OpenAIGenerationClient:
    """Chat completions client with SSE streaming and bounded retries."""

    def __init__(
        self,
        *,
        base_url: str = "https://api.openai.com/v1",
        timeout_s: float = 60.0,
        max_retries: int = 2,
        backoff_s: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.max_retries = max(0, max_retries)
        self.backoff_s = max(0.0, backoff_s)
        self._transport = transport

    async def stream(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        model: str,
        credentials: Credentials,
    ) -> AsyncIterator[str]:
        payload = {
            "model": model,
            "stream": True,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        url = f"{self._base_url(credentials)}/chat/completions"
        for attempt in range(self.max_retries + 1):
            emitted = False
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout_s, transport=self._transport
                ) as client:
                    async with client.stream(
                        "POST", url, json=payload, headers=_headers(credentials)
                    ) as response:
                        if response.status_code >= 400:
                            body = (await response.aread()).decode("utf-8", errors="replace")
                            raise _status_error(response.status_code, body)
                        async for line in response.aiter_lines():
                            text = _sse_delta(line)
                            if text:
                                emitted = True
                                yield text
                return
            except (TransientGenerationError, httpx.TransportError) as exc:
                # Retrying after partial output would duplicate text.
                if emitted or attempt >= self.max_retries:
                    raise _as_transient(exc) from exc
                await self._backoff(attempt, model, exc)

    async def generate_json(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        model: str,
        credentials: Credentials,
    ) -> dict[str, Any]:
        payload = {
            "model": model,
            "temperature": 0,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        url = f"{self._base_url(credentials)}/chat/completions"
        response_json = await self._post_with_retry(url, payload, credentials, model=model)
        return _extract_json_content(response_json)

    async def _post_with_retry(
        self,
        url: str,
        payload: dict[str, Any],
        credentials: Credentials,
        *,
        model: str,
    ) -> dict[str, Any]:
        for attempt in range(self.max_retries + 1):
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout_s, transport=self._transport
                ) as client:
                    response = await client.post(url, json=payload, headers=_headers(credentials))
                if response.status_code >= 400:
                    raise _status_error(response.status_code, response.text)
                try:
                    return response.json()
                except json.JSONDecodeError as exc:
                    raise GenerationError("Provider returned non-JSON response") from exc
            except (TransientGenerationError, httpx.TransportError) as exc:
                if attempt >= self.max_retries:
                    raise _as_transient(exc) from exc
                await self._backoff(attempt, model, exc)
        raise GenerationError("Provider request failed with unknown error")

    async def _backoff(self, attempt: int, model: str, exc: Exception) -> None:
        logger.warning(
            "Generation request failed attempt=%d/%d model=%s reason=%s",
            attempt + 1,
            self.max_retries + 1,
            model,
            exc,
        )
        if self.backoff_s > 0:
            await asyncio.sleep(self.backoff_s * (2**attempt))

    def _base_url(self, credentials: Credentials) -> str:
        return (credentials.base_url or self.base_url).rstrip("/")


class OpenAIEmbeddingClient:
    """Embeddings endpoint client. Failures are logged and mapped to ``None``."""

    def __init__(
        self,
        *,
        base_url: str = "https://api.openai.com/v1",
        timeout_s: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._transport = transport

    async def embed(self, text: str, model: str, credentials: Credentials) -> list[float] | None:
        if credentials.provider.lower().strip() != "openai":
            return None
        if not credentials.api_key.get_secret_value():
            return None

        url = f"{(credentials.base_url or self.base_url).rstrip('/')}/embeddings"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                response = await client.post(
                    url,
                    json={"model": model, "input": text},
                    headers=_headers(credentials),
                )
            response.raise_for_status()
            rows = response.json().get("data", [])
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Embedding request failed model=%s reason=%s", model, exc)
            return None

        if not rows or not isinstance(rows[0], dict):
            return None
        vector = rows[0].get("embedding")
        if not isinstance(vector, list):
            return None
        return [float(value) for value in vector]


def _headers(credentials: Credentials) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {credentials.api_key.get_secret_value()}",
        "Content-Type": "application/json",
    }


def _status_error(status_code: int, body: str) -> GenerationError:
    message = f"Provider request failed with status {status_code}: {body[:400]}"
    if status_code in RETRYABLE_STATUS or status_code >= 500:
        return TransientGenerationError(message, status_code=status_code)
    return GenerationError(message, status_code=status_code)


def _as_transient(exc: Exception) -> GenerationError:
    if isinstance(exc, GenerationError):
        return exc
    return TransientGenerationError(f"Provider transport failure: {exc}")


def _sse_delta(line: str) -> str:
    line = line.strip()
    if not line.startswith("data:"):
        return ""
    data = line[len("data:") :].strip()
    if not data or data == "[DONE]":
        return ""
    try:
        event = json.loads(data)
    except json.JSONDecodeError:
        return ""
    choices = event.get("choices") if isinstance(event, dict) else None
    if not choices:
        return ""
    delta = choices[0].get("delta", {})
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) else ""


def _extract_json_content(response_json: dict[str, Any]) -> dict[str, Any]:
    choices = response_json.get("choices", [])
    if not choices:
        raise GenerationError("Provider JSON response missing choices")

    message = choices[0].get("message", {})
    content = message.get("content")

    if isinstance(content, str):
        text = content.strip()
    elif isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and isinstance(item.get("text"), str):
                parts.append(item["text"])
        text = "".join(parts).strip()
    else:
        text = ""

    if not text:
        raise GenerationError("Provider JSON response content is empty")

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise GenerationError("Provider content was not valid JSON") from exc

    if not isinstance(parsed, dict):
        raise GenerationError("Provider content must be a JSON object")
    return parsed

from __future__ import annotations

import json
import logging
import re
from typing import Any

import httpx

from services.errors import (
    TRANSIENT_STATUS_CODES,
    PermanentRemoteError,
    RateLimitError,
    TransientRemoteError,
    is_transient,
)
from services.retry import RetryConfig, RetryPolicy


logger = logging.getLogger(__name__)


def json_from_text(raw_text: str) -> Any:
    raw_text = raw_text.strip()
    if not raw_text:
        raise ValueError("Empty response")
    try:
        return json.loads(raw_text)
    except json.JSONDecodeError:
        pass

    match = re.search(r"\{[\s\S]*\}", raw_text)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass
    raise ValueError("No JSON payload found in text")


def completion_text(content: Any) -> str:
    """Flatten a chat completion ``content`` field into plain text."""
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        return json.dumps(content)
    if not isinstance(content, list):
        raise PermanentRemoteError("Unable to parse LLM content")

    texts = (
        part if isinstance(part, str) else str(part.get("text", ""))
        for part in content
        if isinstance(part, str) or (isinstance(part, dict) and part.get("type") == "text")
    )
    return "".join(texts)


def raise_for_remote_status(response: httpx.Response) -> None:
    code = response.status_code
    if code < 400:
        return
    if code == 429:
        raise RateLimitError("AI service rate limit exceeded", status_code=code)
    if code in TRANSIENT_STATUS_CODES:
        raise TransientRemoteError(f"Transient AI service error status={code}", status_code=code)
    if code in {401, 403}:
        raise PermanentRemoteError("AI service authentication failed", status_code=code)
    raise PermanentRemoteError(f"AI service error status={code}: {response.text[:200]}", status_code=code)


class LLMClient:
    def __init__(
        self,
        api_key: str,
        model: str,
        api_base: str = "https://api.mistral.ai/v1",
        timeout_seconds: float = 45.0,
        retry_policy: RetryPolicy | None = None,
        retry_config: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy()
        self.retry_config = retry_config or RetryConfig(max_attempts=3, initial_delay=0.8, max_delay=10.0)
        self.transport = transport

    async def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 4096,
        response_format: dict[str, Any] | None = None,
        model: str | None = None,
    ) -> str:
        payload: dict[str, Any] = {
            "model": model or self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if response_format:
            payload["response_format"] = response_format

        data = await self._request("/chat/completions", json_payload=payload)
        choices = data.get("choices") or []
        if not choices:
            raise PermanentRemoteError("LLM returned no choices")
        return completion_text((choices[0].get("message") or {}).get("content"))

    async def chat_json(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.3,
        max_tokens: int = 8192,
        model: str | None = None,
    ) -> dict[str, Any]:
        content = await self.chat(
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={"type": "json_object"},
            model=model,
        )
        try:
            parsed = json_from_text(content)
        except ValueError as err:
            raise PermanentRemoteError("LLM JSON decode error") from err
        if not isinstance(parsed, dict):
            raise PermanentRemoteError("Expected JSON object in LLM response")
        return parsed

    async def generate_text(self, prompt: str, temperature: float = 0.7, max_tokens: int = 2048) -> str:
        return await self.chat(
            messages=[{"role": "user", "content": prompt}],
            temperature=temperature,
            max_tokens=max_tokens,
        )

    async def transcribe(
        self,
        audio: bytes,
        filename: str,
        model: str,
        content_type: str = "application/octet-stream",
        language: str | None = None,
    ) -> dict[str, Any]:
        form: dict[str, str] = {"model": model, "timestamp_granularities": "segment"}
        if language:
            form["language"] = language
        files = {"file": (filename, audio, content_type)}
        return await self._request("/audio/transcriptions", data=form, files=files)

    async def _request(
        self,
        path: str,
        json_payload: dict[str, Any] | None = None,
        data: Any = None,
        files: Any = None,
    ) -> dict[str, Any]:
        if not self.api_key:
            raise PermanentRemoteError("MISTRAL_API_KEY is not configured")

        url = f"{self.api_base}{path}"
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async def send() -> dict[str, Any]:
            try:
                async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                    response = await client.post(url, headers=headers, json=json_payload, data=data, files=files)
            except httpx.RequestError as err:
                raise TransientRemoteError(f"AI service unreachable: {err}") from err

            raise_for_remote_status(response)
            try:
                return response.json()
            except ValueError as err:
                raise PermanentRemoteError("AI service returned malformed JSON") from err

        return await self.retry_policy.execute(
            send,
            config=self.retry_config,
            label=f"POST {path}",
            retry_if=is_transient,
        )

"""OpenAI-compatible chat completions backend (OpenRouter by default)."""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any

import httpx

from taskgate.errors import DispatchError, DispatchErrorKind

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_TIMEOUT_SECONDS = 120.0
SYSTEM_PROMPT = (
    "You are an expert engineer. Produce complete, production-grade deliverables "
    "with no placeholders."
)


class OpenRouterCapability:
    """Chat completions client; every failure is mapped to a DispatchError kind."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        temperature: float = 0.3,
        system_prompt: str = SYSTEM_PROMPT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._temperature = temperature
        self._system_prompt = system_prompt
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    async def __aenter__(self) -> OpenRouterCapability:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def invoke(self, capability_id: str, prompt: str, max_output_size: int) -> str | bytes:
        payload = {
            "model": capability_id,
            "messages": [
                {"role": "system", "content": self._system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": self._temperature,
            "max_tokens": max_output_size,
        }
        try:
            response = await self._client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as exc:
            raise DispatchError(DispatchErrorKind.TIMEOUT, capability_id, str(exc)) from exc
        except httpx.HTTPError as exc:
            raise DispatchError(DispatchErrorKind.TRANSPORT, capability_id, str(exc)) from exc

        if response.status_code in (401, 403):
            raise DispatchError(
                DispatchErrorKind.AUTH, capability_id, f"HTTP {response.status_code}"
            )
        if response.status_code >= 400:
            raise DispatchError(
                DispatchErrorKind.TRANSPORT, capability_id, f"HTTP {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise DispatchError(
                DispatchErrorKind.MALFORMED, capability_id, "response is not JSON"
            ) from exc
        return self._extract(capability_id, data)

    @staticmethod
    def _extract(capability_id: str, data: Any) -> str:
        if not isinstance(data, dict):
            raise DispatchError(DispatchErrorKind.MALFORMED, capability_id, "unexpected payload")
        if "error" in data:
            raise DispatchError(
                DispatchErrorKind.TRANSPORT, capability_id, str(data["error"])[:200]
            )

        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise DispatchError(DispatchErrorKind.MALFORMED, capability_id, "no choices")
        choice = choices[0]
        message = choice.get("message") if isinstance(choice, dict) else None
        if not isinstance(message, dict):
            raise DispatchError(DispatchErrorKind.MALFORMED, capability_id, "no message")

        # Image models answer with data URLs alongside (or instead of) text.
        images = message.get("images") or []
        if not isinstance(images, list):
            raise DispatchError(DispatchErrorKind.MALFORMED, capability_id, "bad images list")
        for image in images:
            image_url = image.get("image_url") if isinstance(image, dict) else None
            if not isinstance(image_url, dict):
                raise DispatchError(DispatchErrorKind.MALFORMED, capability_id, "bad image entry")
            url = image_url.get("url")
            if isinstance(url, str) and url:
                return url

        content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            raise DispatchError(DispatchErrorKind.MALFORMED, capability_id, "empty content")
        return content

"""Text-completion transport used by the narrator.

The narrator is given an LLM callable matching the protocol:

    async def __call__(self, stage: str, prompt: str) -> str: ...

`stage` names the request ("initial_scene" or "next_scene") and is only used
for logging. Tests substitute an AsyncMock or a small stub class.
"""

from __future__ import annotations

import logging
from typing import Literal, Protocol

import httpx

logger = logging.getLogger(__name__)


class LLM(Protocol):
    async def __call__(self, stage: str, prompt: str) -> str: ...


ProviderFormat = Literal["koboldcpp", "openai"]


class LLMError(RuntimeError):
    """Raised when the text backend cannot be reached or returns garbage."""


class HttpLLM:
    """Async HTTP client for text-completion backends.

    Supported formats:
      "koboldcpp"  POST /api/v1/generate  {"prompt", "max_length"}
                   -> {"results": [{"text": "..."}]}
      "openai"     POST /v1/completions   {"model", "prompt", "max_tokens"}
                   -> {"choices": [{"text": "..."}]}

    A scene is a JSON object of a few hundred tokens, so `max_tokens` is
    always sent; KoboldCpp's own default is far too short for it.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "koboldcpp",
        model: str = "",
        max_tokens: int = 800,
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._max_tokens = max_tokens
        self._timeout = timeout

    @property
    def endpoint(self) -> str:
        if self._format == "openai":
            return f"{self._base_url}/v1/completions"
        return f"{self._base_url}/api/v1/generate"

    def _payload(self, prompt: str) -> dict:
        if self._format == "koboldcpp":
            return {"prompt": prompt, "max_length": self._max_tokens}
        payload: dict = {"prompt": prompt, "max_tokens": self._max_tokens}
        if self._model:
            payload["model"] = self._model
        return payload

    def _extract_text(self, data: object) -> str:
        key = "results" if self._format == "koboldcpp" else "choices"
        entries = data.get(key) if isinstance(data, dict) else None
        first = entries[0] if isinstance(entries, list) and entries else None
        if not isinstance(first, dict) or not isinstance(first.get("text"), str):
            raise LLMError(f"Unexpected response format from {self._format} backend")
        return first["text"]

    def _transport_failure(self, e: httpx.HTTPError) -> LLMError:
        if isinstance(e, httpx.TimeoutException):
            return LLMError(f"Story backend timed out after {self._timeout}s")
        if isinstance(e, httpx.ConnectError):
            return LLMError(f"Cannot connect to the story backend at {self._base_url}")
        if isinstance(e, httpx.HTTPStatusError):
            return LLMError(f"Story backend returned HTTP {e.response.status_code}")
        return LLMError(f"Story backend request failed: {e}")

    async def _post_json(self, payload: dict) -> object:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self.endpoint, json=payload, headers=headers)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise self._transport_failure(e) from e

        try:
            return resp.json()
        except ValueError as e:
            raise LLMError("Story backend returned a non-JSON body") from e

    async def __call__(self, stage: str, prompt: str) -> str:
        logger.debug(
            "story request stage=%s format=%s chars=%d", stage, self._format, len(prompt)
        )
        text = self._extract_text(await self._post_json(self._payload(prompt)))
        logger.debug("story reply stage=%s chars=%d", stage, len(text))
        return text

"""Image generator: renders a scene's illustration prompt.

The orchestrator depends only on the ImageGenerator protocol. HttpIllustrator
talks to an OpenAI-compatible images endpoint:

    POST /v1/images/generations  {"prompt", "n": 1, "size", "model"?}
    -> {"data": [{"url": "..."}]}  or  {"data": [{"b64_json": "..."}]}

A URL is returned as-is; a base64 payload becomes a data: URI so callers
always get something an <img src> can display.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

DEFAULT_STYLE = (
    "Fantasy digital painting, dramatic lighting, epic, highly detailed, "
    "cinematic. Scene: "
)


class ImageGenerator(Protocol):
    async def generate_scene_image(self, prompt: str) -> str: ...


class ImageError(RuntimeError):
    """Raised when the image backend cannot be reached or returns no image."""


class HttpIllustrator:
    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        model: str = "",
        size: str = "1024x1024",
        style_prefix: str = DEFAULT_STYLE,
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._size = size
        self._style_prefix = style_prefix
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_body(self, prompt: str) -> dict:
        body: dict = {
            "prompt": f"{self._style_prefix}{prompt}",
            "n": 1,
            "size": self._size,
        }
        if self._model:
            body["model"] = self._model
        return body

    @staticmethod
    def _parse_response(data: dict) -> str:
        images = data.get("data") if isinstance(data, dict) else None
        if not isinstance(images, list) or not images or not isinstance(images[0], dict):
            raise ImageError("Image backend returned no images")
        url, payload = images[0].get("url"), images[0].get("b64_json")
        if url is None and payload is None:
            raise ImageError("Image backend response has neither url nor b64_json")
        if url is not None:
            if not isinstance(url, str) or not url:
                raise ImageError(f"Image backend returned an invalid url: {url!r}")
            return url
        if not isinstance(payload, str) or not payload:
            raise ImageError("Image backend returned an invalid b64_json payload")
        return f"data:image/png;base64,{payload}"

    async def generate_scene_image(self, prompt: str) -> str:
        url = f"{self._base_url}/v1/images/generations"
        logger.debug("image call url=%s prompt_len=%d", url, len(prompt))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=self._build_body(prompt), headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise ImageError(f"Cannot connect to the image backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise ImageError(f"Image backend returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise ImageError(f"Image backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise ImageError(f"Image backend request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise ImageError("Image backend returned a non-JSON body") from e

        return self._parse_response(data)

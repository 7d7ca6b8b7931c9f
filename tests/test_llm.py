"""Tests for dungeon_master.llm: HttpLLM."""

import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock, patch

from dungeon_master.llm import HttpLLM, LLMError


def _mock_response(body, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


# ---------------------------------------------------------------------------
# KoboldCpp format
# ---------------------------------------------------------------------------

class TestHttpLLMKoboldCpp:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(provider_url="http://localhost:5001", max_tokens=600)

    async def test_happy_path(self, llm: HttpLLM) -> None:
        body = {"results": [{"text": '{"sceneDescription": "A cell."}'}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await llm("initial_scene", "Begin.")
        assert result == '{"sceneDescription": "A cell."}'

    async def test_posts_prompt_and_length(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"results": [{"text": "ok"}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("next_scene", "my prompt")
        assert mock_post.call_args[0][0] == "http://localhost:5001/api/v1/generate"
        assert mock_post.call_args.kwargs["json"] == {"prompt": "my prompt", "max_length": 600}

    async def test_bearer_token_only_with_api_key(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"results": [{"text": "ok"}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("next_scene", "prompt")
        assert "Authorization" not in mock_post.call_args.kwargs["headers"]

        keyed = HttpLLM(provider_url="http://localhost:5001", api_key="secret")
        with patch("httpx.AsyncClient.post", mock_post):
            await keyed("next_scene", "prompt")
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer secret"

    async def test_trailing_slash_stripped_from_url(self) -> None:
        llm = HttpLLM(provider_url="http://localhost:5001/")
        mock_post = AsyncMock(return_value=_mock_response({"results": [{"text": "ok"}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("next_scene", "prompt")
        assert mock_post.call_args[0][0] == "http://localhost:5001/api/v1/generate"

    async def test_connect_error_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="Cannot connect"):
                await llm("next_scene", "prompt")

    async def test_timeout_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(side_effect=httpx.TimeoutException("timeout"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="timed out"):
                await llm("next_scene", "prompt")

    async def test_http_error_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=503))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="HTTP 503"):
                await llm("next_scene", "prompt")

    async def test_connection_reset_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(side_effect=httpx.ReadError("connection reset"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="request failed: connection reset"):
                await llm("next_scene", "prompt")

    async def test_url_without_scheme_raises_llm_error(self) -> None:
        llm = HttpLLM(provider_url="localhost:5001")
        mock_post = AsyncMock(side_effect=httpx.UnsupportedProtocol("missing scheme"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="request failed"):
                await llm("next_scene", "prompt")

    async def test_non_string_text_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"results": [{"text": None}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="Unexpected response format"):
                await llm("next_scene", "prompt")

    async def test_non_json_body_raises_llm_error(self, llm: HttpLLM) -> None:
        resp = _mock_response(None)
        resp.json.side_effect = ValueError("not json")
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=resp)):
            with pytest.raises(LLMError, match="non-JSON"):
                await llm("next_scene", "prompt")

    async def test_malformed_response_raises_llm_error(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"unexpected": "format"}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="Unexpected response format"):
                await llm("next_scene", "prompt")


# ---------------------------------------------------------------------------
# OpenAI format
# ---------------------------------------------------------------------------

class TestHttpLLMOpenAI:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(
            provider_url="http://localhost:8080",
            provider_format="openai",
            model="mistral-7b",
        )

    async def test_posts_model_and_max_tokens(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"choices": [{"text": "ok"}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("next_scene", "prompt")
        assert mock_post.call_args[0][0] == "http://localhost:8080/v1/completions"
        assert mock_post.call_args.kwargs["json"] == {
            "prompt": "prompt", "max_tokens": 800, "model": "mistral-7b",
        }

    async def test_happy_path(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"choices": [{"text": "A stormy night."}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            assert await llm("next_scene", "prompt") == "A stormy night."

    async def test_kobold_shaped_body_rejected(self, llm: HttpLLM) -> None:
        body = {"results": [{"text": "kobold format accidentally"}]}
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=_mock_response(body))):
            with pytest.raises(LLMError, match="Unexpected response format"):
                await llm("next_scene", "prompt")

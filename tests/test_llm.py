"""Unit tests for LLMClient (appgen.llm).

Tests cover:
- LLMResponse defaults and json_data
- LLMClient.__init__
- LLMClient.generate (success, JSON mode, connect error, timeout, HTTP error)
- LLMClient.is_available
- Static helpers: _extract_text, _extract_duration_ms
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from conftest import make_response

from appgen.llm import LLMClient, LLMResponse


# ---------------------------------------------------------------------------
# LLMResponse
# ---------------------------------------------------------------------------


class TestLLMResponse:
    @pytest.mark.unit
    def test_defaults(self):
        resp = LLMResponse()
        assert resp.text == ""
        assert resp.success is True
        assert resp.error is None

    @pytest.mark.unit
    def test_json_data(self):
        assert LLMResponse(text=' {"a": 1} ').json_data() == {"a": 1}

    @pytest.mark.unit
    def test_json_data_rejects_non_objects(self):
        assert LLMResponse(text="[1, 2]").json_data() is None
        assert LLMResponse(text="not json").json_data() is None

    @pytest.mark.unit
    def test_json_data_on_failure(self):
        assert LLMResponse(text='{"a": 1}', success=False).json_data() is None


# ---------------------------------------------------------------------------
# LLMClient.__init__ and helpers
# ---------------------------------------------------------------------------


class TestLLMClientInit:
    @pytest.mark.unit
    def test_defaults(self):
        client = LLMClient()
        assert client.base_url == "http://localhost:11434"
        assert client.model == "llama3.1:8b"
        assert client.timeout == 30

    @pytest.mark.unit
    def test_trailing_slash_stripped(self):
        assert LLMClient(base_url="http://host:1234/").base_url == "http://host:1234"


class TestStaticHelpers:
    @pytest.mark.unit
    def test_extract_text(self):
        assert LLMClient._extract_text({"response": "Hello"}) == "Hello"
        assert LLMClient._extract_text({}) == ""

    @pytest.mark.unit
    def test_extract_duration_ms(self):
        assert abs(LLMClient._extract_duration_ms({"total_duration": 1_500_000_000}) - 1500.0) < 0.1
        assert LLMClient._extract_duration_ms({}) == 0.0


# ---------------------------------------------------------------------------
# LLMClient.generate
# ---------------------------------------------------------------------------


class TestGenerate:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_successful_generate(self, mock_http):
        client, patcher = mock_http
        client.post.return_value = make_response(
            {"response": '{"needsClarification": false}', "model": "llama3.1:8b", "total_duration": 2_000_000}
        )
        with patcher:
            result = await LLMClient().generate("Is this clear?", system="Be brief", json_mode=True)

        assert result.success is True
        assert result.json_data() == {"needsClarification": False}
        payload = client.post.call_args[1]["json"]
        assert payload["format"] == "json"
        assert payload["system"] == "Be brief"
        assert payload["stream"] is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_plain_mode_has_no_format(self, mock_http):
        client, patcher = mock_http
        client.post.return_value = make_response({"response": "ok"})
        with patcher:
            await LLMClient().generate("hello")
        assert "format" not in client.post.call_args[1]["json"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_connect_error(self, mock_http):
        client, patcher = mock_http
        client.post.side_effect = httpx.ConnectError("Connection refused")
        with patcher:
            result = await LLMClient().generate("test")
        assert result.success is False
        assert "Cannot connect" in result.error

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout(self, mock_http):
        client, patcher = mock_http
        client.post.side_effect = httpx.TimeoutException("timed out")
        with patcher:
            result = await LLMClient(timeout=5).generate("test")
        assert result.success is False
        assert "timed out after 5s" in result.error

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_http_error(self, mock_http):
        client, patcher = mock_http
        error_response = MagicMock()
        error_response.status_code = 500
        error_response.text = "Internal Server Error"
        client.post.side_effect = httpx.HTTPStatusError(
            "Server error", request=MagicMock(), response=error_response
        )
        with patcher:
            result = await LLMClient().generate("test")
        assert result.success is False
        assert "HTTP 500" in result.error


# ---------------------------------------------------------------------------
# LLMClient.is_available
# ---------------------------------------------------------------------------


class TestIsAvailable:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_available(self, mock_http):
        client, patcher = mock_http
        client.get.return_value = make_response({"models": []})
        with patcher:
            assert await LLMClient().is_available() is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unavailable(self):
        mock_client = AsyncMock()
        mock_client.get = AsyncMock(side_effect=httpx.ConnectError("refused"))
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        with patch("httpx.AsyncClient", return_value=mock_client):
            assert await LLMClient().is_available() is False

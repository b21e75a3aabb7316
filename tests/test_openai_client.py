"""Tests for the single-turn OpenAI completion client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from wagpt.config import FALLBACK_TEXT, NO_RESPONSE_TEXT
from wagpt.services.openai_client import MissingAPIKeyError, OpenAIClient


def _response(*contents):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=c)) for c in contents]
    )


def _client(**create_kwargs):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(**create_kwargs)
    return client


def _status_error(cls, status_code):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(status_code, request=request)
    return cls(f"{status_code} error", response=response, body=None)


class TestComplete:
    @pytest.mark.asyncio
    async def test_single_turn_request(self):
        raw = _client(return_value=_response("Hi there!"))
        client = OpenAIClient(client=raw, model="gpt-3.5-turbo")

        await client.complete("Hello")

        raw.chat.completions.create.assert_awaited_once_with(
            model="gpt-3.5-turbo",
            messages=[{"role": "user", "content": "Hello"}],
        )

    @pytest.mark.asyncio
    async def test_reply_is_stripped(self):
        client = OpenAIClient(client=_client(return_value=_response("  Hi there!\n")))

        result = await client.complete("Hello")

        assert result.text == "Hi there!"
        assert result.ok

    @pytest.mark.asyncio
    async def test_first_choice_wins(self):
        client = OpenAIClient(client=_client(return_value=_response("one", "two")))

        result = await client.complete("Hello")

        assert result.text == "one"

    @pytest.mark.asyncio
    async def test_no_choices(self):
        client = OpenAIClient(client=_client(return_value=_response()))

        result = await client.complete("Hello")

        assert result.text == NO_RESPONSE_TEXT
        assert not result.ok

    @pytest.mark.asyncio
    async def test_empty_content(self):
        client = OpenAIClient(client=_client(return_value=_response(None)))

        result = await client.complete("Hello")

        assert result.text == NO_RESPONSE_TEXT
        assert not result.ok


class TestFailures:
    @pytest.mark.asyncio
    async def test_network_error_falls_back(self):
        client = OpenAIClient(client=_client(side_effect=ConnectionError("reset")))

        result = await client.complete("Hello")

        assert result.text == FALLBACK_TEXT
        assert not result.ok
        assert "reset" in result.error

    @pytest.mark.asyncio
    async def test_rate_limit_falls_back(self):
        error = _status_error(openai.RateLimitError, 429)
        client = OpenAIClient(client=_client(side_effect=error))

        result = await client.complete("Hello")

        assert result.text == FALLBACK_TEXT

    @pytest.mark.asyncio
    async def test_auth_error_falls_back(self):
        error = _status_error(openai.AuthenticationError, 401)
        client = OpenAIClient(client=_client(side_effect=error))

        result = await client.complete("Hello")

        assert result.text == FALLBACK_TEXT

    @pytest.mark.asyncio
    async def test_server_error_falls_back(self):
        error = _status_error(openai.InternalServerError, 500)
        client = OpenAIClient(client=_client(side_effect=error))

        result = await client.complete("Hello")

        assert result.text == FALLBACK_TEXT

    @pytest.mark.asyncio
    async def test_malformed_payload_falls_back(self):
        client = OpenAIClient(client=_client(return_value=SimpleNamespace()))

        result = await client.complete("Hello")

        assert result.text == FALLBACK_TEXT


class TestConstruction:
    def test_missing_key_raises(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)

        with pytest.raises(MissingAPIKeyError):
            OpenAIClient()

    def test_blank_key_raises(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "   ")

        with pytest.raises(MissingAPIKeyError):
            OpenAIClient()

    def test_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

        client = OpenAIClient()

        assert client.client.api_key == "sk-test"

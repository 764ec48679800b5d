import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.genai.errors import ClientError, ServerError

from studychat.core.gemini_api import (
    FALLBACK_MESSAGES,
    QUOTA_MESSAGE,
    GeminiCompletion,
    ProviderErrorKind,
    classify_provider_error,
    generate_session_title,
)


def api_error(cls, code, message, status):
    return cls(code, {"error": {"code": code, "message": message, "status": status}})


def failing_client(error):
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(side_effect=error)
    return client


@pytest.mark.parametrize(
    "error, kind",
    [
        (api_error(ClientError, 429, "Resource exhausted", "RESOURCE_EXHAUSTED"), ProviderErrorKind.RATE_LIMITED),
        (api_error(ClientError, 403, "Permission denied", "PERMISSION_DENIED"), ProviderErrorKind.UNAUTHORIZED),
        (api_error(ServerError, 503, "The model is overloaded", "UNAVAILABLE"), ProviderErrorKind.TRANSIENT),
        (api_error(ServerError, 500, "Internal error", "INTERNAL"), ProviderErrorKind.TRANSIENT),
        (api_error(ClientError, 400, "Bad request", "INVALID_ARGUMENT"), ProviderErrorKind.UNKNOWN),
        (asyncio.TimeoutError(), ProviderErrorKind.TRANSIENT),
        (ValueError("GEMINI_API_KEY environment variable is not set"), ProviderErrorKind.UNAUTHORIZED),
        (RuntimeError("boom"), ProviderErrorKind.UNKNOWN),
    ],
)
def test_classify_provider_error(error, kind):
    assert classify_provider_error(error) is kind


@pytest.mark.asyncio
async def test_complete_sends_system_history_and_message(gemini_client):
    completion = GeminiCompletion(client=gemini_client, model="gemini-test")

    result = await completion.complete(
        "Be helpful.",
        [("user", "Hi"), ("assistant", "Hello!")],
        "What is a cell?",
    )

    assert result.text == "Sure, here is an answer."
    assert result.fallback is False
    assert result.metadata() == {"model": "gemini-test"}
    kwargs = gemini_client.aio.models.generate_content.call_args.kwargs
    assert kwargs["model"] == "gemini-test"
    assert "Be helpful." in str(kwargs["config"].system_instruction)
    assert kwargs["config"].temperature == 0.7
    assert kwargs["config"].max_output_tokens == 1500
    assert [c.role for c in kwargs["contents"]] == ["user", "model", "user"]
    assert kwargs["contents"][-1].parts[0].text == "What is a cell?"


@pytest.mark.asyncio
async def test_quota_error_becomes_quota_fallback():
    error = api_error(ClientError, 429, "You exceeded your current quota", "RESOURCE_EXHAUSTED")
    completion = GeminiCompletion(client=failing_client(error), model="gemini-test")

    result = await completion.complete("sys", [], "hello")

    assert result.fallback is True
    assert result.text == QUOTA_MESSAGE
    assert result.error_kind is ProviderErrorKind.RATE_LIMITED
    meta = result.metadata()
    assert meta["fallback"] is True
    assert "quota" in meta["error"]
    assert meta["error_kind"] == "rate_limited"


@pytest.mark.asyncio
async def test_server_error_becomes_transient_fallback():
    error = api_error(ServerError, 503, "The model is overloaded", "UNAVAILABLE")
    completion = GeminiCompletion(client=failing_client(error), model="gemini-test")

    result = await completion.complete("sys", [], "hello")

    assert result.text == FALLBACK_MESSAGES[ProviderErrorKind.TRANSIENT]
    assert result.error_kind is ProviderErrorKind.TRANSIENT


@pytest.mark.asyncio
async def test_empty_reply_is_treated_as_failure():
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=SimpleNamespace(text=""))
    completion = GeminiCompletion(client=client, model="gemini-test")

    result = await completion.complete("sys", [], "hello")

    assert result.fallback is True
    assert result.error_kind is ProviderErrorKind.UNKNOWN
    assert "Empty response" in result.error


@pytest.mark.asyncio
async def test_missing_api_key_becomes_unauthorized_fallback(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    completion = GeminiCompletion(model="gemini-test")

    result = await completion.complete("sys", [], "hello")

    assert result.fallback is True
    assert result.error_kind is ProviderErrorKind.UNAUTHORIZED


@pytest.mark.asyncio
async def test_session_title_uses_first_words():
    assert await generate_session_title("What is photosynthesis?") == "What is photosynthesis?"
    assert await generate_session_title("one two three four five six seven") == "one two three four five..."

import logging

import pytest

from studychat.core import config


def test_setup_environment_lists_missing_keys(monkeypatch):
    monkeypatch.delenv("CHAT_DB_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    with pytest.raises(ValueError) as exc_info:
        config.setup_environment()

    assert "CHAT_DB_KEY" in str(exc_info.value)
    assert "GEMINI_API_KEY" in str(exc_info.value)


def test_gemini_api_key_format_checked(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "sk-not-gemini")

    with pytest.raises(ValueError, match="Invalid GEMINI_API_KEY format"):
        config.get_gemini_api_key()


def test_defaults(monkeypatch):
    monkeypatch.delenv("AI_AGENT", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("STORAGE_BUCKET", raising=False)
    monkeypatch.delenv("SUPABASE_URL", raising=False)

    assert config.get_model_name() == config.DEFAULT_MODEL_NAME
    assert config.get_database_url().startswith("sqlite+aiosqlite://")
    assert config.get_storage_bucket() == "study-materials"
    assert config.get_supabase_credentials() is None


def test_setup_logging_levels(monkeypatch):
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs["level"]))

    for environment in ("prod", "release", "debug", "other"):
        monkeypatch.setenv("ENVIRONMENT", environment)
        config.setup_logging()

    assert calls == [logging.WARNING, logging.INFO, logging.DEBUG, logging.WARNING]

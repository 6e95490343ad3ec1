"""
Tests for environment-driven settings (fuge/config/settings.py).
"""

from __future__ import annotations

import pytest

from fuge.config import Settings, get_settings, reset_settings
from fuge.lib.exceptions import ConfigurationError


def test_defaults_from_empty_env():
    settings = Settings.from_env({})

    assert settings.dev_mode is False
    assert settings.log_level == "INFO"
    assert settings.database_url == "sqlite+aiosqlite:///fuge.db"
    assert settings.sync_timeout == 10.0
    assert settings.ai_timeout == 60.0
    assert settings.ai_providers() == []


def test_reads_variables():
    settings = Settings.from_env(
        {
            "FUGE_DEV_MODE": "1",
            "LOG_LEVEL": "debug",
            "FUGE_DATABASE_URL": "sqlite+aiosqlite:///:memory:",
            "FUGE_SYNC_TIMEOUT": "2.5",
            "FUGE_AI_API_KEY": "sk-test",
            "FUGE_AI_BASE_URL": "https://llm.example.com/v1/",
            "FUGE_AI_MODEL": "small-model",
        }
    )

    assert settings.dev_mode is True
    assert settings.log_level == "DEBUG"
    assert settings.database_url == "sqlite+aiosqlite:///:memory:"
    assert settings.sync_timeout == 2.5
    assert settings.ai_base_url == "https://llm.example.com/v1"

    [provider] = settings.ai_providers()
    assert provider.api_key == "sk-test"
    assert provider.model_name == "small-model"


@pytest.mark.parametrize("raw", ["soon", "0", "-1"])
def test_bad_timeout(raw):
    with pytest.raises(ConfigurationError, match="FUGE_SYNC_TIMEOUT"):
        Settings.from_env({"FUGE_SYNC_TIMEOUT": raw})


def test_get_settings_is_cached(monkeypatch):
    monkeypatch.setenv("FUGE_AI_MODEL", "first")
    first = get_settings()
    monkeypatch.setenv("FUGE_AI_MODEL", "second")

    assert get_settings() is first

    reset_settings()
    assert get_settings().ai_model == "second"

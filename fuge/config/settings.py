"""
Environment-driven settings for Fuge.

Variables:
    FUGE_DEV_MODE       "1" enables human-readable logs
    LOG_LEVEL           stdlib level name (default INFO)
    FUGE_DATABASE_URL   async SQLAlchemy URL for the habit store
    FUGE_SYNC_TIMEOUT   seconds to wait for a durable write
    FUGE_AI_TIMEOUT     seconds to wait for a chat completion
    FUGE_AI_API_KEY     key for the default AI provider
    FUGE_AI_BASE_URL    OpenAI-compatible base URL
    FUGE_AI_MODEL       model name
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fuge.lib.exceptions import ConfigurationError

if TYPE_CHECKING:
    from fuge.services.ai_advisor import ProviderConfig

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///fuge.db"
DEFAULT_AI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_AI_MODEL = "gpt-3.5-turbo"


def _read_seconds(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number of seconds, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class Settings:
    """Process configuration resolved from the environment."""

    dev_mode: bool = False
    log_level: str = "INFO"
    database_url: str = DEFAULT_DATABASE_URL
    sync_timeout: float = 10.0
    ai_timeout: float = 60.0
    ai_api_key: str = ""
    ai_base_url: str = DEFAULT_AI_BASE_URL
    ai_model: str = DEFAULT_AI_MODEL

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """
        Build settings from environment variables.

        Raises:
            ConfigurationError: if a timeout is not a positive number.
        """
        env = os.environ if env is None else env
        return cls(
            dev_mode=env.get("FUGE_DEV_MODE") == "1",
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            database_url=env.get("FUGE_DATABASE_URL") or DEFAULT_DATABASE_URL,
            sync_timeout=_read_seconds(env, "FUGE_SYNC_TIMEOUT", 10.0),
            ai_timeout=_read_seconds(env, "FUGE_AI_TIMEOUT", 60.0),
            ai_api_key=env.get("FUGE_AI_API_KEY", ""),
            ai_base_url=(env.get("FUGE_AI_BASE_URL") or DEFAULT_AI_BASE_URL).rstrip("/"),
            ai_model=env.get("FUGE_AI_MODEL") or DEFAULT_AI_MODEL,
        )

    def ai_providers(self) -> list[ProviderConfig]:
        """Provider list for the advisor; empty when no API key is set."""
        from fuge.services.ai_advisor import ProviderConfig

        if not self.ai_api_key:
            return []
        return [
            ProviderConfig(
                id="env",
                name="default",
                api_key=self.ai_api_key,
                base_url=self.ai_base_url,
                model_name=self.ai_model,
                is_active=True,
            )
        ]


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the cached process-wide settings."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (tests, reconfiguration)."""
    global _settings
    _settings = None

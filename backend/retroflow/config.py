"""Application configuration using pydantic-settings.

Consumers call ``get_settings()`` to obtain a cached, validated instance.
Tests construct ``Settings(_env_file=None, ...)`` directly for isolation.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 3001
    database_url: str = "sqlite:///./retroflow.db"
    database_echo: bool = False
    redis_url: str = ""
    cors_origins: list[str] = ["*"]
    log_level: str = "INFO"

    max_participants: int = 15
    typing_ttl_seconds: int = 10
    presence_ttl_seconds: int = 3600

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, value: str) -> str:
        return value.upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    logger.debug(f"Loaded settings: database={settings.database_url} redis={'yes' if settings.redis_url else 'no'}")
    return settings

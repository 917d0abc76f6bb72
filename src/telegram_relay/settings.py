from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Telegram Bot API
    telegram_api_base_url: str = Field(
        default="https://api.telegram.org",
        validation_alias="TELEGRAM_API_BASE_URL",
    )
    telegram_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        validation_alias="TELEGRAM_TIMEOUT_SECONDS",
    )

    # Chat id resolution
    resolver_poll_timeout_seconds: int = Field(
        default=30,
        ge=0,
        validation_alias="RESOLVER_POLL_TIMEOUT_SECONDS",
    )
    resolver_retry_seconds: float = Field(
        default=5.0,
        ge=0,
        validation_alias="RESOLVER_RETRY_SECONDS",
    )
    resolver_poll_interval_seconds: float = Field(
        default=1.0,
        ge=0,
        validation_alias="RESOLVER_POLL_INTERVAL_SECONDS",
    )

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

# src/archivemind/config.py
"""
Runtime settings for Archivemind, loaded from the environment and an optional `.env`.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment / DB
    ENV: str = Field(default="dev")
    DATABASE_URL: str = Field(default="sqlite:///./archivemind.db")

    # Chat platform (Discord REST)
    DISCORD_BOT_TOKEN: str | None = None
    DISCORD_API_BASE: str = "https://discord.com/api/v10"

    # Knowledge base mirror / admin alerts (Telegram)
    TELEGRAM_BOT_TOKEN: str | None = None
    KNOWLEDGE_BASE_CHAT_ID: str | None = None
    TELEGRAM_ADMIN_CHAT_ID: str | None = None

    # Lifecycle tuning
    SWEEP_INTERVAL_SECONDS: int = 3600
    DEFAULT_INACTIVITY_DAYS: int = 30
    DEFAULT_MESSAGE_LIMIT: int = 500
    DELETE_DELAY_SECONDS: float = 5.0
    POSTPONE_DAYS: int = 7

    # Platform retry policy
    PLATFORM_MAX_ATTEMPTS: int = 3
    PLATFORM_BACKOFF_SECONDS: float = 1.0

    # API / Security
    API_KEY: str | None = None

    # Observability
    METRICS_ENABLED: bool = True


settings = Settings()

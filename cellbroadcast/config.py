from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./cellbroadcasts.db"

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Caller identity - HMAC key used to sign X-Caller headers, required
    CALLER_SECRET: str

    # Principals allowed to write and to read the complete table
    WRITER_PRINCIPALS: List[str] = ["phone", "network_stack"]

    # Principals allowed to read broadcasted message history
    HISTORY_READER_PRINCIPALS: List[str] = ["cellbroadcast_receiver"]


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()

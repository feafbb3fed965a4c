"""
Configuration Utility - Environment Variables Management

Centralized configuration loading from .env files using pydantic-settings.
Type-safe access to all environment variables with validation.

Usage:
    from geobatch.utils.config import settings

    batch_size = settings.BATCH_SIZE
    redis_url = settings.REDIS_URL
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Batch Configuration
    BATCH_SIZE: int = Field(default=50, ge=1)
    CONTINUATION_DELAY_SECONDS: float = Field(default=60.0, ge=0)
    JOB_ID: str = Field(default="default", min_length=1)

    # Retry Configuration
    MAX_RETRIES: int = Field(default=3, ge=1)
    MAX_RATE_LIMIT_RETRIES: int = Field(default=3, ge=1)
    RATE_LIMIT_COOLDOWN_SECONDS: float = Field(default=5.0, ge=0)
    RETRY_PAUSE_SECONDS: float = Field(default=2.0, ge=0)
    REQUEST_PAUSE_SECONDS: float = Field(default=0.5, ge=0)
    REQUEST_PAUSE_JITTER: float = Field(default=0.2, ge=0, lt=1)

    # Geocoding API Configuration
    GEOCODER_BASE_URL: str = Field(default="https://maps.googleapis.com/maps/api/geocode/json")
    GEOCODER_API_KEY: str = Field(default="")
    API_TIMEOUT: int = Field(default=30)
    DEFAULT_REGION: str = Field(default="us", pattern=r"^[A-Za-z]{2}$")

    # State Configuration
    STATE_BACKEND: Literal["redis", "file"] = Field(default="redis")
    STATE_DIR: str = Field(default="/app/data/state")
    KEY_PREFIX: str = Field(default="geobatch")

    # Redis Configuration
    REDIS_URL: str = Field(default="redis://redis:6379/0")
    REDIS_MAX_CONNECTIONS: int = Field(default=10)

    # Scheduler Configuration
    SCHEDULER_POLL_SECONDS: int = Field(default=15, ge=1)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="text")

    # Application Metadata
    ENVIRONMENT: str = Field(default="production")
    APP_NAME: str = Field(default="geobatch")
    APP_VERSION: str = Field(default="0.1.0")

    @model_validator(mode="after")
    def check_pauses(self) -> "Settings":
        """Retry pause must exceed the inter-request pause."""
        if self.RETRY_PAUSE_SECONDS <= self.REQUEST_PAUSE_SECONDS:
            raise ValueError("RETRY_PAUSE_SECONDS must be greater than REQUEST_PAUSE_SECONDS")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()

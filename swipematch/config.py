"""Configuration management for the SwipeMatch engine."""

from typing import Any

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Configuration
    APP_NAME: str = "SwipeMatch"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"
    DEBUG: bool = Field(default=False)

    # API Configuration
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Database Configuration (empty means in-memory storage)
    DATABASE_URL: str = ""

    # Sentry Configuration
    SENTRY_DSN: str | None = None

    # Identity Configuration
    USER_ID_MAX_LENGTH: int = 128

    # Conversation Configuration
    MAX_MESSAGE_LENGTH: int = 500
    SUBSCRIPTION_QUEUE_SIZE: int = 100

    # Discovery Configuration
    DISCOVERY_BATCH_SIZE: int = 10
    MAX_DISCOVERY_BATCH_SIZE: int = 50
    CANDIDATE_PAGE_SIZE: int = 100

    @field_validator("DEBUG", mode="before")
    @classmethod
    def set_debug(cls, v: Any, info: ValidationInfo) -> bool:
        """Enable debug mode if ENVIRONMENT is development."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str) and v:
            return v.lower() in ("1", "true", "yes")
        return bool(info.data.get("ENVIRONMENT", "").lower() == "development")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore")


# Create a global settings instance
settings = Settings()

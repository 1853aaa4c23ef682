"""Application configuration using Pydantic Settings.

Environment variables are loaded from .env files and system environment.
All sensitive values (SMTP password, ticket service API key) should be
provided via environment variables.
"""

from functools import lru_cache
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    All settings can be overridden via environment variables.
    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "Ticket Report Scheduler"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # CORS
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_allowed_origins(cls, v: Any) -> list[str]:
        """Parse ALLOWED_ORIGINS from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, list):
            return v
        return ["http://localhost:3000"]

    # Database (async driver URL, e.g. postgresql+asyncpg://... or sqlite+aiosqlite://...)
    DATABASE_URL: str | None = None
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 30

    # Scheduler
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TICK_SECONDS: int = Field(default=60, ge=1)
    SCHEDULER_MAX_WORKERS: int = Field(default=10, ge=1, le=50)
    SCHEDULER_QUEUE_SIZE: int = Field(default=100, ge=1)
    CRON_LOOKAHEAD_DAYS: int = Field(default=4 * 366, ge=1)

    # Ticket Query Service
    TICKET_SERVICE_URL: str = "http://localhost:8001"
    TICKET_SERVICE_API_KEY: str | None = None
    TICKET_SERVICE_TIMEOUT: float = Field(default=30.0, gt=0)
    TICKET_QUERY_LIMIT: int = Field(default=1000, ge=1)

    # Email Delivery Service (SMTP)
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_USE_TLS: bool = True
    EMAIL_FROM_ADDRESS: str = "reports@localhost"
    EMAIL_TIMEOUT: float = Field(default=30.0, gt=0)

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = None  # Defaults to logs/app.log
    LOG_JSON_FORMAT: bool = True  # Use JSON format for file logs
    LOG_SENSITIVE_FILTER: bool = True  # Filter sensitive data from logs


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are cached after first load for performance.
    """
    return Settings()


# Global settings instance
settings = get_settings()

"""
Application settings using Pydantic.

Provides environment-based configuration loading with SHUSH_ prefix.
Values from a config file (see shush.config.loader) are passed in as
keyword arguments; SHUSH_* environment variables take precedence over them.
"""

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SHUSH_",
        extra="ignore",
    )

    # Silence registry
    backend: str = "sensu"
    api_url: str = "http://localhost:4567"
    api_user: str | None = None
    api_password: SecretStr | None = None

    # HTTP client settings
    timeout: float = 10.0
    max_attempts: int = 3
    retry_backoff: float = 0.5
    retry_backoff_max: float = 8.0
    circuit_failure_threshold: int = 5
    circuit_recovery_timeout: int = 30

    # Execution
    concurrency: int = 8

    # Silence defaults
    default_ttl: str = "2h"
    creator: str | None = None

    @field_validator("api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("max_attempts", "concurrency")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

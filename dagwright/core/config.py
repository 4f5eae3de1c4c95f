"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    # Anthropic API (graph synthesis and content generation)
    anthropic_api_key: SecretStr | None = Field(
        default=None,
        description="Anthropic API key; synthesis is disabled when unset",
    )
    dagwright_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used for plan synthesis and file content",
    )
    dagwright_max_tokens: int = Field(
        default=4000,
        ge=256,
        description="Maximum tokens per model response",
    )

    # Logging
    dagwright_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    dagwright_log_file: str | None = Field(
        default=None,
        description="Optional log file path (rotated daily)",
    )
    dagwright_debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # Execution
    dagwright_working_dir: str = Field(
        default=".",
        description="Workspace that tasks operate on",
    )
    dagwright_task_timeout: int = Field(
        default=600,
        ge=1,
        description="Timeout for a task's primary action in seconds",
    )
    dagwright_validation_timeout: int = Field(
        default=300,
        ge=1,
        description="Timeout for a validation command in seconds",
    )
    dagwright_synthesis_timeout: int = Field(
        default=120,
        ge=1,
        description="Timeout for a plan synthesis call in seconds",
    )
    dagwright_max_recovery_depth: int = Field(
        default=3,
        ge=0,
        description="Maximum nesting of recovery sub-graphs",
    )
    dagwright_output_limit: int = Field(
        default=5000,
        ge=100,
        description="Maximum characters of captured command output",
    )

    @property
    def synthesis_enabled(self) -> bool:
        """Whether an API key is configured for plan synthesis."""
        return self.anthropic_api_key is not None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance loaded from environment.

    Example:
        >>> settings = get_settings()
        >>> settings.dagwright_max_recovery_depth
        3
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()

"""Configuration management for reprise."""

from __future__ import annotations

from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from reprise.errors import InvalidModelFormatError, ModelNotConfiguredError

MODEL_NOT_CONFIGURED_ERROR = "Model not configured. Set REPRISE_MODEL (e.g., 'openai:gpt-4o-mini')."


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="REPRISE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Model configuration
    model: str | None = Field(default=None, description="Model in provider:model format")
    api_key: str | None = Field(default=None, description="API key for the LLM provider")
    api_base: str | None = Field(default=None, description="Optional API base URL")
    max_tokens: int = Field(default=4096, description="Maximum tokens for one model response")

    # Loop configuration
    max_steps: int = Field(default=20, description="Maximum number of model steps per run")

    # Logging configuration
    log_level: str | None = Field(default=None, description="Log level; INFO by default, WARNING for the CLI")

    def require_model(self) -> str:
        if not self.model:
            raise ModelNotConfiguredError(MODEL_NOT_CONFIGURED_ERROR)
        return validate_model_name(self.model)


def validate_model_name(model: str) -> str:
    """Check a provider:model string and return it stripped."""
    provider, separator, name = model.strip().partition(":")
    if not separator or not provider or not name:
        raise InvalidModelFormatError(f"Model must use provider:model format, got {model!r}")
    return f"{provider}:{name}"


def get_settings(**overrides: Any) -> Settings:
    """Get application settings.

    Args:
        overrides: Explicit values that win over environment and ``.env`` values.
            ``None`` values are ignored so CLI flags can be passed through as-is.

    Returns:
        Settings instance
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    return Settings(**values)

"""Environment-based configuration using pydantic-settings.

Application defaults (environment tag, subdomain offset, proxy trust, cookie
signing keys) are read from ``LAYERKIT_*`` variables or a ``.env`` file.
Every value can still be overridden per ``Application`` instance.

Example:
    >>> from layerkit.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.subdomain_offset
    2
    >>> settings.logging.level
    'INFO'

    # Or with environment variables:
    # LAYERKIT_ENV=production
    # LAYERKIT_KEYS='["secret-1", "secret-2"]'
    # LAYERKIT_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, NonNegativeInt, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LAYERKIT_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class LayerkitSettings(BaseSettings):
    """Root settings for layerkit applications.

    Example environment variables:
        LAYERKIT_ENV=test
        LAYERKIT_SUBDOMAIN_OFFSET=3
        LAYERKIT_PROXY=true
        LAYERKIT_SILENT=true
        LAYERKIT_LOG_FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="LAYERKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    env: str = Field(default="development", min_length=1, description="Environment tag")
    subdomain_offset: NonNegativeInt = Field(
        default=2,
        description="Number of trailing host labels ignored by request.subdomains",
    )
    proxy: bool = Field(default=False, description="Trust X-Forwarded-* headers")
    silent: bool = Field(default=False, description="Suppress default error output")
    keys: list[SecretStr] = Field(default_factory=list, description="Cookie signing keys")

    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("env", mode="before")
    @classmethod
    def _normalize_env(cls, v: str) -> str:
        """Normalize environment name to lowercase."""
        return v.strip().lower() if isinstance(v, str) else v

    def signing_keys(self) -> list[str]:
        """Plain-text signing keys, newest first."""
        return [k.get_secret_value() for k in self.keys]


@lru_cache(maxsize=1)
def get_settings() -> LayerkitSettings:
    """Get the global settings instance (cached).

    Returns:
        Cached LayerkitSettings instance
    """
    return LayerkitSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing).

    After calling this, the next get_settings() call will
    reload configuration from environment.
    """
    get_settings.cache_clear()

"""Configuration management using pydantic-settings."""

from .settings import LayerkitSettings, LoggingSettings, clear_settings_cache, get_settings

__all__ = [
    "LayerkitSettings",
    "LoggingSettings",
    "clear_settings_cache",
    "get_settings",
]

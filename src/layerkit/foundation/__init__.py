"""Foundation: configuration, errors, events and status tables."""

from .config import LayerkitSettings, LoggingSettings, clear_settings_cache, get_settings
from .errors import (
    ErrorInfo,
    HttpError,
    LayerkitError,
    MiddlewareTypeError,
    NextCalledMultipleTimesError,
    NonErrorRaisedError,
    create_error,
)
from .events import EventEmitter

__all__ = [
    # Config
    "LayerkitSettings", "LoggingSettings", "clear_settings_cache", "get_settings",
    # Errors
    "ErrorInfo", "HttpError", "LayerkitError", "MiddlewareTypeError",
    "NextCalledMultipleTimesError", "NonErrorRaisedError", "create_error",
    # Events
    "EventEmitter",
]

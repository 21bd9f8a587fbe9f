"""Error types for layerkit.

- LayerkitError: common base
- MiddlewareTypeError: invalid middleware registration (configuration error)
- NextCalledMultipleTimesError: ``next`` awaited twice in one middleware
- HttpError/create_error: exchange failures carrying an HTTP status
- NonErrorRaisedError: non-exception value reached an error handler
"""

from .errors import (
    ErrorInfo,
    HttpError,
    LayerkitError,
    MiddlewareTypeError,
    NextCalledMultipleTimesError,
    NonErrorRaisedError,
    create_error,
)

__all__ = [
    "ErrorInfo",
    "HttpError",
    "LayerkitError",
    "MiddlewareTypeError",
    "NextCalledMultipleTimesError",
    "NonErrorRaisedError",
    "create_error",
]

"""Layerkit - Onion-style async middleware core for HTTP over ASGI.

Each exchange gets a context that middleware read and write. Middleware run
in registration order on the way in and in reverse on the way out, and the
framework turns whatever the context describes into the HTTP response.

Quick Start:
    >>> from layerkit import Application
    >>>
    >>> app = Application()
    >>>
    >>> async def logger(ctx, next):
    ...     await next()
    ...     print(ctx.method, ctx.url, ctx.status)
    >>>
    >>> async def hello(ctx, next):
    ...     ctx.body = "Hello World"
    >>>
    >>> app.use(logger).use(hello)
    >>> app.listen(port=3000)  # requires layerkit[server]

Errors:
    >>> async def admin_only(ctx, next):
    ...     ctx.assert_(ctx.state.get("user"), 401, "login required")
    ...     await next()
    >>>
    >>> app.on("error", lambda err, ctx: report(err))

Composing Pipelines:
    >>> from layerkit import compose
    >>> api = compose([auth, rate_limit, router])
    >>> app.use(api)

Configuration (environment):
    LAYERKIT_ENV, LAYERKIT_PROXY, LAYERKIT_SUBDOMAIN_OFFSET, LAYERKIT_SILENT,
    LAYERKIT_KEYS, LAYERKIT_LOG_LEVEL, LAYERKIT_LOG_FORMAT
"""

from __future__ import annotations

__version__ = "0.1.0"

# Application
from .application import Application

# Middleware
from .runtime import ComposedMiddleware, Middleware, Next, compose, is_middleware, respond

# Exchange surface
from .http import Context, Request, Response

# Transport
from .io import Accepts, Cookies, Keygrip, RawRequest, RawResponse

# Errors
from .foundation import (
    HttpError,
    LayerkitError,
    MiddlewareTypeError,
    NextCalledMultipleTimesError,
    NonErrorRaisedError,
    create_error,
)

# Config
from .foundation import LayerkitSettings, clear_settings_cache, get_settings

# Observability
from .runtime import configure_logging, get_logger, log_context

__all__ = [
    # Version
    "__version__",
    # Application
    "Application",
    # Middleware
    "ComposedMiddleware",
    "Middleware",
    "Next",
    "compose",
    "is_middleware",
    "respond",
    # Exchange surface
    "Context",
    "Request",
    "Response",
    # Transport
    "Accepts",
    "Cookies",
    "Keygrip",
    "RawRequest",
    "RawResponse",
    # Errors
    "HttpError",
    "LayerkitError",
    "MiddlewareTypeError",
    "NextCalledMultipleTimesError",
    "NonErrorRaisedError",
    "create_error",
    # Config
    "LayerkitSettings",
    "clear_settings_cache",
    "get_settings",
    # Observability
    "configure_logging",
    "get_logger",
    "log_context",
]

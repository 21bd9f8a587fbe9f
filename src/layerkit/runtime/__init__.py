"""Runtime: middleware composition, response finalization, observability."""

from .middleware import ComposedMiddleware, Middleware, Next, compose, is_middleware, middleware_name
from .observability import configure_logging, get_logger, log_context
from .respond import pipe, respond

__all__ = [
    # Middleware
    "ComposedMiddleware", "Middleware", "Next", "compose", "is_middleware", "middleware_name",
    # Finalizer
    "pipe", "respond",
    # Observability
    "configure_logging", "get_logger", "log_context",
]

"""Middleware composition for the exchange pipeline.

Example:
    >>> from layerkit.runtime.middleware import compose
    >>>
    >>> async def outer(ctx, next):
    ...     ctx.state["trace"] = ["outer-in"]
    ...     await next()
    ...     ctx.state["trace"].append("outer-out")
    >>>
    >>> async def inner(ctx, next):
    ...     ctx.state["trace"].append("inner")
    ...     await next()
    >>>
    >>> pipeline = compose([outer, inner])
    >>> # await pipeline(ctx) -> trace == ["outer-in", "inner", "outer-out"]
"""

from .middleware import (
    ComposedMiddleware,
    Middleware,
    Next,
    compose,
    is_middleware,
    middleware_name,
)

__all__ = [
    "ComposedMiddleware",
    "Middleware",
    "Next",
    "compose",
    "is_middleware",
    "middleware_name",
]

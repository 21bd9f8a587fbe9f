"""Core middleware types and onion composition.

Middleware follows continuation-passing style: each middleware receives the
exchange context and a ``next`` coroutine function. Awaiting ``next()`` runs
everything downstream and resumes once that whole nest has unwound, so code
before the await runs in registration order and code after it runs in
reverse.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Sequence
from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

from layerkit.foundation.errors import MiddlewareTypeError, NextCalledMultipleTimesError

if TYPE_CHECKING:
    from layerkit.http.context import Context


# Continuation handed to each middleware
Next = Callable[[], Awaitable[None]]


@runtime_checkable
class Middleware(Protocol):
    """Protocol for exchange middleware.

    Accepts both coroutine functions and objects with an async ``__call__``.

    Example:
        >>> async def response_time(ctx, next):
        ...     start = time.perf_counter()
        ...     await next()
        ...     ctx.set("X-Response-Time", f"{(time.perf_counter() - start) * 1000:.1f}ms")

        >>> class RequireJson:
        ...     async def __call__(self, ctx, next):
        ...         ctx.assert_(ctx.is_("json"), 415)
        ...         await next()
    """

    async def __call__(self, ctx: Context, next: Next) -> None:
        """Execute middleware logic.

        Args:
            ctx: Per-exchange context
            next: Continuation running the downstream middleware
        """
        ...


ComposedMiddleware = Callable[["Context", "Next | None"], Awaitable[None]]


def is_middleware(fn: object) -> bool:
    """Whether ``fn`` is an async callable that can be called as ``fn(ctx, next)``."""
    if not callable(fn):
        return False
    if not (inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(getattr(fn, "__call__", None))):
        return False
    try:
        inspect.signature(fn).bind(None, None)
    except (TypeError, ValueError):
        return False
    return True


def middleware_name(fn: object) -> str:
    """Display name used in debug logs."""
    return getattr(fn, "_name", None) or getattr(fn, "__name__", None) or type(fn).__name__ or "-"


def compose(middleware: Sequence[Middleware]) -> ComposedMiddleware:
    """Compose middleware into a single onion-ordered callable.

    The sequence is snapshotted, so appending to it afterwards has no effect
    on the returned callable. The result is itself middleware: when it is
    given an outer ``next`` (nested pipelines), that continuation runs after
    the innermost layer.

    Args:
        middleware: Ordered middleware (first = outermost)

    Returns:
        Async function ``(ctx, next=None) -> None``

    Raises:
        MiddlewareTypeError: If an element is not middleware
    """
    stack = tuple(middleware)
    for fn in stack:
        if not is_middleware(fn):
            raise MiddlewareTypeError(fn)

    async def composed(ctx: Context, next: Next | None = None) -> None:
        async def dispatch(i: int) -> None:
            if i == len(stack):
                if next is not None:
                    await next()
                return

            called = False

            async def downstream() -> None:
                nonlocal called
                if called:
                    raise NextCalledMultipleTimesError()
                called = True
                await dispatch(i + 1)

            await stack[i](ctx, downstream)

        await dispatch(0)

    composed._name = "compose(" + ",".join(middleware_name(fn) for fn in stack) + ")"  # type: ignore[attr-defined]
    return composed

"""The application: middleware registry, context factory and exchange executor.

Example:
    >>> from layerkit import Application
    >>>
    >>> app = Application()
    >>>
    >>> async def timing(ctx, next):
    ...     start = time.perf_counter()
    ...     await next()
    ...     ctx.set("X-Response-Time", f"{(time.perf_counter() - start) * 1000:.1f}ms")
    >>>
    >>> async def hello(ctx, next):
    ...     ctx.body = {"hello": ctx.query.get("name", "world")}
    >>>
    >>> app.use(timing).use(hello)
    >>> app.listen(port=3000)          # or: uvicorn module:app
"""

from __future__ import annotations

import sys
import traceback
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TextIO

from layerkit.foundation.config import LayerkitSettings, get_settings
from layerkit.foundation.errors import MiddlewareTypeError, NonErrorRaisedError
from layerkit.foundation.events import EventEmitter
from layerkit.http.context import Context
from layerkit.http.request import Request
from layerkit.http.response import Response
from layerkit.io.asgi import Message, RawRequest, RawResponse, Receive, Scope, Send, exchange_from_scope
from layerkit.io.cookies import Cookies
from layerkit.io.negotiation import Accepts
from layerkit.runtime.middleware import Middleware, compose, is_middleware, middleware_name
from layerkit.runtime.observability import get_logger, log_context
from layerkit.runtime.respond import respond

Handler = Callable[[RawRequest, RawResponse], Awaitable[None]]

log = get_logger("layerkit.application")


class Application(EventEmitter):
    """Middleware application and ASGI entry point.

    Settings default to ``get_settings()`` (``LAYERKIT_*`` environment
    variables) and can be overridden per instance.

    Attributes:
        env: Environment tag; ``"test"`` silences default error output
        subdomain_offset: Trailing host labels ignored by ``ctx.subdomains``
        proxy: Trust ``X-Forwarded-*`` headers
        silent: Suppress default error output
        keys: Cookie signing keys, newest first
        middleware: Registered middleware, in order
        context/request/response: Per-application bases for the exchange
            objects; attributes set on them show up on every exchange
        error_output: Stream for error reports (``sys.stderr`` when None)
    """

    def __init__(
        self,
        *,
        env: str | None = None,
        keys: Sequence[str] | None = None,
        proxy: bool | None = None,
        subdomain_offset: int | None = None,
        silent: bool | None = None,
        settings: LayerkitSettings | None = None,
        error_output: TextIO | None = None,
    ) -> None:
        super().__init__()
        settings = settings or get_settings()
        self.env = env if env is not None else settings.env
        self.keys = list(keys) if keys is not None else settings.signing_keys()
        self.proxy = proxy if proxy is not None else settings.proxy
        self.subdomain_offset = subdomain_offset if subdomain_offset is not None else settings.subdomain_offset
        self.silent = silent if silent is not None else settings.silent
        self.error_output = error_output
        self.middleware: list[Middleware] = []
        self.context: type[Context] = type("Context", (Context,), {})
        self.request: type[Request] = type("Request", (Request,), {})
        self.response: type[Response] = type("Response", (Response,), {})
        self._handler: Handler | None = None

    # ─────────────────────────────────────────────────────────────────
    # Registration
    # ─────────────────────────────────────────────────────────────────

    def use(self, fn: Middleware) -> Application:
        """Append ``fn`` to the middleware list.

        Raises:
            MiddlewareTypeError: If ``fn`` is not an async ``(ctx, next)`` callable
        """
        if not is_middleware(fn):
            raise MiddlewareTypeError(fn)
        log.debug("use", middleware=middleware_name(fn))
        self.middleware.append(fn)
        self._handler = None
        return self

    # ─────────────────────────────────────────────────────────────────
    # Exchange handling
    # ─────────────────────────────────────────────────────────────────

    def callback(self) -> Handler:
        """Build the request handler ``handle(req, res)`` over a snapshot of the middleware."""
        fn = compose(self.middleware)

        if not self.listeners("error"):
            self.on("error", self.onerror)

        async def handle(req: RawRequest, res: RawResponse) -> None:
            res.status_code = 404
            ctx = self.create_context(req, res)
            res.on_finished(ctx.onerror)
            with log_context(method=req.method, url=req.url):
                req.watch_disconnect()
                try:
                    await fn(ctx)
                    await respond(ctx)
                except Exception as err:
                    await ctx.onerror(err)
                finally:
                    await req.stop_watching()
                    await res.settle()

        return handle

    def create_context(self, req: RawRequest, res: RawResponse) -> Context:
        """Build the context, request view and response view for one exchange."""
        context = self.context()
        request = context.request = self.request()
        response = context.response = self.response()
        context.app = request.app = response.app = self
        context.req = request.req = response.req = req
        context.res = request.res = response.res = res
        request.ctx = response.ctx = context
        request.response = response
        response.request = request
        context.onerror = context.onerror  # type: ignore[method-assign]
        context.original_url = request.original_url = req.url
        context.cookies = Cookies(req, res, keys=self.keys or None, secure=request.secure)
        context.accept = request.accept = Accepts(req)
        context.state = {}
        log.debug("context", method=req.method, url=req.url)
        return context

    def onerror(self, err: BaseException, ctx: Context | None = None) -> None:
        """Default ``"error"`` listener: print unexpected errors to ``error_output``.

        Errors with status 404 or ``expose`` set, and everything when the
        application is silent or ``env == "test"``, are not printed.

        Raises:
            NonErrorRaisedError: If ``err`` is not an exception
        """
        if not isinstance(err, BaseException):
            raise NonErrorRaisedError(err)

        if getattr(err, "status", None) == 404 or getattr(err, "expose", False):
            return
        if self.silent:
            return
        if self.env == "test":
            return

        msg = "".join(traceback.format_exception(err)).rstrip("\n")
        out = self.error_output or sys.stderr
        print(file=out)
        print("\n".join(f"  {line}" for line in msg.split("\n")), file=out)
        print(file=out)

    # ─────────────────────────────────────────────────────────────────
    # ASGI / server
    # ─────────────────────────────────────────────────────────────────

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        match scope["type"]:
            case "http":
                if self._handler is None:
                    self._handler = self.callback()
                req, res = exchange_from_scope(scope, receive, send)
                await self._handler(req, res)
            case "lifespan":
                await self._lifespan(receive, send)
            case other:
                raise RuntimeError(f"unsupported ASGI scope type: {other!r}")

    async def _lifespan(self, receive: Receive, send: Send) -> None:
        while True:
            message: Message = await receive()
            if message["type"] == "lifespan.startup":
                self.emit("startup")
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                self.emit("shutdown")
                await send({"type": "lifespan.shutdown.complete"})
                return

    def listen(self, host: str = "127.0.0.1", port: int = 8000, **kwargs: Any) -> None:
        """Serve the application with uvicorn (blocking)."""
        try:
            import uvicorn
        except ImportError as e:
            raise ImportError(
                "listen() requires uvicorn. "
                "Install with: pip install layerkit[server]"
            ) from e
        log.debug("listen", host=host, port=port)
        uvicorn.run(self, host=host, port=port, **kwargs)

    # ─────────────────────────────────────────────────────────────────

    def to_json(self) -> dict[str, Any]:
        """Settings snapshot."""
        return {"subdomain_offset": self.subdomain_offset, "proxy": self.proxy, "env": self.env}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_json()})"

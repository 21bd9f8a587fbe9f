"""Per-exchange context.

The context is what middleware receives as ``ctx``. Most of its surface
forwards to the request or response view (``ctx.body`` is
``ctx.response.body``, ``ctx.method`` is ``ctx.request.method``), while
``state``, ``cookies``, ``accept`` and ``original_url`` live on the context
itself.

Each application subclasses ``Context`` (and ``Request``/``Response``) once,
so attributes assigned to ``app.context`` are visible on every context that
application creates:

    >>> app.context.db = pool
    >>> async def handler(ctx, next):
    ...     ctx.body = await ctx.db.fetch_users()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NoReturn

from layerkit.foundation import statuses
from layerkit.foundation.errors import NonErrorRaisedError, create_error

from .delegates import Delegate

if TYPE_CHECKING:
    from layerkit.application import Application
    from layerkit.io.asgi import RawRequest, RawResponse
    from layerkit.io.cookies import Cookies
    from layerkit.io.negotiation import Accepts

    from .request import Request
    from .response import Response


class Context:
    """Aggregate of request and response state for one exchange."""

    app: Application
    req: RawRequest
    res: RawResponse
    request: Request
    response: Response
    state: dict[str, Any]
    cookies: Cookies
    accept: Accepts
    original_url: str

    # False bypasses the finalizer; the middleware then owns ``ctx.res``
    respond: bool = True

    # Response delegation
    status = Delegate("response")
    message = Delegate("response")
    body = Delegate("response")
    length = Delegate("response")
    type = Delegate("response")
    last_modified = Delegate("response")
    etag = Delegate("response")
    header_sent = Delegate("response", readonly=True)
    writable = Delegate("response", readonly=True)
    set = Delegate("response", readonly=True)
    append = Delegate("response", readonly=True)
    remove = Delegate("response", readonly=True)
    vary = Delegate("response", readonly=True)
    redirect = Delegate("response", readonly=True)
    attachment = Delegate("response", readonly=True)

    # Request delegation
    method = Delegate("request")
    url = Delegate("request")
    path = Delegate("request")
    query = Delegate("request")
    querystring = Delegate("request")
    search = Delegate("request")
    origin = Delegate("request", readonly=True)
    href = Delegate("request", readonly=True)
    host = Delegate("request", readonly=True)
    hostname = Delegate("request", readonly=True)
    protocol = Delegate("request", readonly=True)
    secure = Delegate("request", readonly=True)
    ip = Delegate("request", readonly=True)
    ips = Delegate("request", readonly=True)
    subdomains = Delegate("request", readonly=True)
    header = Delegate("request", readonly=True)
    headers = Delegate("request", readonly=True)
    fresh = Delegate("request", readonly=True)
    stale = Delegate("request", readonly=True)
    idempotent = Delegate("request", readonly=True)
    get = Delegate("request", readonly=True)
    is_ = Delegate("request", readonly=True)
    accepts = Delegate("request", readonly=True)
    accepts_encodings = Delegate("request", readonly=True)
    accepts_charsets = Delegate("request", readonly=True)
    accepts_languages = Delegate("request", readonly=True)

    def throw(self, status: int = 500, message: str | None = None, **props: Any) -> NoReturn:
        """Raise an HttpError; ``props`` become attributes of the error.

        Example:
            >>> ctx.throw(403, "admins only", user=ctx.state["user"])
        """
        raise create_error(status, message, **props)

    def assert_(self, value: object, status: int = 500, message: str | None = None, **props: Any) -> None:
        """``ctx.throw(status, message)`` unless ``value`` is truthy."""
        if not value:
            self.throw(status, message, **props)

    async def onerror(self, err: BaseException | None) -> None:
        """Report ``err`` and answer the client with an error response.

        Called with None by the finished listener, which is a no-op. When the
        response has already started, the error is only reported and flagged
        with ``header_sent = True``.
        """
        if err is None:
            return
        if not isinstance(err, BaseException):
            err = NonErrorRaisedError(err)

        self.app.emit("error", err, self)

        if self.header_sent or not self.writable:
            err.header_sent = True  # type: ignore[attr-defined]
            return

        res = self.res
        res.clear_headers()
        extra = getattr(err, "headers", None)
        if isinstance(extra, dict):
            self.set(extra)

        status = getattr(err, "status", None)
        if isinstance(err, FileNotFoundError):
            status = 404
        if not statuses.is_valid(status) or status < 400:
            status = 500

        message = statuses.reason(status) or str(status)
        text = str(err) if getattr(err, "expose", False) else message
        self.status = status
        self.type = "text"
        payload = text.encode()
        self.length = len(payload)
        await res.end(payload)

    def to_json(self) -> dict[str, Any]:
        return {
            "request": self.request.to_json(),
            "response": self.response.to_json(),
            "app": self.app.to_json(),
            "original_url": self.original_url,
            "req": "<original req>",
            "res": "<original res>",
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.request.method} {self.request.url} -> {self.response.status}>"

"""Raw request/response handles over an ASGI connection.

The middleware core never talks to ASGI directly. It works against two
transport objects:

- ``RawRequest``: method, URL, headers and the request body stream
- ``RawResponse``: status, headers and ``write``/``end``, plus finished
  listeners that fire once when the response completes or the client
  disconnects

``exchange_from_scope`` builds the pair for one ``http`` scope. ``RawRequest.watch_disconnect``
notices a client that hangs up while the response is still being produced.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncIterator, Awaitable, Mapping
from typing import Any, Callable

Scope = Mapping[str, Any]
Message = Mapping[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]

FinishedListener = Callable[[BaseException | None], object]
HeaderValue = str | list[str]


def _decode(value: bytes | str) -> str:
    return value.decode("latin-1") if isinstance(value, bytes) else value


class RawRequest:
    """Incoming half of an exchange.

    Header names are lower-cased; repeated headers are joined with ``", "``
    (``"; "`` for ``cookie``).

    Once ``watch_disconnect()`` starts, a background task is the only reader
    of the ASGI ``receive`` channel. Body messages are handed to ``receive()``
    one at a time, and ``http.disconnect`` fires the disconnect listeners even
    if no middleware reads the body. A body nobody reads holds the watcher
    back at its second chunk, so a disconnect behind an unread multi-chunk
    body is not seen.
    """

    def __init__(self, scope: Scope, receive: Receive) -> None:
        self.scope = scope
        self._receive = receive
        self.method: str = scope.get("method", "GET").upper()
        self.http_version: str = scope.get("http_version", "1.1")
        self.scheme: str = scope.get("scheme", "http")
        client = scope.get("client")
        self.remote_address: str | None = client[0] if client else None

        raw_path = scope.get("raw_path")
        path = _decode(raw_path).split("?", 1)[0] if raw_path else scope.get("path", "/")
        query = _decode(scope.get("query_string", b""))
        self.url: str = f"{path}?{query}" if query else path

        headers: dict[str, str] = {}
        for name, value in scope.get("headers", ()):
            key, val = _decode(name).lower(), _decode(value)
            if key in headers:
                headers[key] = f"{headers[key]}{'; ' if key == 'cookie' else ', '}{val}"
            else:
                headers[key] = val
        self.headers = headers

        self.complete = False
        self.aborted = False
        self._disconnect_listeners: list[Callable[[], Awaitable[None]]] = []
        self._inbox: asyncio.Queue[Message] = asyncio.Queue(maxsize=1)
        self._watcher: asyncio.Task[None] | None = None

    def on_disconnect(self, listener: Callable[[], Awaitable[None]]) -> None:
        self._disconnect_listeners.append(listener)

    # ─────────────────────────────────────────────────────────────────
    # Disconnect watcher
    # ─────────────────────────────────────────────────────────────────

    def watch_disconnect(self) -> None:
        """Start reading the ASGI channel in the background for the rest of the exchange."""
        if self._watcher is None:
            self._watcher = asyncio.create_task(self._watch(), name="layerkit-disconnect-watcher")

    async def stop_watching(self) -> None:
        """Cancel the watcher and re-raise anything its disconnect listeners raised."""
        if (task := self._watcher) is None:
            return
        task.cancel()
        await asyncio.wait([task])
        if not task.cancelled() and (err := task.exception()) is not None:
            raise err

    async def _watch(self) -> None:
        while not self.aborted:
            message = await self._receive()
            if message["type"] != "http.disconnect":
                await self._inbox.put(message)
                continue
            if self._inbox.empty():
                self._inbox.put_nowait(message)
            await self._track(message)

    async def _track(self, message: Message) -> None:
        if message["type"] == "http.disconnect":
            if self.aborted:
                return
            self.aborted = True
            for listener in self._disconnect_listeners:
                await listener()
        elif not message.get("more_body", False):
            self.complete = True

    # ─────────────────────────────────────────────────────────────────
    # Body
    # ─────────────────────────────────────────────────────────────────

    async def receive(self) -> Message:
        """Receive the next ASGI message, tracking completion and disconnects."""
        if self._watcher is None:
            message = await self._receive()
        elif self.aborted and self._inbox.empty():
            return {"type": "http.disconnect"}
        else:
            message = await self._inbox.get()
        await self._track(message)
        return message

    async def stream(self) -> AsyncIterator[bytes]:
        """Yield body chunks until the body is complete or the client goes away."""
        while not (self.complete or self.aborted):
            message = await self.receive()
            if message["type"] == "http.request" and (chunk := message.get("body", b"")):
                yield bytes(chunk)

    async def read(self) -> bytes:
        return b"".join([chunk async for chunk in self.stream()])


class RawResponse:
    """Outgoing half of an exchange.

    Status and headers are buffered until the first ``write``/``end``.
    After that ``headers_sent`` is True and header mutations are ignored by
    the wire.
    """

    def __init__(self, send: Send) -> None:
        self._send = send
        self.status_code = 200
        self.status_message: str | None = None
        self._headers: dict[str, HeaderValue] = {}
        self.headers_sent = False
        self.finished = False
        self.aborted = False
        self._listeners: list[FinishedListener] = []
        self._late: list[asyncio.Future[Any]] = []

    # ─────────────────────────────────────────────────────────────────
    # Headers
    # ─────────────────────────────────────────────────────────────────

    def get_header(self, name: str) -> HeaderValue | None:
        return self._headers.get(name.lower())

    def set_header(self, name: str, value: HeaderValue) -> None:
        self._headers[name.lower()] = [str(v) for v in value] if isinstance(value, list) else str(value)

    def has_header(self, name: str) -> bool:
        return name.lower() in self._headers

    def remove_header(self, name: str) -> None:
        self._headers.pop(name.lower(), None)

    def get_headers(self) -> dict[str, HeaderValue]:
        return dict(self._headers)

    def clear_headers(self) -> None:
        self._headers.clear()

    # ─────────────────────────────────────────────────────────────────
    # Body
    # ─────────────────────────────────────────────────────────────────

    @property
    def writable(self) -> bool:
        return not (self.finished or self.aborted)

    async def write_head(self) -> None:
        if self.headers_sent:
            return
        self.headers_sent = True
        headers = [
            (name.encode("latin-1"), v.encode("latin-1"))
            for name, value in self._headers.items()
            for v in (value if isinstance(value, list) else [value])
        ]
        await self._send({"type": "http.response.start", "status": self.status_code, "headers": headers})

    async def write(self, chunk: bytes) -> bool:
        """Send a body chunk. Returns False when the response can no longer be written."""
        if not self.writable:
            return False
        await self.write_head()
        if chunk:
            await self._send({"type": "http.response.body", "body": bytes(chunk), "more_body": True})
        return True

    async def end(self, chunk: bytes = b"") -> None:
        """Send the final chunk and fire finished listeners."""
        if not self.writable:
            return
        await self.write_head()
        await self._send({"type": "http.response.body", "body": bytes(chunk), "more_body": False})
        self.finished = True
        await self._finish(None)

    async def abort(self) -> None:
        """Mark the client as gone and fire finished listeners."""
        if not self.writable:
            return
        self.aborted = True
        await self._finish(None)

    # ─────────────────────────────────────────────────────────────────
    # Finished listeners
    # ─────────────────────────────────────────────────────────────────

    def on_finished(self, listener: FinishedListener) -> None:
        """Register ``listener(err)`` to run once the response finishes or aborts.

        A listener registered after that point runs right away. If it returns
        an awaitable, ``settle()`` waits for it.
        """
        if self.writable:
            self._listeners.append(listener)
            return
        result = listener(None)
        if inspect.isawaitable(result):
            self._late.append(asyncio.ensure_future(result))

    async def _finish(self, err: BaseException | None) -> None:
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            result = listener(err)
            if inspect.isawaitable(result):
                await result

    async def settle(self) -> None:
        """Wait for late finished listeners; the first failure is raised."""
        late, self._late = self._late, []
        if late:
            await asyncio.gather(*late)


def exchange_from_scope(scope: Scope, receive: Receive, send: Send) -> tuple[RawRequest, RawResponse]:
    """Build the raw handles for one ``http`` scope. A client disconnect aborts the response."""
    req, res = RawRequest(scope, receive), RawResponse(send)
    req.on_disconnect(res.abort)
    return req, res

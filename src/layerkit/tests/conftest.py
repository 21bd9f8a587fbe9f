"""Shared fixtures: an in-memory ASGI client and isolated settings."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from typing import Any

import orjson
import pytest

from layerkit import Application, Context, clear_settings_cache
from layerkit.io.asgi import Message, exchange_from_scope


# ─────────────────────────────────────────────────────────────────────────────
# In-memory ASGI client
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class Result:
    """Everything the application sent for one exchange."""

    status: int | None = None
    raw_headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    messages: list[Message] = field(default_factory=list)

    @property
    def headers(self) -> dict[str, str]:
        """Lower-cased header names; repeated headers joined with ``", "``."""
        out: dict[str, str] = {}
        for name, value in self.raw_headers:
            out[name] = f"{out[name]}, {value}" if name in out else value
        return out

    @property
    def text(self) -> str:
        return self.body.decode()

    def json(self) -> Any:
        return orjson.loads(self.body)

    def header_list(self, name: str) -> list[str]:
        return [v for n, v in self.raw_headers if n == name]


def make_scope(
    method: str = "GET",
    path: str = "/",
    headers: dict[str, str] | list[tuple[str, str]] | None = None,
    *,
    scheme: str = "http",
    client: tuple[str, int] | None = ("127.0.0.1", 50000),
) -> dict[str, Any]:
    path, _, query = path.partition("?")
    items = headers.items() if isinstance(headers, dict) else (headers or [])
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": scheme,
        "path": path,
        "raw_path": path.encode(),
        "query_string": query.encode(),
        "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in items],
        "client": client,
        "server": ("testserver", 80),
    }


class Recorder:
    """ASGI ``receive``/``send`` pair backed by lists."""

    def __init__(self, body: bytes = b"") -> None:
        self._inbound: list[Message] = [{"type": "http.request", "body": body, "more_body": False}]
        self.result = Result()

    async def receive(self) -> Message:
        if self._inbound:
            return self._inbound.pop(0)
        await asyncio.Event().wait()
        raise AssertionError("unreachable")

    async def send(self, message: Message) -> None:
        self.result.messages.append(message)
        if message["type"] == "http.response.start":
            self.result.status = message["status"]
            self.result.raw_headers = [(k.decode("latin-1"), v.decode("latin-1")) for k, v in message["headers"]]
        elif message["type"] == "http.response.body":
            self.result.body += message.get("body", b"")


class HangUp(Recorder):
    """Recorder whose client disconnects after the request body.

    With ``after_first_chunk`` the client waits for the first response body
    chunk before hanging up.
    """

    def __init__(self, *bodies: bytes, after_first_chunk: bool = False) -> None:
        super().__init__()
        self._inbound = [
            {"type": "http.request", "body": chunk, "more_body": i < len(bodies) - 1}
            for i, chunk in enumerate(bodies or (b"",))
        ]
        self.hung_up = asyncio.Event()
        if not after_first_chunk:
            self.hung_up.set()

    async def receive(self) -> Message:
        if self._inbound:
            return self._inbound.pop(0)
        await self.hung_up.wait()
        return {"type": "http.disconnect"}

    async def send(self, message: Message) -> None:
        await super().send(message)
        if message["type"] == "http.response.body" and message.get("body"):
            self.hung_up.set()


async def request(
    app: Application,
    method: str = "GET",
    path: str = "/",
    headers: dict[str, str] | list[tuple[str, str]] | None = None,
    body: bytes = b"",
    **scope_kw: Any,
) -> Result:
    """Run one exchange through ``app`` and return what it sent."""
    recorder = Recorder(body)
    await app(make_scope(method, path, headers, **scope_kw), recorder.receive, recorder.send)
    return recorder.result


def make_context(
    app: Application,
    method: str = "GET",
    path: str = "/",
    headers: dict[str, str] | list[tuple[str, str]] | None = None,
    **scope_kw: Any,
) -> tuple[Context, Recorder]:
    """Build a context outside the pipeline, for unit-testing the views."""
    recorder = Recorder()
    req, res = exchange_from_scope(make_scope(method, path, headers, **scope_kw), recorder.receive, recorder.send)
    return app.create_context(req, res), recorder


# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch):
    """Drop LAYERKIT_* variables and the cached settings around every test."""
    for name in list(os.environ):
        if name.startswith("LAYERKIT_"):
            monkeypatch.delenv(name)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def app() -> Application:
    return Application(env="test")


@pytest.fixture
def fetch():
    """``await fetch(app, method, path, headers, body)`` -> Result."""
    return request


@pytest.fixture
def exchange():
    """``exchange(app, method, path, headers)`` -> (ctx, recorder), no pipeline run."""
    return make_context


@pytest.fixture
def hang_up():
    """``HangUp(*bodies, after_first_chunk=False)``: a client that disconnects."""
    return HangUp


@pytest.fixture
def scope():
    """``scope(method, path, headers)`` -> an ``http`` scope dict."""
    return make_scope

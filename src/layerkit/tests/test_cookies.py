"""Tests for cookie parsing, signing and Set-Cookie serialization."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from layerkit import Application
from layerkit.io import Cookies, Keygrip, parse_cookie_header


class TestParse:
    def test_basic(self) -> None:
        assert parse_cookie_header("a=1; b=two; c=\"quoted\"") == {"a": "1", "b": "two", "c": "quoted"}

    def test_first_wins_and_junk_skipped(self) -> None:
        assert parse_cookie_header("a=1; a=2; junk; =x") == {"a": "1"}

    def test_empty(self) -> None:
        assert parse_cookie_header("") == {}


class TestKeygrip:
    def test_sign_and_verify(self) -> None:
        grip = Keygrip(["secret"])
        sig = grip.sign("session=abc")
        assert "=" not in sig
        assert grip.verify("session=abc", sig)
        assert not grip.verify("session=abd", sig)

    def test_rotation(self) -> None:
        old = Keygrip(["old"])
        rotated = Keygrip(["new", "old"])
        sig = old.sign("data")
        assert rotated.index("data", sig) == 1
        assert rotated.index("data", rotated.sign("data")) == 0
        assert rotated.index("data", "bogus") == -1

    def test_requires_keys(self) -> None:
        with pytest.raises(ValueError):
            Keygrip([])


class TestCookies:
    def test_get_plain(self, app: Application, exchange) -> None:
        ctx, _ = exchange(app, headers={"cookie": "theme=dark; lang=en"})
        assert ctx.cookies.get("theme") == "dark"
        assert ctx.cookies.get("missing") is None

    def test_set_serializes_attributes(self, app: Application, exchange) -> None:
        ctx, _ = exchange(app)
        ctx.cookies.set(
            "theme", "dark",
            max_age=60,
            expires=datetime(2030, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
            domain="example.com",
            same_site="lax",
        )
        assert ctx.res.get_header("set-cookie") == [
            "theme=dark; max-age=60; expires=Wed, 02 Jan 2030 03:04:05 GMT; path=/; "
            "domain=example.com; samesite=lax; httponly"
        ]

    def test_delete(self, app: Application, exchange) -> None:
        ctx, _ = exchange(app)
        ctx.cookies.set("theme", None, http_only=False)
        assert ctx.res.get_header("set-cookie") == ["theme=; expires=Thu, 01 Jan 1970 00:00:00 GMT; path=/"]

    def test_multiple_and_overwrite(self, app: Application, exchange) -> None:
        ctx, _ = exchange(app)
        ctx.cookies.set("a", "1").set("b", "2").set("a", "3", overwrite=True)
        assert ctx.res.get_header("set-cookie") == ["b=2; path=/; httponly", "a=3; path=/; httponly"]

    def test_invalid_name(self, app: Application, exchange) -> None:
        ctx, _ = exchange(app)
        with pytest.raises(ValueError, match="name is invalid"):
            ctx.cookies.set("bad name", "x")

    def test_secure_requires_https(self, app: Application, exchange) -> None:
        ctx, _ = exchange(app)
        with pytest.raises(ValueError, match="unencrypted"):
            ctx.cookies.set("token", "x", secure=True)

        ctx, _ = exchange(app, scheme="https")
        ctx.cookies.set("token", "x")
        assert ctx.res.get_header("set-cookie") == ["token=x; path=/; secure; httponly"]


class TestSignedCookies:
    def test_set_adds_signature_cookie(self, exchange) -> None:
        app = Application(env="test", keys=["k1"])
        ctx, _ = exchange(app)
        ctx.cookies.set("session", "abc")
        sig = Keygrip(["k1"]).sign("session=abc")
        assert ctx.res.get_header("set-cookie") == [
            "session=abc; path=/; httponly",
            f"session.sig={sig}; path=/; httponly",
        ]

    def test_get_verifies(self, exchange) -> None:
        app = Application(env="test", keys=["k1"])
        sig = Keygrip(["k1"]).sign("session=abc")
        ctx, _ = exchange(app, headers={"cookie": f"session=abc; session.sig={sig}"})
        assert ctx.cookies.get("session") == "abc"
        assert ctx.res.get_header("set-cookie") is None

    def test_tampered_value_is_rejected_and_signature_expired(self, exchange) -> None:
        app = Application(env="test", keys=["k1"])
        sig = Keygrip(["k1"]).sign("session=abc")
        ctx, _ = exchange(app, headers={"cookie": f"session=evil; session.sig={sig}"})
        assert ctx.cookies.get("session") is None
        (expired,) = ctx.res.get_header("set-cookie")
        assert expired.startswith("session.sig=; expires=Thu, 01 Jan 1970")

    def test_missing_signature(self, exchange) -> None:
        app = Application(env="test", keys=["k1"])
        ctx, _ = exchange(app, headers={"cookie": "session=abc"})
        assert ctx.cookies.get("session") is None
        assert ctx.cookies.get("session", signed=False) == "abc"

    def test_old_key_is_resigned(self, exchange) -> None:
        app = Application(env="test", keys=["new", "old"])
        old_sig = Keygrip(["old"]).sign("session=abc")
        ctx, _ = exchange(app, headers={"cookie": f"session=abc; session.sig={old_sig}"})
        assert ctx.cookies.get("session") == "abc"
        new_sig = Keygrip(["new"]).sign("session=abc")
        assert ctx.res.get_header("set-cookie") == [f"session.sig={new_sig}; path=/; httponly"]

    def test_signing_without_keys(self, app: Application, exchange) -> None:
        ctx, _ = exchange(app)
        with pytest.raises(ValueError, match="keys required"):
            ctx.cookies.set("session", "abc", signed=True)

    @pytest.mark.asyncio
    async def test_set_cookie_headers_reach_the_wire(self, fetch) -> None:
        app = Application(env="test", keys=["k1"])

        async def login(ctx, next) -> None:
            ctx.cookies.set("session", "abc")
            ctx.body = "ok"

        result = await fetch(app.use(login))
        cookies = result.header_list("set-cookie")
        assert len(cookies) == 2
        assert cookies[0] == "session=abc; path=/; httponly"
        assert cookies[1].startswith("session.sig=")


def test_cookies_standalone() -> None:
    """Cookies works on raw handles without an application."""
    from layerkit.io.asgi import RawRequest, RawResponse

    async def receive() -> dict:
        return {}

    async def send(message: dict) -> None:
        pass

    req = RawRequest({"type": "http", "headers": [(b"cookie", b"x=1")]}, receive)
    res = RawResponse(send)
    cookies = Cookies(req, res)
    assert cookies.get("x") == "1"
    assert cookies.request_cookies == {"x": "1"}

"""Tests for error handling: the application reporter and the context error response."""

from __future__ import annotations

import io

import pytest

from layerkit import Application, Context, HttpError, NonErrorRaisedError, create_error


def raised(exc: BaseException) -> BaseException:
    """Return ``exc`` with a traceback attached."""
    try:
        raise exc
    except BaseException as e:  # noqa: BLE001
        return e


def reporting_app(**kw) -> tuple[Application, io.StringIO]:
    out = io.StringIO()
    return Application(env="development", error_output=out, **kw), out


# ─────────────────────────────────────────────────────────────────────────────
# Application.onerror
# ─────────────────────────────────────────────────────────────────────────────


class TestDefaultReporter:
    """What the default "error" listener prints, and when it stays quiet."""

    def test_unexpected_error_is_printed_indented(self) -> None:
        app, out = reporting_app()
        app.onerror(raised(ValueError("boom")))

        lines = out.getvalue().split("\n")
        assert lines[0] == ""
        assert lines[-2:] == ["", ""]
        body = lines[1:-2]
        assert body, "traceback lines expected"
        assert all(line.startswith("  ") for line in body)
        assert body[0] == "  Traceback (most recent call last):"
        assert body[-1] == "  ValueError: boom"

    def test_404_is_quiet(self) -> None:
        app, out = reporting_app()
        app.onerror(HttpError(404, expose=False))
        assert out.getvalue() == ""

    def test_exposed_error_is_quiet(self) -> None:
        app, out = reporting_app()
        app.onerror(create_error(400, "bad input"))
        assert out.getvalue() == ""

    def test_server_http_error_is_printed(self) -> None:
        app, out = reporting_app()
        app.onerror(create_error(502, "upstream down"))
        assert "upstream down" in out.getvalue()

    def test_silent_app_is_quiet(self) -> None:
        app, out = reporting_app(silent=True)
        app.onerror(raised(RuntimeError("x")))
        assert out.getvalue() == ""

    def test_test_env_is_quiet(self) -> None:
        out = io.StringIO()
        app = Application(env="test", error_output=out)
        app.onerror(raised(RuntimeError("x")))
        assert out.getvalue() == ""

    def test_instance_env_overrides_test_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LAYERKIT_ENV", "test")
        out = io.StringIO()
        app = Application(env="production", error_output=out)
        app.onerror(raised(RuntimeError("loud")))
        assert "RuntimeError: loud" in out.getvalue()

    def test_test_env_from_settings_is_quiet(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LAYERKIT_ENV", "TEST")
        out = io.StringIO()
        app = Application(error_output=out)
        app.onerror(raised(RuntimeError("x")))
        assert out.getvalue() == ""

    def test_defaults_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        app = Application(env="development")
        app.onerror(raised(KeyError("missing")))
        assert "KeyError: 'missing'" in capsys.readouterr().err

    def test_non_error_is_an_assertion_failure(self) -> None:
        app, out = reporting_app()
        with pytest.raises(NonErrorRaisedError, match="non-error thrown: 'oops'"):
            app.onerror("oops")  # type: ignore[arg-type]
        with pytest.raises(AssertionError):
            app.onerror(42)  # type: ignore[arg-type]
        assert out.getvalue() == ""


# ─────────────────────────────────────────────────────────────────────────────
# Context.onerror through the pipeline
# ─────────────────────────────────────────────────────────────────────────────


class TestErrorResponses:
    """Failures in the pipeline become text/plain error responses."""

    @pytest.mark.asyncio
    async def test_thrown_client_error_exposes_message(self, app: Application, fetch) -> None:
        async def guard(ctx, next) -> None:
            ctx.throw(403, "admins only")

        result = await fetch(app.use(guard))
        assert result.status == 403
        assert result.text == "admins only"
        assert result.headers["content-type"] == "text/plain; charset=utf-8"
        assert result.headers["content-length"] == str(len("admins only"))

    @pytest.mark.asyncio
    async def test_server_error_hides_message(self, app: Application, fetch) -> None:
        async def leak(ctx, next) -> None:
            ctx.throw(500, "password=hunter2")

        result = await fetch(app.use(leak))
        assert result.status == 500
        assert result.text == "Internal Server Error"

    @pytest.mark.asyncio
    async def test_plain_exception_is_500_and_reported(self, fetch) -> None:
        app, out = reporting_app()

        async def broken(ctx, next) -> None:
            raise ZeroDivisionError("division by zero")

        result = await fetch(app.use(broken))
        assert result.status == 500
        assert result.text == "Internal Server Error"
        assert "  ZeroDivisionError: division by zero" in out.getvalue()

    @pytest.mark.asyncio
    async def test_assert_helper(self, app: Application, fetch) -> None:
        async def needs_user(ctx, next) -> None:
            ctx.assert_(ctx.state.get("user"), 401, "login required")

        result = await fetch(app.use(needs_user))
        assert result.status == 401
        assert result.text == "login required"

    @pytest.mark.asyncio
    async def test_error_headers_replace_earlier_headers(self, app: Application, fetch) -> None:
        async def auth(ctx, next) -> None:
            ctx.set("X-Before", "1")
            ctx.throw(401, headers={"WWW-Authenticate": 'Basic realm="api"'})

        result = await fetch(app.use(auth))
        assert result.status == 401
        assert result.text == "Unauthorized"
        assert result.headers["www-authenticate"] == 'Basic realm="api"'
        assert "x-before" not in result.headers

    @pytest.mark.asyncio
    async def test_file_not_found_maps_to_404(self, app: Application, fetch) -> None:
        async def read_missing(ctx, next) -> None:
            raise FileNotFoundError("/srv/missing.txt")

        result = await fetch(app.use(read_missing))
        assert result.status == 404
        assert result.text == "Not Found"

    @pytest.mark.asyncio
    async def test_invalid_status_on_error_falls_back_to_500(self, app: Application, fetch) -> None:
        class Weird(Exception):
            status = 200
            expose = True

        async def weird(ctx, next) -> None:
            raise Weird("should not be a success")

        result = await fetch(app.use(weird))
        assert result.status == 500
        assert result.text == "should not be a success"

    @pytest.mark.asyncio
    async def test_upstream_can_recover(self, app: Application, fetch) -> None:
        async def recover(ctx, next) -> None:
            try:
                await next()
            except HttpError as err:
                ctx.status = err.status
                ctx.body = {"error": err.message}

        async def fail(ctx, next) -> None:
            ctx.throw(422, "bad field")

        result = await fetch(app.use(recover).use(fail))
        assert result.status == 422
        assert result.json() == {"error": "bad field"}


# ─────────────────────────────────────────────────────────────────────────────
# Error event
# ─────────────────────────────────────────────────────────────────────────────


class TestErrorEvent:
    """Every exchange failure is emitted once as "error"."""

    @pytest.mark.asyncio
    async def test_listener_receives_error_and_context(self, fetch) -> None:
        app, out = reporting_app()
        seen: list[tuple[BaseException, Context]] = []
        app.on("error", lambda err, ctx: seen.append((err, ctx)))

        async def broken(ctx, next) -> None:
            raise ValueError("custom")

        result = await fetch(app.use(broken))
        assert result.status == 500
        assert len(seen) == 1
        err, ctx = seen[0]
        assert isinstance(err, ValueError)
        assert isinstance(ctx, Context)
        # a registered listener replaces the default reporter
        assert out.getvalue() == ""

    @pytest.mark.asyncio
    async def test_error_after_headers_sent_is_only_reported(self, app: Application, fetch) -> None:
        seen: list[BaseException] = []
        app.on("error", lambda err, ctx: seen.append(err))

        async def partial(ctx, next) -> None:
            ctx.status = 200
            await ctx.res.write(b"partial")
            raise RuntimeError("mid-stream")

        result = await fetch(app.use(partial))
        assert result.status == 200
        assert result.body == b"partial"
        assert result.messages[-1]["more_body"] is True
        assert seen[0].header_sent is True  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_second_onerror_is_a_noop(self, app: Application, exchange) -> None:
        seen: list[BaseException] = []
        app.on("error", lambda err, ctx: seen.append(err))
        ctx, recorder = exchange(app)

        first = HttpError(400, "first")
        await ctx.onerror(first)
        second = HttpError(409, "second")
        await ctx.onerror(second)

        assert recorder.result.status == 400
        assert recorder.result.body == b"first"
        assert seen == [first, second]
        assert getattr(first, "header_sent", False) is False
        assert second.header_sent is True  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_none_is_ignored(self, app: Application, exchange) -> None:
        seen: list[BaseException] = []
        app.on("error", lambda err, ctx: seen.append(err))
        ctx, recorder = exchange(app)
        await ctx.onerror(None)
        assert seen == []
        assert recorder.result.messages == []

    @pytest.mark.asyncio
    async def test_non_error_value_is_wrapped(self, app: Application, exchange) -> None:
        seen: list[BaseException] = []
        app.on("error", lambda err, ctx: seen.append(err))
        ctx, recorder = exchange(app)
        await ctx.onerror("just a string")  # type: ignore[arg-type]
        assert isinstance(seen[0], NonErrorRaisedError)
        assert recorder.result.status == 500

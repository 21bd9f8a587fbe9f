"""Response view: status, headers and body intent for one exchange.

Nothing here writes to the wire. The view records what the response should
be; the finalizer (``layerkit.runtime.respond``) turns that into bytes.

Assigning ``body`` also settles status and headers:

- ``None`` -> 204 (unless already bodiless), content headers removed
- ``str`` -> ``text/html`` when it starts with ``<``, else ``text/plain``
- bytes-like and streams -> ``application/octet-stream``
- anything else -> ``application/json``

An explicit ``status`` assignment is never overridden by a later body.
"""

from __future__ import annotations

import mimetypes
import re
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from html import escape
from typing import TYPE_CHECKING, Any, Literal
from urllib.parse import quote

from layerkit.foundation import statuses
from layerkit.io.negotiation import normalize_type, type_matches

from .body import BytesLike, close_stream, is_stream, serialize_json

if TYPE_CHECKING:
    from layerkit.application import Application
    from layerkit.io.asgi import HeaderValue, RawRequest, RawResponse

    from .context import Context
    from .request import Request

_HTML_START = re.compile(r"^\s*<")
_CHARSET_TYPES = re.compile(r"^(text/|application/(json|javascript|xml)\b)")


def content_type(value: str) -> str | None:
    """Full ``Content-Type`` for a shorthand, extension or media type, with charset where implied."""
    if ";" in value:
        return value
    mime = normalize_type(value)
    if mime is None:
        return None
    return f"{mime}; charset=utf-8" if _CHARSET_TYPES.match(mime) else mime


class Response:
    """Response half of the per-exchange surface."""

    app: Application
    req: RawRequest
    res: RawResponse
    ctx: Context
    request: Request

    _body: Any = None
    _explicit_status: bool = False

    # ─────────────────────────────────────────────────────────────────
    # Status
    # ─────────────────────────────────────────────────────────────────

    @property
    def status(self) -> int:
        return self.res.status_code

    @status.setter
    def status(self, code: int) -> None:
        self._explicit_status = True
        self._assign_status(code)

    def _assign_status(self, code: int) -> None:
        if not isinstance(code, int) or isinstance(code, bool):
            raise TypeError(f"status code must be a number, got {code!r}")
        if not statuses.is_valid(code):
            raise ValueError(f"invalid status code: {code}")
        self.res.status_code = code
        self.res.status_message = statuses.reason(code)
        if self._body is not None and code in statuses.EMPTY:
            self.body = None

    @property
    def message(self) -> str:
        return self.res.status_message or statuses.reason(self.status) or ""

    @message.setter
    def message(self, value: str) -> None:
        self.res.status_message = value

    # ─────────────────────────────────────────────────────────────────
    # Body
    # ─────────────────────────────────────────────────────────────────

    @property
    def body(self) -> Any:
        return self._body

    @body.setter
    def body(self, value: Any) -> None:
        original, self._body = self._body, value
        if self.res.headers_sent:
            return

        if value is None:
            if self.status not in statuses.EMPTY:
                self._assign_status(204)
            self.remove("Content-Type")
            self.remove("Content-Length")
            self.remove("Transfer-Encoding")
            return

        if not self._explicit_status:
            self._assign_status(200)

        set_type = not self.res.has_header("Content-Type")

        if isinstance(value, str):
            if set_type:
                self.type = "html" if _HTML_START.match(value) else "text"
            self.length = len(value.encode())
            return

        if isinstance(value, BytesLike):
            if set_type:
                self.type = "bin"
            self.length = len(value)
            return

        if is_stream(value):
            self.res.on_finished(lambda err: close_stream(value))
            if original is not None and original is not value:
                self.remove("Content-Length")
            if set_type:
                self.type = "bin"
            return

        self.remove("Content-Length")
        self.type = "json"

    @property
    def length(self) -> int | None:
        """``Content-Length``, or the length the current body would have."""
        value = self.res.get_header("Content-Length")
        if isinstance(value, str) and value.isdigit():
            return int(value)
        body = self._body
        if body is None or is_stream(body):
            return None
        if isinstance(body, str):
            return len(body.encode())
        if isinstance(body, BytesLike):
            return len(body)
        return len(serialize_json(body))

    @length.setter
    def length(self, n: int) -> None:
        self.set("Content-Length", str(n))

    @property
    def header_sent(self) -> bool:
        return self.res.headers_sent

    @property
    def writable(self) -> bool:
        return self.res.writable

    # ─────────────────────────────────────────────────────────────────
    # Headers
    # ─────────────────────────────────────────────────────────────────

    @property
    def header(self) -> dict[str, HeaderValue]:
        return self.res.get_headers()

    @property
    def headers(self) -> dict[str, HeaderValue]:
        return self.res.get_headers()

    def get(self, field: str) -> str:
        value = self.res.get_header(field)
        if value is None:
            return ""
        return ", ".join(value) if isinstance(value, list) else value

    def set(self, field: str | dict[str, Any], value: Any = None) -> None:
        """Set one header, or several from a mapping. Lists become repeated headers."""
        if isinstance(field, dict):
            for key, val in field.items():
                self.set(key, val)
            return
        self.res.set_header(field, [str(v) for v in value] if isinstance(value, (list, tuple)) else str(value))

    def append(self, field: str, value: Any) -> None:
        prev = self.res.get_header(field)
        values = [str(v) for v in value] if isinstance(value, (list, tuple)) else [str(value)]
        if prev is not None:
            values = (prev if isinstance(prev, list) else [prev]) + values
        self.set(field, values)

    def remove(self, field: str) -> None:
        self.res.remove_header(field)

    def vary(self, field: str) -> None:
        """Add ``field`` to the ``Vary`` header unless already present."""
        current = [v.strip() for v in self.get("Vary").split(",") if v.strip()]
        if "*" in current:
            return
        if field == "*":
            self.set("Vary", "*")
            return
        if field.lower() not in (v.lower() for v in current):
            self.set("Vary", ", ".join([*current, field]))

    @property
    def type(self) -> str:
        return self.get("Content-Type").split(";", 1)[0].strip()

    @type.setter
    def type(self, value: str | None) -> None:
        full = content_type(value) if value else None
        if full:
            self.set("Content-Type", full)
        else:
            self.remove("Content-Type")

    def is_(self, *types: str) -> str | Literal[False]:
        """Match the response ``Content-Type`` against ``types``."""
        current = self.type.lower()
        if not current:
            return False
        if not types:
            return current
        for candidate in types:
            normalized = normalize_type(candidate)
            if normalized and type_matches(normalized, current):
                return candidate
        return False

    @property
    def last_modified(self) -> datetime | None:
        value = self.get("Last-Modified")
        if not value:
            return None
        try:
            return parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None

    @last_modified.setter
    def last_modified(self, value: datetime | str) -> None:
        if isinstance(value, datetime):
            value = format_datetime(value.astimezone(timezone.utc), usegmt=True)
        self.set("Last-Modified", value)

    @property
    def etag(self) -> str:
        return self.get("ETag")

    @etag.setter
    def etag(self, value: str) -> None:
        if not value.startswith(('"', 'W/"')):
            value = f'"{value}"'
        self.set("ETag", value)

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    def redirect(self, url: str, alt: str | None = None) -> None:
        """Redirect to ``url``; ``"back"`` uses the Referer, then ``alt``, then ``/``.

        Keeps an explicit 3xx status, otherwise answers 302. The body is a
        short HTML or text note, depending on what the client accepts.
        """
        if url == "back":
            url = self.ctx.get("Referrer") or alt or "/"
        self.set("Location", url)

        if self.status not in statuses.REDIRECT:
            self.status = 302

        if self.ctx.accepts("html") == "html":
            safe = escape(url)
            self.type = "html"
            self.body = f'Redirecting to <a href="{safe}">{safe}</a>.'
            return
        self.type = "text"
        self.body = f"Redirecting to {url}."

    def attachment(self, filename: str | None = None) -> None:
        """Mark the response as a download; the filename also sets the type."""
        if filename:
            name = filename.replace("\\", "/").rsplit("/", 1)[-1]
            guessed, _ = mimetypes.guess_type(name, strict=False)
            if guessed:
                self.type = guessed
            fallback = name.encode("ascii", "replace").decode().replace("?", "_").replace('"', "")
            self.set("Content-Disposition", f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(name)}")
        else:
            self.set("Content-Disposition", "attachment")

    def to_json(self) -> dict[str, Any]:
        return {"status": self.status, "message": self.message, "header": self.header}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.status} {self.message}>"


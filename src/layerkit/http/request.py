"""Request view: a convenience layer over the raw request handle.

One instance exists per exchange, created by the application's context
factory. It holds ``app``, ``req``, ``res``, ``ctx`` and ``response``
back-references.
"""

from __future__ import annotations

import ipaddress
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any, Literal
from urllib.parse import parse_qs, urlencode, urlsplit

from layerkit.io.negotiation import normalize_type, type_matches

if TYPE_CHECKING:
    from layerkit.application import Application
    from layerkit.io.asgi import RawRequest, RawResponse
    from layerkit.io.negotiation import Accepts

    from .context import Context
    from .response import Response

_IDEMPOTENT = frozenset({"GET", "HEAD", "PUT", "DELETE", "OPTIONS", "TRACE"})


def _is_ip(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return True


def _http_date(value: str | None):
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


class Request:
    """Request half of the per-exchange surface."""

    app: Application
    req: RawRequest
    res: RawResponse
    ctx: Context
    response: Response
    original_url: str
    accept: Accepts

    # ─────────────────────────────────────────────────────────────────
    # Headers
    # ─────────────────────────────────────────────────────────────────

    @property
    def header(self) -> dict[str, str]:
        return self.req.headers

    @property
    def headers(self) -> dict[str, str]:
        return self.req.headers

    def get(self, field: str) -> str:
        """Request header ``field`` (case-insensitive); ``""`` when absent.

        ``Referer`` and ``Referrer`` are interchangeable.
        """
        name = field.lower()
        if name in ("referer", "referrer"):
            return self.req.headers.get("referrer") or self.req.headers.get("referer", "")
        return self.req.headers.get(name, "")

    # ─────────────────────────────────────────────────────────────────
    # URL
    # ─────────────────────────────────────────────────────────────────

    @property
    def url(self) -> str:
        return self.req.url

    @url.setter
    def url(self, value: str) -> None:
        self.req.url = value

    @property
    def method(self) -> str:
        return self.req.method

    @method.setter
    def method(self, value: str) -> None:
        self.req.method = value.upper()

    @property
    def path(self) -> str:
        return urlsplit(self.req.url).path

    @path.setter
    def path(self, value: str) -> None:
        query = self.querystring
        self.req.url = f"{value}?{query}" if query else value

    @property
    def querystring(self) -> str:
        return urlsplit(self.req.url).query

    @querystring.setter
    def querystring(self, value: str) -> None:
        path = self.path
        self.req.url = f"{path}?{value}" if value else path

    @property
    def search(self) -> str:
        query = self.querystring
        return f"?{query}" if query else ""

    @search.setter
    def search(self, value: str) -> None:
        self.querystring = value.removeprefix("?")

    @property
    def query(self) -> dict[str, str | list[str]]:
        """Parsed query string; repeated keys map to lists."""
        parsed = parse_qs(self.querystring, keep_blank_values=True)
        return {k: v[0] if len(v) == 1 else v for k, v in parsed.items()}

    @query.setter
    def query(self, value: dict[str, Any]) -> None:
        self.querystring = urlencode(value, doseq=True)

    @property
    def origin(self) -> str:
        return f"{self.protocol}://{self.host}"

    @property
    def href(self) -> str:
        """Full URL; proxies may send an absolute request target."""
        if "://" in self.original_url.split("?", 1)[0]:
            return self.original_url
        return self.origin + self.original_url

    # ─────────────────────────────────────────────────────────────────
    # Connection
    # ─────────────────────────────────────────────────────────────────

    @property
    def protocol(self) -> str:
        """``http`` or ``https``; ``X-Forwarded-Proto`` is trusted when ``app.proxy`` is set."""
        if self.app.proxy and (forwarded := self.get("x-forwarded-proto")):
            return forwarded.split(",", 1)[0].strip()
        return "https" if self.req.scheme in ("https", "wss") else "http"

    @property
    def secure(self) -> bool:
        return self.protocol == "https"

    @property
    def host(self) -> str:
        """Host with port; ``X-Forwarded-Host`` is trusted when ``app.proxy`` is set."""
        host = self.app.proxy and self.get("x-forwarded-host")
        if not host:
            host = self.get("host")
        return host.split(",", 1)[0].strip() if host else ""

    @property
    def hostname(self) -> str:
        host = self.host
        if not host:
            return ""
        if host.startswith("["):
            return host[1:host.index("]")] if "]" in host else host
        return host.split(":", 1)[0]

    @property
    def ips(self) -> list[str]:
        if not self.app.proxy:
            return []
        forwarded = self.get("x-forwarded-for")
        return [ip.strip() for ip in forwarded.split(",") if ip.strip()] if forwarded else []

    @property
    def ip(self) -> str:
        return (self.ips or [self.req.remote_address or ""])[0]

    @property
    def subdomains(self) -> list[str]:
        """Host labels left of the application's ``subdomain_offset``, nearest first.

        For ``tobi.ferrets.example.com`` with offset 2 this is
        ``["ferrets", "tobi"]``.
        """
        hostname = self.hostname
        if not hostname or _is_ip(hostname):
            return []
        return hostname.split(".")[::-1][self.app.subdomain_offset:]

    # ─────────────────────────────────────────────────────────────────
    # Content
    # ─────────────────────────────────────────────────────────────────

    @property
    def type(self) -> str:
        return self.get("content-type").split(";", 1)[0].strip().lower()

    @property
    def charset(self) -> str:
        for param in self.get("content-type").split(";")[1:]:
            key, _, value = param.partition("=")
            if key.strip().lower() == "charset":
                return value.strip().strip('"').lower()
        return ""

    @property
    def length(self) -> int | None:
        value = self.get("content-length")
        return int(value) if value.isdigit() else None

    @property
    def has_body(self) -> bool:
        return bool(self.get("transfer-encoding")) or self.length is not None

    def is_(self, *types: str) -> str | Literal[False] | None:
        """Match the request ``Content-Type`` against ``types``.

        Returns None when the request has no body, the matching entry of
        ``types`` (or the content type itself when no types are given), or
        False when nothing matches.
        """
        if not self.has_body:
            return None
        content_type = self.type
        if not types:
            return content_type or False
        if not content_type:
            return False
        for candidate in types:
            normalized = normalize_type(candidate)
            if normalized and type_matches(normalized, content_type):
                return candidate
        return False

    @property
    def idempotent(self) -> bool:
        return self.method in _IDEMPOTENT

    @property
    def fresh(self) -> bool:
        """Whether the client's cached copy (If-None-Match / If-Modified-Since) is still valid."""
        if self.method not in ("GET", "HEAD"):
            return False
        status = self.ctx.status
        if not (200 <= status < 300 or status == 304):
            return False

        none_match = self.get("if-none-match")
        modified_since = self.get("if-modified-since")
        if not none_match and not modified_since:
            return False
        if "no-cache" in self.get("cache-control").lower():
            return False
        if none_match and none_match.strip() != "*":
            etag = self.response.get("etag")
            if not etag:
                return False
            tags = {t.strip().removeprefix("W/") for t in none_match.split(",")}
            if etag.removeprefix("W/") not in tags:
                return False
        if modified_since:
            last_modified = _http_date(self.response.get("last-modified"))
            since = _http_date(modified_since)
            if last_modified is None or since is None or last_modified > since:
                return False
        return True

    @property
    def stale(self) -> bool:
        return not self.fresh

    # ─────────────────────────────────────────────────────────────────
    # Negotiation
    # ─────────────────────────────────────────────────────────────────

    def accepts(self, *types: str) -> list[str] | str | None:
        return self.accept.types(*types)

    def accepts_encodings(self, *encodings: str) -> list[str] | str | None:
        return self.accept.encodings(*encodings)

    def accepts_charsets(self, *charsets: str) -> list[str] | str | None:
        return self.accept.charsets(*charsets)

    def accepts_languages(self, *languages: str) -> list[str] | str | None:
        return self.accept.languages(*languages)

    # ─────────────────────────────────────────────────────────────────

    def to_json(self) -> dict[str, Any]:
        return {"method": self.method, "url": self.url, "header": dict(self.header)}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.method} {self.url}>"

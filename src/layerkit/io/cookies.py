"""Cookie access for one exchange, with optional HMAC signing.

Signed cookies carry a companion ``<name>.sig`` cookie holding a
URL-safe base64 HMAC-SHA1 of ``name=value`` computed with the newest key.
Older keys still verify; a value verified by an older key is re-signed
with the newest one.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import re
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime, formatdate
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from .asgi import RawRequest, RawResponse

_TOKEN = re.compile(r"^[\u0009 -~\u0080-\u00ff]+$")
_EPOCH = formatdate(0, usegmt=True)


class Keygrip:
    """Rotating HMAC signing keys, newest first."""

    __slots__ = ("keys",)

    def __init__(self, keys: Sequence[str]) -> None:
        if not keys:
            raise ValueError("Keygrip requires at least one key")
        self.keys = list(keys)

    @staticmethod
    def _sign(data: str, key: str) -> str:
        digest = hmac.new(key.encode(), data.encode(), hashlib.sha1).digest()
        return base64.urlsafe_b64encode(digest).rstrip(b"=").decode()

    def sign(self, data: str) -> str:
        return self._sign(data, self.keys[0])

    def index(self, data: str, digest: str) -> int:
        """Index of the key that produced ``digest``, or -1."""
        for i, key in enumerate(self.keys):
            if hmac.compare_digest(self._sign(data, key), digest):
                return i
        return -1

    def verify(self, data: str, digest: str) -> bool:
        return self.index(data, digest) > -1


def parse_cookie_header(header: str) -> dict[str, str]:
    """Parse a ``Cookie`` header into a dict. The first occurrence of a name wins."""
    cookies: dict[str, str] = {}
    for part in header.split(";"):
        name, sep, value = part.partition("=")
        name, value = name.strip(), value.strip()
        if not sep or not name or name in cookies:
            continue
        if len(value) > 1 and value[0] == value[-1] == '"':
            value = value[1:-1]
        cookies[name] = value
    return cookies


class Cookies:
    """Read request cookies and queue ``Set-Cookie`` headers on the response.

    Example:
        >>> ctx.cookies.set("session", "abc", max_age=3600, signed=True)
        >>> ctx.cookies.get("session", signed=True)
    """

    def __init__(
        self,
        req: RawRequest,
        res: RawResponse,
        *,
        keys: Sequence[str] | Keygrip | None = None,
        secure: bool = False,
    ) -> None:
        self.req = req
        self.res = res
        self.secure = secure
        self.keys = keys if isinstance(keys, Keygrip) or keys is None else (Keygrip(keys) if keys else None)
        self._parsed: dict[str, str] | None = None

    @property
    def request_cookies(self) -> dict[str, str]:
        if self._parsed is None:
            self._parsed = parse_cookie_header(self.req.headers.get("cookie", ""))
        return self._parsed

    def get(self, name: str, *, signed: bool | None = None) -> str | None:
        """Value of cookie ``name``; with signing, None unless the signature verifies."""
        signed = bool(self.keys) if signed is None else signed
        value = self.request_cookies.get(name)
        if not signed or value is None:
            return value
        if self.keys is None:
            raise ValueError(".keys required for signed cookies")

        sig_name = f"{name}.sig"
        remote = self.request_cookies.get(sig_name)
        if remote is None:
            return None
        data = f"{name}={value}"
        index = self.keys.index(data, remote)
        if index < 0:
            self.set(sig_name, None, path="/", signed=False)
            return None
        if index > 0:
            self.set(sig_name, self.keys.sign(data), signed=False)
        return value

    def set(
        self,
        name: str,
        value: str | None = None,
        *,
        signed: bool | None = None,
        max_age: int | timedelta | None = None,
        expires: datetime | None = None,
        path: str = "/",
        domain: str | None = None,
        secure: bool | None = None,
        http_only: bool = True,
        same_site: Literal["strict", "lax", "none"] | None = None,
        overwrite: bool = False,
    ) -> Cookies:
        """Queue a ``Set-Cookie`` header. ``value=None`` expires the cookie.

        Raises:
            ValueError: On an invalid name/value, a secure cookie over plain
                HTTP, or signing without keys
        """
        signed = bool(self.keys) if signed is None else signed
        secure = self.secure if secure is None else secure
        if not _TOKEN.match(name) or any(c in name for c in "=;, "):
            raise ValueError(f"argument name is invalid: {name!r}")
        if value and not _TOKEN.match(value):
            raise ValueError(f"argument value is invalid: {value!r}")
        if secure and not self.secure:
            raise ValueError("Cannot send secure cookie over unencrypted connection")

        headers = self._outgoing()
        self._push(headers, self._serialize(name, value, max_age=max_age, expires=expires, path=path,
                                            domain=domain, secure=secure, http_only=http_only,
                                            same_site=same_site), name, overwrite)
        if signed:
            if self.keys is None:
                raise ValueError(".keys required for signed cookies")
            sig = self.keys.sign(f"{name}={value or ''}") if value is not None else None
            self._push(headers, self._serialize(f"{name}.sig", sig, max_age=max_age, expires=expires, path=path,
                                                domain=domain, secure=secure, http_only=http_only,
                                                same_site=same_site), f"{name}.sig", overwrite)
        self.res.set_header("Set-Cookie", headers)
        return self

    def _outgoing(self) -> list[str]:
        current = self.res.get_header("Set-Cookie")
        if current is None:
            return []
        return list(current) if isinstance(current, list) else [current]

    @staticmethod
    def _push(headers: list[str], cookie: str, name: str, overwrite: bool) -> None:
        if overwrite:
            headers[:] = [h for h in headers if not h.startswith(f"{name}=")]
        headers.append(cookie)

    @staticmethod
    def _serialize(
        name: str,
        value: str | None,
        *,
        max_age: int | timedelta | None,
        expires: datetime | None,
        path: str,
        domain: str | None,
        secure: bool,
        http_only: bool,
        same_site: str | None,
    ) -> str:
        parts = [f"{name}={value or ''}"]
        if value is None:
            parts.append(f"expires={_EPOCH}")
        else:
            if isinstance(max_age, timedelta):
                max_age = int(max_age.total_seconds())
            if max_age is not None:
                parts.append(f"max-age={max_age}")
                if expires is None:
                    expires = datetime.now().astimezone() + timedelta(seconds=max_age)
            if expires is not None:
                parts.append(f"expires={format_datetime(expires.astimezone(timezone.utc), usegmt=True)}")
        if path:
            parts.append(f"path={path}")
        if domain:
            parts.append(f"domain={domain}")
        if same_site:
            parts.append(f"samesite={same_site}")
        if secure:
            parts.append("secure")
        if http_only:
            parts.append("httponly")
        return "; ".join(parts)

"""Transport and header helpers: ASGI raw handles, cookies, accept negotiation."""

from .asgi import RawRequest, RawResponse, exchange_from_scope
from .cookies import Cookies, Keygrip, parse_cookie_header
from .negotiation import Accepts, normalize_type, parse_accept

__all__ = [
    "RawRequest", "RawResponse", "exchange_from_scope",
    "Cookies", "Keygrip", "parse_cookie_header",
    "Accepts", "normalize_type", "parse_accept",
]

"""Per-exchange surface: Context, Request and Response views."""

from .body import is_json, is_stream, serialize_json
from .context import Context
from .delegates import Delegate
from .request import Request
from .response import Response, content_type

__all__ = [
    "Context",
    "Delegate",
    "Request",
    "Response",
    "content_type",
    "is_json",
    "is_stream",
    "serialize_json",
]

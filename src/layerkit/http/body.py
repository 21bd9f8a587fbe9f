"""Body value classification, JSON serialization and stream iteration.

A response body is one of:

- ``None``
- ``str``
- bytes-like (``bytes``, ``bytearray``, ``memoryview``)
- a stream: an async iterable, an iterator, or a file-like object with
  ``read()`` (sync or async)
- anything else, serialized as JSON
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncIterable, AsyncIterator, Iterator
from typing import Any

import orjson
from pydantic import BaseModel

BytesLike = (bytes, bytearray, memoryview)

_CHUNK_SIZE = 64 * 1024
_EXHAUSTED = object()


def is_stream(body: object) -> bool:
    if isinstance(body, (str, *BytesLike)):
        return False
    return isinstance(body, (AsyncIterable, Iterator)) or callable(getattr(body, "read", None))


def is_json(body: object) -> bool:
    """Whether ``body`` would be sent as JSON."""
    return body is not None and not isinstance(body, (str, *BytesLike)) and not is_stream(body)


def _default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (set, frozenset)):
        return list(value)
    raise TypeError(f"Type is not JSON serializable: {type(value).__name__}")


def serialize_json(body: object) -> bytes:
    """Compact JSON encoding of ``body``.

    Raises:
        TypeError: If the value is not serializable (``orjson.JSONEncodeError``)
    """
    return orjson.dumps(body, default=_default)


def _encode(chunk: object) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode()
    return bytes(chunk)  # type: ignore[arg-type]


async def iterate_stream(stream: object) -> AsyncIterator[bytes]:
    """Yield byte chunks from any supported stream shape without buffering it."""
    if isinstance(stream, AsyncIterable):
        async for chunk in stream:
            yield _encode(chunk)
        return
    read = getattr(stream, "read", None)
    if callable(read):
        is_async = inspect.iscoroutinefunction(read)
        while True:
            chunk = await read(_CHUNK_SIZE) if is_async else await asyncio.to_thread(read, _CHUNK_SIZE)
            if not chunk:
                return
            yield _encode(chunk)
    iterator = iter(stream)  # type: ignore[call-overload]
    while (chunk := await asyncio.to_thread(next, iterator, _EXHAUSTED)) is not _EXHAUSTED:
        yield _encode(chunk)


def close_stream(stream: object) -> object:
    """Close a stream body; returns an awaitable for async streams.

    A generator that is mid-step is left alone. The task iterating it
    closes it once the step returns.
    """
    if getattr(stream, "ag_running", False) or getattr(stream, "gi_running", False):
        return None
    if callable(aclose := getattr(stream, "aclose", None)):
        return aclose()
    if callable(close := getattr(stream, "close", None)):
        return close()
    return None

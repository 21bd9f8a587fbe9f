"""Response finalization.

``respond`` runs exactly once, after the middleware pipeline completes, and
turns the context's response intent (status, body, bypass flag) into bytes
on the raw response. The checks run in a fixed order: bypass, bodiless
status, HEAD, missing body, typed bodies, JSON.
"""

from __future__ import annotations

import asyncio
import inspect
from contextlib import aclosing
from typing import TYPE_CHECKING

from layerkit.foundation import statuses
from layerkit.http.body import BytesLike, close_stream, is_json, is_stream, iterate_stream, serialize_json

if TYPE_CHECKING:
    from layerkit.http.context import Context
    from layerkit.io.asgi import RawResponse


async def pipe(stream: object, res: RawResponse) -> None:
    """Copy a stream body to the response chunk by chunk.

    Each chunk yields to the event loop so a disconnect can land. Once the
    response stops being writable the stream is closed and nothing more is sent.
    """
    async with aclosing(iterate_stream(stream)) as chunks:
        async for chunk in chunks:
            if not await res.write(chunk):
                break
            await asyncio.sleep(0)
        else:
            await res.end()
            return
    result = close_stream(stream)
    if inspect.isawaitable(result):
        await result


async def respond(ctx: Context) -> None:
    """Write the final response for ``ctx``.

    Raises:
        TypeError: If a JSON body cannot be serialized
    """
    if ctx.respond is False:
        return

    res = ctx.res
    if res.headers_sent or not ctx.writable:
        return

    body = ctx.body
    code = ctx.status

    if code in statuses.EMPTY:
        ctx.body = None
        await res.end()
        return

    if ctx.method == "HEAD":
        if is_json(body):
            ctx.length = len(serialize_json(body))
        await res.end()
        return

    if body is None:
        ctx.type = "text"
        payload = (ctx.message or str(code)).encode()
        ctx.length = len(payload)
        await res.end(payload)
        return

    if isinstance(body, BytesLike):
        await res.end(bytes(body))
        return
    if isinstance(body, str):
        await res.end(body.encode())
        return
    if is_stream(body):
        await pipe(body, res)
        return

    payload = serialize_json(body)
    ctx.length = len(payload)
    await res.end(payload)

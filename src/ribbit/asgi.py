"""ASGI adapter.

Lets a Router be served by any ASGI 3 server, e.g. ``granian --interface asgi``
or ``uvicorn``. The request body is read in full before dispatch and the
response is sent as a single body message.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, MutableMapping
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from ribbit.http import Request, Response

if TYPE_CHECKING:
    from ribbit.router import Router

type Scope = MutableMapping[str, Any]
type Message = MutableMapping[str, Any]
type Receive = Callable[[], Awaitable[Message]]
type Send = Callable[[Message], Awaitable[None]]


async def serve_asgi(router: Router, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] == "lifespan":
        await _handle_lifespan(receive, send)
    elif scope["type"] == "http":
        request = await request_from_asgi(scope, receive)
        response = await router.handle(request)
        await send_response(response, send)
    else:
        msg = f"unsupported ASGI scope type {scope['type']!r}"
        raise ValueError(msg)


async def _handle_lifespan(receive: Receive, send: Send) -> None:
    """Handle ASGI lifespan events."""
    while True:
        message = await receive()
        if message["type"] == "lifespan.startup":
            await send({"type": "lifespan.startup.complete"})
        elif message["type"] == "lifespan.shutdown":
            await send({"type": "lifespan.shutdown.complete"})
            return


async def request_from_asgi(scope: Scope, receive: Receive) -> Request:
    """Build a Request from an ASGI http scope, reading the whole body."""
    headers: dict[str, str] = {}
    for raw_name, raw_value in scope.get("headers", ()):
        name = raw_name.decode("latin-1").lower()
        value = raw_value.decode("latin-1")
        # repeated headers are folded into one comma-separated value
        headers[name] = f"{headers[name]}, {value}" if name in headers else value

    host = headers.get("host")
    if host is None:
        server = scope.get("server")
        host = f"{server[0]}:{server[1]}" if server else "localhost"
    raw_path = scope.get("raw_path")
    if raw_path:
        # keeps "%2F" inside a segment; some servers append the query string
        path = raw_path.decode("latin-1").partition("?")[0]
    else:
        path = quote(scope["path"])
    url = f"{scope.get('scheme', 'http')}://{host}{path}"
    query_string = scope.get("query_string", b"")
    if query_string:
        url = f"{url}?{query_string.decode('latin-1')}"

    chunks: list[bytes] = []
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break

    client = scope.get("client")
    return Request(
        method=scope["method"],
        url=url,
        headers=headers,
        body=b"".join(chunks),
        client=f"{client[0]}:{client[1]}" if client else None,
    )


async def send_response(response: Response, send: Send) -> None:
    headers = [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in response.headers
    ]
    if response.header("content-length") is None:
        headers.append((b"content-length", str(len(response.body)).encode("latin-1")))
    await send(
        {"type": "http.response.start", "status": response.status, "headers": headers}
    )
    await send({"type": "http.response.body", "body": response.body})

from collections.abc import Mapping

from ribbit import Context, Request, RequestContext, Response
from ribbit.types import Middleware, Next


def make_request(
    path: str = "/",
    method: str = "GET",
    headers: Mapping[str, str] | None = None,
    body: bytes = b"",
    client: str | None = "127.0.0.1:54321",
) -> Request:
    return Request(
        method=method,
        url=f"http://localhost{path}",
        headers=headers or {},
        body=body,
        client=client,
    )


def recording_middleware(name: str, calls: list[str]) -> Middleware:
    """Middleware that records its name before and after the rest of the chain."""

    async def middleware(ctx: Context, next: Next) -> Response:
        calls.append(name)
        response = await next()
        calls.append(f"/{name}")
        return response

    middleware.__qualname__ = name
    return middleware


def recording_handler(name: str, calls: list[str]):
    async def handler(ctx: RequestContext) -> Response:
        calls.append(name)
        return Response.json(
            {
                "handler": name,
                "route": ctx.matched_route,
                "params": dict(ctx.parameters),
                "locals": dict(ctx.locals),
            }
        )

    handler.__qualname__ = name
    return handler

"""Build chain middleware from plain before/after functions."""

from ribbit.chain import invoke
from ribbit.context import Context
from ribbit.http import Response
from ribbit.types import After, Before, Middleware, Next


def create_middleware(before: Before, after: After | None = None) -> Middleware:
    """Create a piece of middleware for use in a router.

    ``before`` runs before the rest of the chain. Its return value (a mapping,
    or None for nothing) is shallow merged into the context locals, with its
    keys winning on collision.

    ``after`` runs once the response is available and is passed the context
    (including the locals returned by ``before``) and the response. It is
    there to observe, e.g. for logging: its return value is discarded.

    Either function may be sync or async. Middleware that needs to replace
    the response or skip the rest of the chain should be written directly
    against the ``(ctx, next)`` contract instead.

    Example: GET "/" returns ``{"foo": "bar", "baz": "qux"}``.

        router = create_router()
        router.use(create_middleware(lambda ctx: {"foo": "bar"}))
        router.use(create_middleware(lambda ctx: {"baz": "qux"}))
        router.get("/", lambda ctx: Response.json(dict(ctx.locals)))
    """

    async def middleware(ctx: Context, next: Next) -> Response:
        new_locals = await invoke(before, ctx)
        ctx = ctx.with_locals(new_locals)
        response = await next(ctx.locals)
        if after is not None:
            await invoke(after, ctx, response)
        return response

    middleware.__qualname__ = getattr(before, "__qualname__", middleware.__qualname__)
    return middleware

"""Middleware chain runner.

Runs an ordered stack of middleware around a terminal step. Each middleware
receives the current context and a ``next`` continuation bound to the
following position in the stack:

    async def auth(ctx: Context, next: Next) -> Response:
        user = await load_user(ctx.request)
        if user is None:
            return Response.json({"message": "Unauthorized"}, status=401)
        return await next({"user": user})

``next(locals)`` merges ``locals`` into the context and runs the rest of the
chain. Not calling it short-circuits: nothing after this middleware runs and
its own return value becomes the response.
"""

import inspect
from collections.abc import Callable, Sequence
from typing import Any

from ribbit.context import Context
from ribbit.http import Response
from ribbit.types import Locals, MaybeAwaitable, Middleware


async def invoke(fn: Callable[..., Any], *args: Any) -> Any:
    """Call fn and await the result if it's awaitable."""
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


async def run_chain(
    stack: Sequence[Middleware],
    ctx: Context,
    terminal: Callable[[Context], MaybeAwaitable[Response]],
) -> Response:
    """Runs stack in order starting from ctx, then terminal.

    One call frame per stack entry; depth is bounded by the configured stack.
    """

    async def step(i: int, ctx: Context) -> Response:
        if i >= len(stack):
            return await invoke(terminal, ctx)

        async def next_(locals: Locals | None = None) -> Response:
            return await step(i + 1, ctx.with_locals(locals))

        return await invoke(stack[i], ctx, next_)

    return await step(0, ctx)

"""Callable shapes for middleware, continuations and handlers.

Every callable may be a plain function or a coroutine function; the chain
runner awaits whatever comes back when it is awaitable.
"""

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from ribbit.context import Context, RequestContext
from ribbit.http import Response

type MaybeAwaitable[T] = T | Awaitable[T]
type Locals = Mapping[str, Any]

# continuation handed to each middleware, runs the rest of the chain
type Next = Callable[..., Awaitable[Response]]

type Middleware = Callable[[Context, Next], MaybeAwaitable[Response]]
type Handler = Callable[[RequestContext], MaybeAwaitable[Response]]

type Before = Callable[[Context], MaybeAwaitable[Locals | None]]
type After = Callable[[Context, Response], MaybeAwaitable[object]]

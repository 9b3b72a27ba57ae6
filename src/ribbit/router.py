"""HTTP router with composable middleware stacks and sub-router mounting.

Two tables back every router tree, shared by reference between a router and
all the sub-routers mounted under it:

    route table   (method, pattern) -> RouteEntry, with a frozen copy of the
                  middleware stack as it was when the route was registered
    stack table   base path, base path + "/*" -> StackEntry, with a live
                  reference to the router's middleware list

A request that matches no route still runs the stack of the innermost router
whose namespace it falls in, then gets a 404.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Self

from ribbit.asgi import Receive, Scope, Send, serve_asgi
from ribbit.chain import run_chain
from ribbit.context import Context, RequestContext
from ribbit.errors import ConfigurationError, StackNotFoundError
from ribbit.http import Request, Response
from ribbit.path import normalize_path
from ribbit.tree import CATCHALL, LeafKey, Match, PathMatcher
from ribbit.types import Handler, MaybeAwaitable, Middleware

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Not found"


@dataclass(frozen=True, slots=True, eq=False)
class RouteEntry:
    # identity hash: the trie holding it is a cache key, handlers may be unhashable
    pattern: str
    stack: tuple[Middleware, ...]
    handler: Handler


@dataclass(frozen=True, slots=True, eq=False)
class StackEntry:
    # not a copy: fallback requests see the router's stack as finally configured
    stack: list[Middleware]


def not_found_response() -> Response:
    return Response.json({"message": NOT_FOUND_MESSAGE}, status=404)


class Router:
    """Routes requests to handlers through ordered middleware.

    Example:
        router = create_router()
        router.use(request_logger)
        router.get("/", home)
        router.route("/admin", lambda admin: admin.use(require_admin).get("/", dashboard))
        response = await router.handle(Request("GET", "http://localhost/admin"))

    Args:
        base_path: Prefix for every route registered on this router.
        strict: Raise ConfigurationError on a duplicate (method, path)
            registration instead of replacing the earlier one with a warning.
        stack: Initial middleware list. The router owns and appends to it.
        route_table: Route table to share with a parent router.
        stack_table: Fallback stack table to share with a parent router.
    """

    __slots__ = ("_base_path", "_routes", "_stack", "_stacks", "_strict")
    _base_path: str
    _stack: list[Middleware]
    _routes: PathMatcher[RouteEntry]
    _stacks: PathMatcher[StackEntry]
    _strict: bool

    def __init__(
        self,
        base_path: str = "",
        *,
        strict: bool = False,
        stack: list[Middleware] | None = None,
        route_table: PathMatcher[RouteEntry] | None = None,
        stack_table: PathMatcher[StackEntry] | None = None,
    ) -> None:
        self._base_path = base_path
        self._strict = strict
        self._stack = stack if stack is not None else []
        self._routes = route_table if route_table is not None else PathMatcher()
        self._stacks = stack_table if stack_table is not None else PathMatcher()

        entry = StackEntry(stack=self._stack)
        self._stacks.add(None, normalize_path(base_path), entry)
        self._stacks.add(None, normalize_path(f"{base_path}/{CATCHALL}"), entry)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await serve_asgi(self, scope, receive, send)

    @property
    def base_path(self) -> str:
        return normalize_path(self._base_path)

    @property
    def middleware(self) -> tuple[Middleware, ...]:
        return tuple(self._stack)

    # --- registration ---------------------------------------------------------
    def use(self, *middleware: Middleware) -> Self:
        """Adds middleware to this router's stack.

        Routes registered before this call keep the stack they were
        registered with.
        """
        self._stack.extend(middleware)
        return self

    def method(self, method: str | None, path: str, handler: Handler) -> Self:
        """Registers handler at path for method, or for any method if None."""
        pattern = normalize_path(self._base_path + path)
        previous = self._routes.get(method, pattern)
        if previous is not None:
            label = method or "*"
            if self._strict:
                msg = f"route {label} {pattern} is already registered"
                raise ConfigurationError(msg)
            logger.warning(
                "route %s %s registered twice, replacing %s",
                label,
                pattern,
                _qualname(previous.handler),
            )
        self._routes.add(
            method,
            pattern,
            RouteEntry(pattern=pattern, stack=tuple(self._stack), handler=handler),
        )
        logger.debug(
            "registered %s %s -> %s", method or "*", pattern, _qualname(handler)
        )
        return self

    def connect(self, path: str, handler: Handler) -> Self:
        """Registers handler at path for CONNECT."""
        return self.method("CONNECT", path, handler)

    def delete(self, path: str, handler: Handler) -> Self:
        """Registers handler at path for DELETE."""
        return self.method("DELETE", path, handler)

    def get(self, path: str, handler: Handler) -> Self:
        """Registers handler at path for GET."""
        return self.method("GET", path, handler)

    def head(self, path: str, handler: Handler) -> Self:
        """Registers handler at path for HEAD."""
        return self.method("HEAD", path, handler)

    def options(self, path: str, handler: Handler) -> Self:
        """Registers handler at path for OPTIONS."""
        return self.method("OPTIONS", path, handler)

    def patch(self, path: str, handler: Handler) -> Self:
        """Registers handler at path for PATCH."""
        return self.method("PATCH", path, handler)

    def post(self, path: str, handler: Handler) -> Self:
        """Registers handler at path for POST."""
        return self.method("POST", path, handler)

    def put(self, path: str, handler: Handler) -> Self:
        """Registers handler at path for PUT."""
        return self.method("PUT", path, handler)

    def trace(self, path: str, handler: Handler) -> Self:
        """Registers handler at path for TRACE."""
        return self.method("TRACE", path, handler)

    def route(self, path: str, configure: Callable[[Router], object]) -> Self:
        """Mounts a sub-router at path and hands it to configure.

        The sub-router starts with a copy of this router's current stack, so
        later ``use`` calls on either router don't affect the other. Routes
        and fallback stacks land in the tables shared by the whole tree.
        """
        sub_router = Router(
            self._base_path + path,
            strict=self._strict,
            stack=list(self._stack),
            route_table=self._routes,
            stack_table=self._stacks,
        )
        logger.debug(
            "mounted router at %s with %d middleware",
            sub_router.base_path,
            len(self._stack),
        )
        configure(sub_router)
        return self

    # --- dispatch -------------------------------------------------------------
    async def handle(self, request: Request) -> Response:
        """Runs request through the matching middleware stack and handler.

        Raises StackNotFoundError if not even a fallback stack covers the
        path. Exceptions from middleware and handlers propagate unchanged.
        """
        path = normalize_path(request.raw_path)
        match = self._routes.find(request.method, path)
        if match is not None:
            stack: tuple[Middleware, ...] | list[Middleware] = match.payload.stack
            matched_route: str | None = match.payload.pattern
        else:
            fallback = self._stacks.find(None, path)
            if fallback is None:
                raise StackNotFoundError(request.method, path)
            logger.debug(
                "no route for %s %s, running fallback stack", request.method, path
            )
            stack = fallback.payload.stack
            matched_route = None

        return await run_chain(
            stack,
            Context(request=request, matched_route=matched_route),
            _terminal(match),
        )

    # --- introspection --------------------------------------------------------
    def routes(self) -> list[tuple[str, str, RouteEntry]]:
        """Returns registered routes as (method, pattern, entry), sorted by pattern."""
        routes = [
            ("*" if key is LeafKey.ANY_HTTP else key.value, pattern, entry)
            for key, pattern, entry in self._routes.routes()
        ]
        routes.sort(key=lambda r: (r[1], r[0]))
        return routes

    def format_routes(self) -> str:
        """Format registered routes as a human-readable string.

        Produces a column-aligned flat route list:

            GET    /                  home
            GET    /admin             dashboard      [request_logger > require_admin]
            POST   /admin/users/:id   rename_user    [request_logger > require_admin]
            GET    /static/*          static_files
        """
        routes = self.routes()
        if not routes:
            return ""

        method_w = max(len(r[0]) for r in routes)
        path_w = max(len(r[1]) for r in routes)
        handler_w = max(len(_qualname(r[2].handler)) for r in routes)

        lines: list[str] = []
        for method, path, entry in routes:
            handler = _qualname(entry.handler)
            if entry.stack:
                mw = " > ".join(_qualname(m) for m in entry.stack)
                lines.append(
                    f"{method:<{method_w}}   {path:<{path_w}}   "
                    f"{handler:<{handler_w}}   [{mw}]"
                )
            else:
                lines.append(f"{method:<{method_w}}   {path:<{path_w}}   {handler}")
        return "\n".join(lines)


def create_router(*, strict: bool = False) -> Router:
    """Create a new root router."""
    return Router("", strict=strict)


def _terminal(
    match: Match[RouteEntry] | None,
) -> Callable[[Context], MaybeAwaitable[Response]]:
    def terminal(ctx: Context) -> MaybeAwaitable[Response]:
        if match is None:
            return not_found_response()
        return match.payload.handler(
            RequestContext(
                request=ctx.request,
                matched_route=match.payload.pattern,
                locals=ctx.locals,
                parameters=match.params,
            )
        )

    return terminal


def _qualname(obj: object) -> str:
    """Extract __qualname__ from a callable, falling back to repr."""
    return str(obj.__qualname__) if hasattr(obj, "__qualname__") else repr(obj)

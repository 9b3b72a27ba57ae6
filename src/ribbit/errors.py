"""Exceptions raised while building or dispatching through a router."""


class RibbitError(Exception):
    """Base for all ribbit-specific errors."""


class ConfigurationError(RibbitError, ValueError):
    """Raised at registration time when a route table cannot be built as asked.

    Conflicting capture names at the same position, malformed patterns and
    duplicate registrations on a strict router all end up here.
    """


class StackNotFoundError(RibbitError, LookupError):
    """No route and no fallback stack covers the requested path.

    Every router registers a catch-all stack for its own base path, so this
    points at a routing misconfiguration (for example a top-level router
    created with a non-root base path) rather than at a bad request.
    """

    def __init__(self, method: str, path: str) -> None:
        self.method = method
        self.path = path
        super().__init__(f"No stack handler found for {method} {path!r}")

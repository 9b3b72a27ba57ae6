from importlib.metadata import version

from .context import Context, RequestContext
from .errors import ConfigurationError, RibbitError, StackNotFoundError
from .http import Request, Response
from .middleware import create_middleware
from .path import normalize_path
from .router import Router, create_router
from .types import Handler, Middleware, Next

__all__ = [
    "ConfigurationError",
    "Context",
    "Handler",
    "Middleware",
    "Next",
    "Request",
    "RequestContext",
    "Response",
    "RibbitError",
    "Router",
    "StackNotFoundError",
    "__version__",
    "create_middleware",
    "create_router",
    "normalize_path",
]

__version__ = version("ribbit")

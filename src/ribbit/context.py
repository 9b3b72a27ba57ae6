"""Immutable per-request context passed along the middleware chain."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Self

from ribbit.frozendict import FrozenDict

if TYPE_CHECKING:
    from ribbit.http import Request


@dataclass(frozen=True, slots=True)
class Context:
    """The context passed to a middleware.

    ``matched_route`` is the registered pattern the request matched, or None
    when only a fallback stack was found. ``locals`` only ever grows: each step
    gets a new context whose locals are the previous ones merged with whatever
    the step before it produced.
    """

    request: Request
    matched_route: str | None = None
    locals: Mapping[str, Any] = field(default_factory=FrozenDict)

    def __post_init__(self) -> None:
        # plain dicts are frozen so mutation is a hard runtime error
        if not isinstance(self.locals, FrozenDict):
            object.__setattr__(self, "locals", FrozenDict(self.locals))

    def with_locals(self, new: Mapping[str, Any] | None) -> Self:
        """Returns a new context with new merged over the current locals."""
        if not new:
            return self
        return dataclasses.replace(self, locals=FrozenDict({**self.locals, **new}))


@dataclass(frozen=True, slots=True)
class RequestContext(Context):
    """The context passed to a request handler.

    Always carries a matched route, plus the path segments captured by it.
    """

    matched_route: str = ""
    parameters: Mapping[str, str] = field(default_factory=FrozenDict)

    def __post_init__(self) -> None:
        super(RequestContext, self).__post_init__()
        if not isinstance(self.parameters, FrozenDict):
            object.__setattr__(self, "parameters", FrozenDict(self.parameters))

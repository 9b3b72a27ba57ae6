"""Immutable HTTP request and response values.

The router only reads ``method`` and ``path`` from a request and never looks
inside a response; both are plain frozen dataclasses so middleware can pass
them around freely and build modified copies.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import unquote, urlsplit

from ribbit.frozendict import FrozenDict


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    ``url`` may be absolute (``http://example.com/a?b=1``) or just a path with
    an optional query string. Header names are stored lower-cased.
    """

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=FrozenDict)
    body: bytes = b""
    client: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(
            self,
            "headers",
            FrozenDict({k.lower(): v for k, v in self.headers.items()}),
        )

    @property
    def path(self) -> str:
        """Percent-decoded URL path, without query string."""
        return unquote(self.raw_path)

    @property
    def raw_path(self) -> str:
        """URL path as sent, still percent-encoded. Routing matches on this."""
        return self._split_url()[1] or "/"

    @property
    def query_string(self) -> str:
        return self._split_url()[2]

    @property
    def scheme(self) -> str:
        return self._split_url()[0] or "http"

    def _split_url(self) -> tuple[str, str, str]:
        if "://" not in self.url:
            # bare path: a leading "//" is duplicated slashes, not a host
            path, _, query = self.url.partition("#")[0].partition("?")
            return "", path, query
        parts = urlsplit(self.url)
        return parts.scheme, parts.path, parts.query

    def text(self) -> str:
        return self.body.decode("utf-8")

    def json(self) -> Any:
        return json.loads(self.body)


@dataclass(frozen=True, slots=True)
class Response:
    """An HTTP response built through immutable transformations."""

    status: int = 200
    headers: tuple[tuple[str, str], ...] = ()
    body: bytes = b""

    @classmethod
    def text(
        cls,
        body: str,
        status: int = 200,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        """Plain text response."""
        return cls(
            status=status,
            headers=(
                ("content-type", "text/plain; charset=utf-8"),
                *(headers or {}).items(),
            ),
            body=body.encode("utf-8"),
        )

    @classmethod
    def json(
        cls,
        data: Any,
        status: int = 200,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        """JSON response, serialized compactly as UTF-8."""
        return cls(
            status=status,
            headers=(("content-type", "application/json"), *(headers or {}).items()),
            body=json.dumps(data, separators=(",", ":")).encode("utf-8"),
        )

    def with_status(self, status: int) -> Response:
        """Return a new Response with a different status code."""
        return replace(self, status=status)

    def with_header(self, name: str, value: str) -> Response:
        """Return a new Response with an additional header."""
        return replace(self, headers=(*self.headers, (name, value)))

    def header(self, name: str) -> str | None:
        """First value of a header, matched case-insensitively."""
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return None

    @property
    def text_body(self) -> str:
        return self.body.decode("utf-8")

    def json_body(self) -> Any:
        return json.loads(self.body)

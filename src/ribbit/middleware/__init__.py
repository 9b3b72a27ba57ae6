"""Middleware helpers.

create_middleware -- build middleware from plain before/after functions
otel -- OpenTelemetry tracing (ribbit.middleware.otel, requires the otel extra)
proxy_headers -- X-Forwarded-* handling (ribbit.middleware.proxy_headers)
"""

from ribbit.middleware.factory import create_middleware

__all__ = ["create_middleware"]

"""OpenTelemetry tracing and metrics middleware.

Creates HTTP server spans and metrics with semantic conventions for each request.

Install with: pip install "ribbit[otel]"
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ribbit.context import Context
    from ribbit.http import Response
    from ribbit.types import Middleware, Next

try:
    from opentelemetry import metrics, trace
    from opentelemetry.propagate import extract
    from opentelemetry.trace import (
        SpanKind,
        StatusCode,
        TracerProvider,
    )
except ImportError as e:
    msg = (
        "OpenTelemetry middleware requires the 'otel' extra. "
        "Install with: pip install 'ribbit[otel]'"
    )
    raise ImportError(msg) from e


_DURATION_BUCKETS = (
    0.001,
    0.005,
    0.01,
    0.025,
    0.05,
    0.075,
    0.1,
    0.25,
    0.5,
    0.75,
    1.0,
    2.5,
    5.0,
    7.5,
    10.0,
)


def otel(
    *,
    tracer_provider: TracerProvider | None = None,
    meter_provider: metrics.MeterProvider | None = None,
) -> Middleware:
    """Create OpenTelemetry tracing and metrics middleware.

    Creates a server span and metrics with HTTP semantic conventions for each
    request that reaches it. Register it first so the span covers the rest
    of the chain and the handler.

    Extracts trace context from incoming request headers (e.g. ``traceparent``)
    for distributed tracing. Only depends on ``opentelemetry-api``; users bring
    their own SDK and exporters.

    Metrics emitted:
        - ``http.server.request.duration`` (histogram, seconds)
        - ``http.server.active_requests`` (up-down counter)

    Args:
        tracer_provider: Optional TracerProvider. If None, uses the global provider.
        meter_provider: Optional MeterProvider. If None, uses the global provider.

    Returns:
        Middleware that wraps the rest of the chain in a span.

    Example:
        router.use(otel())

        # With custom providers
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.metrics import MeterProvider
        router.use(otel(
            tracer_provider=TracerProvider(),
            meter_provider=MeterProvider(),
        ))
    """
    tracer = trace.get_tracer(
        "ribbit",
        tracer_provider=tracer_provider,
    )
    meter = metrics.get_meter(
        "ribbit",
        meter_provider=meter_provider,
    )
    duration_histogram = meter.create_histogram(
        "http.server.request.duration",
        unit="s",
        description="Duration of HTTP server requests.",
        explicit_bucket_boundaries_advisory=_DURATION_BUCKETS,
    )
    active_requests_counter = meter.create_up_down_counter(
        "http.server.active_requests",
        unit="{request}",
        description="Number of active HTTP server requests.",
    )

    async def otel_middleware(ctx: Context, next: Next) -> Response:
        request = ctx.request

        # Extract propagated context from request headers
        parent = extract(request.headers)

        # Build span name: "METHOD /route" for matched, placeholder for unmatched
        route = ctx.matched_route
        method = request.method
        span_name = f"{method} {route}" if route else method

        # proxy_headers, when registered earlier, knows the real peer
        scheme = ctx.locals.get("scheme") or request.scheme
        client = ctx.locals.get("client") or request.client

        # Span attributes (stable HTTP semantic conventions)
        attributes: dict[str, str | int] = {
            "http.request.method": method,
            "url.path": request.path,
            "url.scheme": scheme,
        }
        if route:
            attributes["http.route"] = route
        if request.query_string:
            attributes["url.query"] = request.query_string
        host = request.headers.get("host")
        if host is not None:
            attributes["server.address"] = host
        if client is not None:
            attributes["client.address"] = client
        user_agent = request.headers.get("user-agent")
        if user_agent is not None:
            attributes["user_agent.original"] = user_agent

        # Metric attributes (required + conditionally required per semconv)
        active_attrs: dict[str, str | int] = {
            "http.request.method": method,
            "url.scheme": scheme,
        }
        if route:
            active_attrs["http.route"] = route

        active_requests_counter.add(1, active_attrs)
        start = time.perf_counter()

        with tracer.start_as_current_span(
            span_name,
            context=parent,
            kind=SpanKind.SERVER,
            attributes=attributes,
            record_exception=True,
            set_status_on_exception=True,
        ) as span:
            response: Response | None = None
            try:
                response = await next()
            finally:
                duration = time.perf_counter() - start
                active_requests_counter.add(-1, active_attrs)
                duration_attrs = dict(active_attrs)
                if response is not None:
                    span.set_attribute("http.response.status_code", response.status)
                    duration_attrs["http.response.status_code"] = response.status
                    if not route:
                        span.update_name(f"{method} {response.status}")
                    if response.status >= 500:
                        span.set_status(StatusCode.ERROR)
                duration_histogram.record(duration, duration_attrs)
            return response

    return otel_middleware

"""Proxy headers middleware for applications behind reverse proxies (e.g. AWS ALB).

Parses X-Forwarded-For and X-Forwarded-Proto headers from trusted proxies and
publishes the real client information as the ``client`` and ``scheme`` locals.

Other proxy headers stay in request.headers for direct access:
    - x-forwarded-port
    - x-amzn-trace-id
    - x-amzn-tls-version
    - x-amzn-tls-cipher-suite
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ribbit.middleware.factory import create_middleware

if TYPE_CHECKING:
    from ribbit.context import Context
    from ribbit.types import Middleware


def proxy_headers(
    *,
    trusted_proxies: frozenset[str],
    num_proxies: int = 1,
) -> Middleware:
    """Create proxy headers middleware.

    Parses `X-Forwarded-For` and `X-Forwarded-Proto` from trusted proxies and
    sets `ctx.locals["client"]` and `ctx.locals["scheme"]` for everything
    further down the chain. Requests from untrusted peers, or without proxy
    headers, get the request's own client and scheme.

    Args:
        trusted_proxies: Set of proxy IP addresses to trust. Use
            `frozenset({"*"})` to trust all connecting clients. The port of
            the connecting client is ignored.
        num_proxies: Number of proxy hops. The real client IP is extracted
            from X-Forwarded-For at position `-(num_proxies)` from the right.
            Default `1` is correct for a single proxy (e.g. ALB only).
            Use `2` for two proxy layers (e.g. CloudFront + ALB).

    Returns:
        Middleware publishing the `client` and `scheme` locals.

    Example:
        router.use(proxy_headers(trusted_proxies=frozenset({"*"})))

        # Only trust specific proxy IPs
        router.use(proxy_headers(
            trusted_proxies=frozenset({"10.0.0.1", "10.0.0.2"}),
        ))
    """
    if num_proxies < 1:
        msg = f"num_proxies must be >= 1, got {num_proxies}"
        raise ValueError(msg)
    if not trusted_proxies:
        msg = "trusted_proxies must not be empty"
        raise ValueError(msg)

    # Pre-compute at creation time
    trust_all = "*" in trusted_proxies
    xff_index = -num_proxies

    def forwarded(ctx: Context) -> dict[str, str | None]:
        request = ctx.request
        client = request.client
        scheme = request.scheme

        peer = _peer_ip(client)
        if not (trust_all or peer in trusted_proxies):
            return {"client": client, "scheme": scheme}
        client = peer

        # Parse X-Forwarded-For
        xff = request.headers.get("x-forwarded-for")
        if xff is not None:
            # rsplit with maxsplit avoids splitting the full string
            parts = xff.rsplit(",", maxsplit=num_proxies)
            idx = xff_index if len(parts) >= num_proxies else 0
            candidate = parts[idx].strip()
            if candidate:
                client = candidate

        # Parse X-Forwarded-Proto (comma-separated in multi-hop, like XFF)
        xfp = request.headers.get("x-forwarded-proto")
        if xfp is not None:
            parts = xfp.rsplit(",", maxsplit=num_proxies)
            idx = xff_index if len(parts) >= num_proxies else 0
            candidate = parts[idx].strip()
            if candidate:
                scheme = candidate

        return {"client": client, "scheme": scheme}

    return create_middleware(forwarded)


def _peer_ip(client: str | None) -> str | None:
    """Strip the port from "host:port", "[v6]:port" or a bare address."""
    if client is None:
        return None
    if client.startswith("["):
        return client[1 : client.find("]")]
    if client.count(":") == 1:
        return client.rsplit(":", 1)[0]
    return client

from __future__ import annotations

from collections.abc import Mapping

import pytest
from conftest import make_request

from ribbit import RequestContext, Response, Router, create_router
from ribbit.middleware.proxy_headers import proxy_headers


# --- helpers -----------------------------------------------------------------
async def _echo_handler(ctx: RequestContext) -> Response:
    """Handler that echoes client and scheme locals back as response body."""
    return Response.text(f"client={ctx.locals['client']} scheme={ctx.locals['scheme']}")


def _make_router(
    *,
    trusted_proxies: frozenset[str] = frozenset({"*"}),
    num_proxies: int = 1,
) -> Router:
    router = create_router()
    router.use(proxy_headers(trusted_proxies=trusted_proxies, num_proxies=num_proxies))
    router.get("/", _echo_handler)
    return router


async def _body(
    router: Router,
    *,
    client: str | None = "127.0.0.1",
    headers: Mapping[str, str] | None = None,
) -> str:
    response = await router.handle(make_request("/", headers=headers, client=client))
    return response.text_body


# --- validation --------------------------------------------------------------
def test_num_proxies_must_be_positive() -> None:
    with pytest.raises(ValueError, match="num_proxies must be >= 1"):
        proxy_headers(trusted_proxies=frozenset({"*"}), num_proxies=0)


def test_trusted_proxies_must_not_be_empty() -> None:
    with pytest.raises(ValueError, match="trusted_proxies must not be empty"):
        proxy_headers(trusted_proxies=frozenset())


# --- trust gate --------------------------------------------------------------
@pytest.mark.asyncio
async def test_untrusted_proxy_passthrough() -> None:
    router = _make_router(trusted_proxies=frozenset({"10.0.0.1"}))
    body = await _body(
        router,
        client="192.168.1.1:54321",
        headers={"x-forwarded-for": "1.2.3.4", "x-forwarded-proto": "https"},
    )
    assert body == "client=192.168.1.1:54321 scheme=http"


@pytest.mark.asyncio
async def test_trusted_proxy_overrides() -> None:
    """Trusted proxy check matches IP even when the client includes a port."""
    router = _make_router(trusted_proxies=frozenset({"10.0.0.1"}))
    body = await _body(
        router,
        client="10.0.0.1:12345",
        headers={"x-forwarded-for": "1.2.3.4", "x-forwarded-proto": "https"},
    )
    assert body == "client=1.2.3.4 scheme=https"


@pytest.mark.asyncio
async def test_trusted_proxy_bare_ip() -> None:
    router = _make_router(trusted_proxies=frozenset({"10.0.0.1"}))
    body = await _body(
        router,
        client="10.0.0.1",
        headers={"x-forwarded-for": "1.2.3.4", "x-forwarded-proto": "https"},
    )
    assert body == "client=1.2.3.4 scheme=https"


@pytest.mark.asyncio
async def test_trusted_proxy_ipv6() -> None:
    router = _make_router(trusted_proxies=frozenset({"::1"}))
    body = await _body(
        router, client="[::1]:8000", headers={"x-forwarded-for": "1.2.3.4"}
    )
    assert body == "client=1.2.3.4 scheme=http"


@pytest.mark.asyncio
async def test_wildcard_trusts_all() -> None:
    router = _make_router(trusted_proxies=frozenset({"*"}))
    body = await _body(
        router,
        client="anything:9999",
        headers={"x-forwarded-for": "1.2.3.4", "x-forwarded-proto": "https"},
    )
    assert body == "client=1.2.3.4 scheme=https"


# --- x-forwarded-for parsing ------------------------------------------------
@pytest.mark.asyncio
async def test_xff_single_ip() -> None:
    body = await _body(_make_router(), headers={"x-forwarded-for": "203.0.113.50"})
    assert body == "client=203.0.113.50 scheme=http"


@pytest.mark.asyncio
async def test_xff_chain_num_proxies_1() -> None:
    body = await _body(
        _make_router(num_proxies=1),
        headers={"x-forwarded-for": "203.0.113.50, 70.41.3.18"},
    )
    # take last entry (the one ALB appended)
    assert body == "client=70.41.3.18 scheme=http"


@pytest.mark.asyncio
async def test_xff_chain_num_proxies_2() -> None:
    body = await _body(
        _make_router(num_proxies=2),
        headers={"x-forwarded-for": "203.0.113.50, 70.41.3.18, 10.0.0.1"},
    )
    assert body == "client=70.41.3.18 scheme=http"


@pytest.mark.asyncio
async def test_xff_fewer_entries_than_num_proxies() -> None:
    body = await _body(
        _make_router(num_proxies=3), headers={"x-forwarded-for": "203.0.113.50"}
    )
    # Falls back to leftmost entry
    assert body == "client=203.0.113.50 scheme=http"


@pytest.mark.asyncio
async def test_xff_whitespace_stripped() -> None:
    body = await _body(_make_router(), headers={"x-forwarded-for": "  203.0.113.50  "})
    assert body == "client=203.0.113.50 scheme=http"


@pytest.mark.asyncio
async def test_xff_empty_passthrough() -> None:
    body = await _body(
        _make_router(), client="10.0.0.1:9999", headers={"x-forwarded-for": ""}
    )
    # keep original client IP, port stripped
    assert body == "client=10.0.0.1 scheme=http"


# --- x-forwarded-proto -------------------------------------------------------
@pytest.mark.asyncio
async def test_xfp_https() -> None:
    body = await _body(_make_router(), headers={"x-forwarded-proto": "https"})
    assert body == "client=127.0.0.1 scheme=https"


@pytest.mark.asyncio
async def test_xfp_only_no_xff() -> None:
    body = await _body(
        _make_router(), client="10.0.0.1:9999", headers={"x-forwarded-proto": "https"}
    )
    assert body == "client=10.0.0.1 scheme=https"


@pytest.mark.asyncio
async def test_xfp_multi_hop_num_proxies_1() -> None:
    body = await _body(
        _make_router(num_proxies=1), headers={"x-forwarded-proto": "https, http"}
    )
    # the proxy -> backend hop
    assert body == "client=127.0.0.1 scheme=http"


@pytest.mark.asyncio
async def test_xfp_multi_hop_num_proxies_2() -> None:
    body = await _body(
        _make_router(num_proxies=2), headers={"x-forwarded-proto": "https, http"}
    )
    # the client -> first proxy hop
    assert body == "client=127.0.0.1 scheme=https"


# --- missing/no headers -----------------------------------------------------
@pytest.mark.asyncio
async def test_no_proxy_headers_passthrough() -> None:
    body = await _body(_make_router(), client="10.0.0.1")
    assert body == "client=10.0.0.1 scheme=http"


@pytest.mark.asyncio
async def test_no_client() -> None:
    body = await _body(_make_router(trusted_proxies=frozenset({"10.0.0.1"})), client=None)
    assert body == "client=None scheme=http"


# --- request is untouched ----------------------------------------------------
@pytest.mark.asyncio
async def test_request_is_not_rewritten() -> None:
    captured: dict[str, object] = {}

    async def capture(ctx: RequestContext) -> Response:
        captured["client"] = ctx.request.client
        captured["scheme"] = ctx.request.scheme
        captured["xff"] = ctx.request.headers["x-forwarded-for"]
        return Response()

    router = create_router()
    router.use(proxy_headers(trusted_proxies=frozenset({"*"})))
    router.post("/test", capture)

    await router.handle(
        make_request(
            "/test",
            "POST",
            headers={"x-forwarded-for": "1.2.3.4", "x-forwarded-proto": "https"},
            client="10.0.0.1:1234",
        )
    )

    assert captured == {"client": "10.0.0.1:1234", "scheme": "http", "xff": "1.2.3.4"}

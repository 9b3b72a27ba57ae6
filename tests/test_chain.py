import pytest
from conftest import make_request, recording_middleware

from ribbit import Context, Response
from ribbit.chain import invoke, run_chain
from ribbit.types import Next


def _terminal(calls: list[str]):
    def terminal(ctx: Context) -> Response:
        calls.append("terminal")
        return Response.json(dict(ctx.locals))

    return terminal


# --- ordering -----------------------------------------------------------------
@pytest.mark.asyncio
async def test_runs_in_order_around_terminal() -> None:
    calls: list[str] = []
    stack = [recording_middleware("a", calls), recording_middleware("b", calls)]

    response = await run_chain(stack, Context(make_request()), _terminal(calls))

    assert response.status == 200
    assert calls == ["a", "b", "terminal", "/b", "/a"]


@pytest.mark.asyncio
async def test_empty_stack_runs_terminal() -> None:
    calls: list[str] = []
    response = await run_chain([], Context(make_request()), _terminal(calls))
    assert calls == ["terminal"]
    assert response.json_body() == {}


# --- short-circuit ------------------------------------------------------------
@pytest.mark.asyncio
async def test_short_circuit_stops_chain() -> None:
    calls: list[str] = []

    async def deny(ctx: Context, next: Next) -> Response:
        calls.append("deny")
        return Response.json({"message": "Forbidden"}, status=403)

    stack = [recording_middleware("a", calls), deny, recording_middleware("c", calls)]
    response = await run_chain(stack, Context(make_request()), _terminal(calls))

    assert response.status == 403
    assert response.json_body() == {"message": "Forbidden"}
    assert calls == ["a", "deny", "/a"]


# --- locals -------------------------------------------------------------------
@pytest.mark.asyncio
async def test_locals_accumulate() -> None:
    seen: list[dict[str, object]] = []

    def publish(**values: object):
        async def middleware(ctx: Context, next: Next) -> Response:
            seen.append(dict(ctx.locals))
            return await next(values)

        return middleware

    stack = [publish(a=1), publish(b=2), publish(a=3)]
    response = await run_chain(stack, Context(make_request()), _terminal([]))

    assert seen == [{}, {"a": 1}, {"a": 1, "b": 2}]
    assert response.json_body() == {"a": 3, "b": 2}


@pytest.mark.asyncio
async def test_next_without_locals_passes_context_through() -> None:
    async def passthrough(ctx: Context, next: Next) -> Response:
        return await next()

    async def publish(ctx: Context, next: Next) -> Response:
        return await next({"user": "frog"})

    stack = [publish, passthrough, passthrough]
    response = await run_chain(stack, Context(make_request()), _terminal([]))
    assert response.json_body() == {"user": "frog"}


@pytest.mark.asyncio
async def test_contexts_are_not_mutated() -> None:
    contexts: list[Context] = []

    async def publish(ctx: Context, next: Next) -> Response:
        contexts.append(ctx)
        return await next({"key": len(contexts)})

    initial = Context(make_request())
    await run_chain([publish, publish], initial, _terminal([]))

    assert contexts[0] is initial
    assert dict(initial.locals) == {}
    assert dict(contexts[1].locals) == {"key": 1}
    with pytest.raises(TypeError, match="immutable"):
        contexts[1].locals["key"] = 2  # type: ignore[index]


# --- sync callables -----------------------------------------------------------
@pytest.mark.asyncio
async def test_sync_middleware_and_terminal() -> None:
    def sync_middleware(ctx: Context, next: Next):
        return next({"sync": True})

    response = await run_chain(
        [sync_middleware], Context(make_request()), _terminal([])
    )
    assert response.json_body() == {"sync": True}


@pytest.mark.asyncio
async def test_invoke() -> None:
    async def async_fn(x: int) -> int:
        return x + 1

    def sync_fn(x: int) -> int:
        return x + 2

    assert await invoke(async_fn, 1) == 2
    assert await invoke(sync_fn, 1) == 3


# --- errors -------------------------------------------------------------------
@pytest.mark.asyncio
async def test_errors_propagate() -> None:
    calls: list[str] = []

    async def explode(ctx: Context, next: Next) -> Response:
        msg = "boom"
        raise RuntimeError(msg)

    with pytest.raises(RuntimeError, match="boom"):
        await run_chain(
            [recording_middleware("a", calls), explode],
            Context(make_request()),
            _terminal(calls),
        )
    assert calls == ["a"]

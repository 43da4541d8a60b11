from __future__ import annotations

import asyncio

import pytest

from cogo_sdk.cancellation import CancellationToken
from cogo_sdk.errors import StreamError
from cogo_sdk.streaming.events import DoneEvent, ErrorEvent, TypedHandlers
from cogo_sdk.streaming.typed import stream_typed

URL = "https://edge.test/functions/v1/design-generate"


@pytest.mark.asyncio
async def test_events_are_routed_to_their_handlers(sse_client, sse) -> None:
    client = sse_client(
        sse("meta", {"trace_id": "t1"}),
        sse("cli.plan", {"trace_id": "t1", "actions": ["a", "b"]}),
        sse("cli.apply", {"trace_id": "t1", "action_id": "a", "status": "running"}),
        sse("done", {"trace_id": "t1", "output": 1}),
    )
    seen: list[str] = []

    async def on_done(event: DoneEvent) -> None:
        seen.append(f"done:{event.extras['output']}")

    handlers = TypedHandlers(
        meta=lambda e: seen.append(f"meta:{e.trace_id}"),
        cli_plan=lambda e: seen.append(f"plan:{len(e.actions)}"),
        cli_apply=lambda e: seen.append(f"apply:{e.status}"),
        done=on_done,
    )

    terminal = await stream_typed(URL, {}, {}, handlers=handlers, client=client)

    assert seen == ["meta:t1", "plan:2", "apply:running", "done:1"]
    assert isinstance(terminal, DoneEvent)


@pytest.mark.asyncio
async def test_frames_after_terminal_are_not_dispatched(sse_client, sse) -> None:
    client = sse_client(
        sse("error", {"code": "E", "message": "failed"}) + sse("done", {"trace_id": "t1"}),
        hang=True,
    )
    seen: list[str] = []
    handlers = TypedHandlers(
        error=lambda e: seen.append("error"),
        done=lambda e: seen.append("done"),
    )

    terminal = await asyncio.wait_for(stream_typed(URL, {}, handlers=handlers, client=client), 2)

    assert seen == ["error"]
    assert isinstance(terminal, ErrorEvent)


@pytest.mark.asyncio
async def test_invalid_and_unknown_frames_go_to_fallback(sse_client, sse) -> None:
    client = sse_client(
        sse("meta", {"trace_id": 1}),
        sse("page.chunk", "<div>"),
        sse("done", {"trace_id": "t1"}),
    )
    fallback: list[tuple[str, str]] = []
    metas: list[object] = []
    handlers = TypedHandlers(meta=metas.append, fallback=lambda e, d: fallback.append((e, d)))

    await stream_typed(URL, {}, handlers=handlers, client=client)

    assert metas == []
    assert fallback == [("meta", '{"trace_id": 1}'), ("page.chunk", "<div>")]


@pytest.mark.asyncio
async def test_terminal_does_not_cancel_caller_token(sse_client, sse) -> None:
    client = sse_client(sse("done", {"trace_id": "t1"}))
    token = CancellationToken()

    await stream_typed(URL, {}, cancel=token, client=client)

    assert not token.is_cancelled()
    assert token._callbacks == []


@pytest.mark.asyncio
async def test_caller_cancel_ends_quietly(sse_client, sse) -> None:
    client = sse_client(sse("meta", {"trace_id": "t1"}), hang=True)
    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.05, token.cancel, "user")

    terminal = await asyncio.wait_for(stream_typed(URL, {}, cancel=token, client=client), 2)

    assert terminal is None


@pytest.mark.asyncio
async def test_transport_errors_propagate(sse_client) -> None:
    with pytest.raises(StreamError):
        await stream_typed(URL, {}, client=sse_client(status=500))


@pytest.mark.asyncio
async def test_handler_exceptions_propagate(sse_client, sse) -> None:
    client = sse_client(sse("meta", {"trace_id": "t1"}))

    def explode(event: object) -> None:
        raise ValueError("handler bug")

    with pytest.raises(ValueError, match="handler bug"):
        await stream_typed(URL, {}, handlers=TypedHandlers(meta=explode), client=client)

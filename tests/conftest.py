from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest


def _sse(event: str, data: Any) -> str:
    payload = data if isinstance(data, str) else json.dumps(data)
    return f"event: {event}\ndata: {payload}\n\n"


@pytest.fixture
def sse() -> Callable[[str, Any], str]:
    """Encode one SSE frame; non-string data is JSON-encoded."""
    return _sse


@pytest.fixture
def sse_client() -> Callable[..., httpx.AsyncClient]:
    """Build an ``httpx.AsyncClient`` whose every POST streams ``chunks``.

    ``delay`` sleeps before each chunk; ``hang`` keeps the response open
    after the last chunk until the reader is cancelled. Requests are
    appended to ``requests`` when a list is given.
    """

    def build(
        *chunks: str,
        status: int = 200,
        delay: float = 0.0,
        hang: bool = False,
        requests: list[httpx.Request] | None = None,
    ) -> httpx.AsyncClient:
        async def body() -> AsyncIterator[bytes]:
            for chunk in chunks:
                if delay:
                    await asyncio.sleep(delay)
                yield chunk.encode()
            if hang:
                await asyncio.Event().wait()

        async def handler(request: httpx.Request) -> httpx.Response:
            if requests is not None:
                requests.append(request)
            if status >= 400:
                return httpx.Response(status, text="upstream failed")
            return httpx.Response(
                status, headers={"content-type": "text/event-stream"}, content=body()
            )

        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return build


@pytest.fixture
def json_client() -> Callable[..., httpx.AsyncClient]:
    """Build an ``httpx.AsyncClient`` backed by ``handler(request) -> Response``."""

    def build(
        handler: Callable[[httpx.Request], httpx.Response],
    ) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return build


async def _wait_until(condition: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    """Poll ``condition`` until true or fail after ``timeout`` seconds."""
    return _wait_until

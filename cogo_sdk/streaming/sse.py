"""Raw SSE consumption over httpx.

Usage::

    async def on_frame(event: str, data: str) -> None:
        print(event, data)

    await stream(url, headers, on_frame, {"text": "Create login UI"})
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from ..cancellation import CancellationToken
from ..errors import NoFinalFrameError, StreamAborted, StreamError
from .frames import FrameParser

logger = logging.getLogger(__name__)

# Connection setup is bounded; reads are not, long generations stay silent for minutes.
DEFAULT_TIMEOUT = httpx.Timeout(30.0, read=None)

RECOGNIZED_EVENTS = frozenset(
    {
        "ready",
        "meta",
        "progress",
        "queued",
        "handoff",
        "rag.item",
        "rag.done",
        "llm.done",
        "ui.generate",
        "page.ready",
        "page.chunk",
        "page.includes",
        "cli.plan",
        "cli.apply",
        "cli.done",
        "keepalive",
        "aborted",
        "error",
        "done",
    }
)

FrameCallback = Callable[[str, str], None | Awaitable[None]]

_ABORT_PATTERN = re.compile(r"abort", re.IGNORECASE)


def is_abort_error(exc: BaseException) -> bool:
    """Return True for cancellation-style failures that end a stream early."""
    if isinstance(exc, StreamAborted):
        return True
    return bool(_ABORT_PATTERN.search(type(exc).__name__) or _ABORT_PATTERN.search(str(exc)))


def new_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)


async def stream(
    url: str,
    headers: dict[str, str],
    on_frame: FrameCallback,
    body: Any = None,
    *,
    cancel: CancellationToken | None = None,
    client: httpx.AsyncClient | None = None,
) -> None:
    """POST ``body`` and feed the SSE response to ``on_frame`` until it ends.

    Frames are delivered in arrival order; an awaitable returned by
    ``on_frame`` is awaited before the next frame is parsed.

    Raises:
        StreamError: The response status was not successful.
        StreamAborted: ``cancel`` fired before the stream ended.
    """
    if cancel is not None and cancel.is_cancelled():
        raise StreamAborted(cancel.reason)

    http = client or new_http_client()
    reader = asyncio.ensure_future(_consume(http, url, headers, on_frame, body, cancel))
    interrupted = False

    def interrupt(reason: str) -> None:
        nonlocal interrupted
        # Cancelled from inside on_frame: the read loop stops after that frame.
        if reader is asyncio.current_task():
            return
        interrupted = True
        reader.cancel()

    remove = cancel.add_callback(interrupt) if cancel is not None else None
    try:
        await reader
    except asyncio.CancelledError:
        if interrupted and cancel is not None:
            raise StreamAborted(cancel.reason) from None
        raise
    finally:
        if remove is not None:
            remove()
        if client is None:
            await http.aclose()


async def _consume(
    http: httpx.AsyncClient,
    url: str,
    headers: dict[str, str],
    on_frame: FrameCallback,
    body: Any,
    cancel: CancellationToken | None,
) -> None:
    request_headers = httpx.Headers({"accept": "text/event-stream"})
    request_headers.update(headers)
    content = None
    if body is not None:
        content = json.dumps(body)
        if "content-type" not in request_headers:
            request_headers["content-type"] = "application/json"

    async with http.stream("POST", url, headers=request_headers, content=content) as response:
        if not response.is_success:
            raise StreamError(response.status_code)
        logger.debug("SSE stream open: %s (%s)", url, response.status_code)

        parser = FrameParser()
        async for chunk in response.aiter_text():
            for frame in parser.feed(chunk):
                result = on_frame(frame.event, frame.data)
                if inspect.isawaitable(result):
                    await result
                if cancel is not None and cancel.is_cancelled():
                    raise StreamAborted(cancel.reason)
        if parser.pending.strip():
            logger.debug("SSE stream ended with %d unterminated chars", len(parser.pending))


async def stream_to_final(
    url: str,
    headers: dict[str, str],
    body: Any = None,
    *,
    on_event: FrameCallback | None = None,
    cancel: CancellationToken | None = None,
    client: httpx.AsyncClient | None = None,
) -> Any:
    """Consume a stream and return the decoded payload of its ``done`` frame.

    Raises:
        NoFinalFrameError: The stream ended without a decodable ``done`` frame.
    """
    final: list[Any] = []

    async def on_frame(event: str, data: str) -> None:
        if on_event is not None:
            result = on_event(event, data)
            if inspect.isawaitable(result):
                await result
        if event == "done":
            try:
                payload = json.loads(data)
            except ValueError:
                logger.debug("Undecodable done payload: %.200s", data)
                return
            final[:] = [payload]

    await stream(url, headers, on_frame, body, cancel=cancel, client=client)
    if not final:
        raise NoFinalFrameError()
    return final[0]

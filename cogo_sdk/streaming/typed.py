"""Typed SSE consumption: validate each frame and route it to a handler."""

from __future__ import annotations

import inspect
import logging
from typing import Any

import httpx

from ..cancellation import CancellationToken
from .events import TERMINAL_EVENTS, TypedEvent, TypedHandlers, UnrecognizedEvent, parse_event
from .sse import is_abort_error, stream

logger = logging.getLogger(__name__)


async def call_handler(handler: Any, *args: Any) -> None:
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


async def dispatch(typed: TypedEvent, raw: str, handlers: TypedHandlers | None) -> None:
    """Deliver a parsed frame to its handler, or to ``fallback`` when unrecognised."""
    if handlers is None:
        return
    if isinstance(typed, UnrecognizedEvent):
        if handlers.fallback is not None:
            await call_handler(handlers.fallback, typed.event, raw)
        return
    handler = handlers.for_event(typed.event_name)
    if handler is not None:
        await call_handler(handler, typed)


async def stream_typed(
    url: str,
    headers: dict[str, str],
    body: Any = None,
    *,
    handlers: TypedHandlers | None = None,
    cancel: CancellationToken | None = None,
    client: httpx.AsyncClient | None = None,
) -> TypedEvent | None:
    """Stream ``url`` and dispatch validated events until ``done`` or ``error``.

    The connection is closed as soon as a terminal frame has been handled;
    that internal abort, like a caller-side cancellation, is not an error.
    Returns the terminal event, if one arrived.
    """
    token = CancellationToken.linked(cancel)
    terminal: list[TypedEvent] = []

    async def on_frame(event: str, data: str) -> None:
        typed = parse_event(event, data)
        await dispatch(typed, data, handlers)
        if event in TERMINAL_EVENTS:
            terminal.append(typed)
            token.cancel(f"terminal:{event}")

    try:
        await stream(url, headers, on_frame, body, cancel=token, client=client)
    except Exception as exc:
        if not is_abort_error(exc):
            raise
        logger.debug("Typed stream closed: %s", token.reason or exc)
    finally:
        token.release()
    return terminal[0] if terminal else None

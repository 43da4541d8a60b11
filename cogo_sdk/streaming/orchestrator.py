"""Start on the SSE stream; augment with a realtime trace subscription when needed.

A session begins on the primary stream. A ``queued`` or ``handoff`` frame,
or a stretch without ``progress`` frames longer than the idle window, opens
a subscription on the trace channel so the final result can still arrive
if the stream stalls. The first ``done``/``error`` from either source wins.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from ..cancellation import CancellationToken
from ..realtime.subscriber import TraceEventCallback, Unsubscribe
from .events import (
    SUBSCRIBE_EVENTS,
    TERMINAL_EVENTS,
    TypedEvent,
    TypedHandlers,
    UnrecognizedEvent,
    decode_event,
    extract_trace_id,
    parse_event,
)
from .sse import is_abort_error, stream
from .typed import call_handler, dispatch

logger = logging.getLogger(__name__)

DEFAULT_IDLE_MS = 15000
MIN_IDLE_MS = 5000

SubscribeTrace = Callable[[str, TraceEventCallback, CancellationToken | None], Awaitable[Unsubscribe]]


class StreamOrRealtimeSession:
    """State for one stream-or-realtime call.

    ``subscribed_via`` records what opened the subscription (``queued``,
    ``handoff`` or ``idle``); ``terminal`` holds the authoritative
    ``done``/``error`` event once one has been observed.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str],
        body: Any = None,
        *,
        subscribe_trace: SubscribeTrace | None = None,
        handlers: TypedHandlers | None = None,
        idle_ms: float | None = None,
        cancel: CancellationToken | None = None,
        client: httpx.AsyncClient | None = None,
        handoff_timeout_ms: float | None = None,
        realtime_wait_ms: float | None = None,
    ) -> None:
        self.url = url
        self.headers = headers
        self.body = body
        self.idle_s = max(MIN_IDLE_MS, DEFAULT_IDLE_MS if idle_ms is None else idle_ms) / 1000
        self.realtime_wait_s = self.idle_s if realtime_wait_ms is None else realtime_wait_ms / 1000
        self.handoff_timeout_s = None if handoff_timeout_ms is None else handoff_timeout_ms / 1000
        self.trace_id: str | None = None
        self.terminal: TypedEvent | None = None
        self.subscribed_via: str | None = None
        self._subscribe_trace = subscribe_trace
        self._handlers = handlers or TypedHandlers()
        self._cancel = cancel
        self._client = client
        self._token = CancellationToken.linked(cancel)
        self._unsubscribe: Unsubscribe | None = None
        self._subscribe_lock = asyncio.Lock()
        self._terminal_seen = asyncio.Event()
        self._last_progress_at = 0.0
        self._handoff_timer: asyncio.Task[None] | None = None
        self._closing = False

    @staticmethod
    def _now() -> float:
        return asyncio.get_running_loop().time()

    @property
    def idle_for(self) -> float:
        """Seconds since the last progress signal (or since the call started)."""
        return self._now() - self._last_progress_at

    @property
    def subscribed(self) -> bool:
        return self._unsubscribe is not None

    def _caller_cancelled(self) -> bool:
        return self._cancel is not None and self._cancel.is_cancelled()

    async def run(self) -> TypedEvent | None:
        self._last_progress_at = self._now()
        watchdog = asyncio.create_task(self._watch_idle()) if self._subscribe_trace else None
        try:
            try:
                await stream(
                    self.url,
                    self.headers,
                    self._on_frame,
                    self.body,
                    cancel=self._token,
                    client=self._client,
                )
            except Exception as exc:
                if not is_abort_error(exc):
                    raise
                logger.debug("Primary stream closed: %s", self._token.reason or exc)
            finally:
                if watchdog is not None:
                    watchdog.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await watchdog
                if self._handoff_timer is not None:
                    self._handoff_timer.cancel()

            if self.terminal is None and not self._caller_cancelled():
                if not self.subscribed and self.idle_for > self.idle_s:
                    await self._open_subscription("idle")
                if self.subscribed:
                    await self._await_realtime_terminal()
            if self.terminal is not None:
                # a realtime terminal may still be running its handler
                await self._terminal_seen.wait()
            return self.terminal
        finally:
            self._token.release()
            await self._teardown()

    async def _on_frame(self, event: str, raw: str) -> None:
        if self.trace_id is None:
            self.trace_id = extract_trace_id(raw)

        typed = parse_event(event, raw)
        if event in TERMINAL_EVENTS:
            await self._deliver_terminal(typed, raw)
            return
        if event == "progress":
            self._mark_progress()
        await dispatch(typed, raw, self._handlers)

        if event in SUBSCRIBE_EVENTS:
            await self._open_subscription(event)
            if event == "handoff":
                self._arm_handoff_timer()

    async def _on_realtime(self, name: str, payload: Any) -> None:
        if name in TERMINAL_EVENTS:
            typed = decode_event(name, payload)
            raw = typed.data if isinstance(typed, UnrecognizedEvent) else json.dumps(payload, default=str)
            await self._deliver_terminal(typed, raw)
            return
        if name == "progress":
            self._mark_progress()
        if self._handlers.fallback is not None:
            await call_handler(self._handlers.fallback, name, json.dumps(payload, default=str))

    async def _deliver_terminal(self, typed: TypedEvent, raw: str) -> None:
        if self.terminal is not None:
            logger.debug("Ignoring additional terminal %s for %s", _event_name(typed), self.trace_id)
            return
        self.terminal = typed
        try:
            await dispatch(typed, raw, self._handlers)
        finally:
            self._terminal_seen.set()
            self._token.cancel(f"terminal:{_event_name(typed)}")

    def _mark_progress(self) -> None:
        self._last_progress_at = self._now()

    async def _open_subscription(self, reason: str) -> None:
        if self._subscribe_trace is None or self.trace_id is None:
            return
        async with self._subscribe_lock:
            if self.subscribed or self._closing or self._caller_cancelled():
                return
            try:
                unsubscribe = await self._subscribe_trace(
                    self.trace_id, self._on_realtime, self._cancel
                )
            except Exception as exc:
                logger.warning("Realtime subscribe for %s failed: %s", self.trace_id, exc)
                return
            if self._closing:
                # teardown ran while the join was in flight
                await unsubscribe()
                return
            self._unsubscribe = unsubscribe
            self.subscribed_via = reason
            logger.info("Subscribed to trace %s (%s)", self.trace_id, reason)

    async def _watch_idle(self) -> None:
        interval = max(0.01, min(1.0, self.idle_s / 4))
        while not self.subscribed and not self._token.is_cancelled():
            await asyncio.sleep(interval)
            if self.trace_id is not None and self.idle_for > self.idle_s:
                await self._open_subscription("idle")
                return

    def _arm_handoff_timer(self) -> None:
        if self.handoff_timeout_s is None or self._handoff_timer is not None:
            return
        self._handoff_timer = asyncio.create_task(self._close_after_handoff())

    async def _close_after_handoff(self) -> None:
        await asyncio.sleep(self.handoff_timeout_s or 0)
        if self.terminal is None:
            logger.info("No terminal event %.1fs after handoff; closing stream", self.handoff_timeout_s)
            self._token.cancel("handoff-timeout")

    async def _await_realtime_terminal(self) -> None:
        waiters = [asyncio.ensure_future(self._terminal_seen.wait())]
        if self._cancel is not None:
            waiters.append(asyncio.ensure_future(self._cancel.wait()))
        try:
            done, _ = await asyncio.wait(
                waiters, timeout=self.realtime_wait_s, return_when=asyncio.FIRST_COMPLETED
            )
            if not done:
                logger.info("No terminal event over realtime for %s", self.trace_id)
        finally:
            for waiter in waiters:
                waiter.cancel()

    async def _teardown(self) -> None:
        self._closing = True
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is None:
            return
        try:
            await unsubscribe()
        except Exception as exc:
            logger.debug("Unsubscribe for %s failed: %s", self.trace_id, exc)


def _event_name(typed: TypedEvent) -> str:
    return typed.event if isinstance(typed, UnrecognizedEvent) else typed.event_name


async def stream_or_realtime(
    url: str,
    headers: dict[str, str],
    body: Any = None,
    *,
    subscribe_trace: SubscribeTrace | None = None,
    handlers: TypedHandlers | None = None,
    idle_ms: float | None = DEFAULT_IDLE_MS,
    cancel: CancellationToken | None = None,
    client: httpx.AsyncClient | None = None,
    handoff_timeout_ms: float | None = None,
    realtime_wait_ms: float | None = None,
) -> TypedEvent | None:
    """Consume a typed stream with realtime fallback; returns the terminal event.

    Transport failures propagate; cancellation (caller-side or internal)
    ends the call normally. Any open subscription is released on exit.
    """
    session = StreamOrRealtimeSession(
        url,
        headers,
        body,
        subscribe_trace=subscribe_trace,
        handlers=handlers,
        idle_ms=idle_ms,
        cancel=cancel,
        client=client,
        handoff_timeout_ms=handoff_timeout_ms,
        realtime_wait_ms=realtime_wait_ms,
    )
    return await session.run()

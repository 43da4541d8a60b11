"""Trace-scoped realtime subscriptions with automatic reconnect.

Usage::

    subscribe = TraceSubscriber(LocalBroadcastHub())
    unsubscribe = await subscribe("t1", lambda name, payload: print(name, payload))
    ...
    await unsubscribe()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from ..cancellation import CancellationToken
from .protocol import (
    DROP_STATUSES,
    BroadcastChannel,
    BroadcastClient,
    BroadcastMessage,
    ChannelStatus,
)

logger = logging.getLogger(__name__)

RECONNECT_DELAY_S = 1.0

TraceEventCallback = Callable[[str, Any], None | Awaitable[None]]
Unsubscribe = Callable[[], Awaitable[None]]


def trace_channel(trace_id: str) -> str:
    """Channel name carrying broadcasts for one trace."""
    return f"trace:{trace_id}"


class SubscriptionState(str, Enum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"


class TraceSubscription:
    """Lease on the ``trace:{trace_id}`` channel.

    Broadcasts are forwarded to ``on_event(name, payload)`` in arrival order
    from a background task; handler exceptions are logged and dropped. When
    the channel reports ``CHANNEL_ERROR``, ``TIMED_OUT`` or ``CLOSED`` a new
    channel is joined after ``reconnect_delay`` seconds unless the
    subscription was stopped or ``cancel`` fired. Cancelling the token tears
    the subscription down; :meth:`unsubscribe` may still be called afterwards.
    """

    def __init__(
        self,
        client: BroadcastClient,
        trace_id: str,
        on_event: TraceEventCallback,
        *,
        cancel: CancellationToken | None = None,
        reconnect_delay: float | None = None,
        on_closed: Callable[[TraceSubscription], None] | None = None,
    ) -> None:
        self.trace_id = trace_id
        self.channel_name = trace_channel(trace_id)
        self.state = SubscriptionState.UNSUBSCRIBED
        self.attempts = 0
        self.releases = 0
        self._client = client
        self._on_event = on_event
        self._cancel = cancel
        self._reconnect_delay = RECONNECT_DELAY_S if reconnect_delay is None else reconnect_delay
        self._channel: BroadcastChannel | None = None
        self._connecting = False
        self._stopped = False
        self._closed = False
        self._queue: asyncio.Queue[BroadcastMessage] = asyncio.Queue()
        self._pump: asyncio.Task[None] | None = None
        self._retry: asyncio.Task[None] | None = None
        self._teardown: asyncio.Task[None] | None = None
        self._remove_cancel: Callable[[], None] | None = None
        self._on_closed = on_closed

    @property
    def stopped(self) -> bool:
        return self._stopped or (self._cancel is not None and self._cancel.is_cancelled())

    async def start(self) -> None:
        """Start delivery and join the channel."""
        self._pump = asyncio.create_task(self._drain())
        if self._cancel is not None:
            self._remove_cancel = self._cancel.add_callback(self._on_cancel)
        try:
            await self._connect()
        except BaseException:
            await self.unsubscribe()
            raise

    async def _connect(self) -> None:
        if self.state != SubscriptionState.UNSUBSCRIBED or self.stopped:
            return
        self.state = SubscriptionState.SUBSCRIBING
        self.attempts += 1
        channel = self._client.channel(self.channel_name)
        self._channel = channel
        self._connecting = True
        try:
            await channel.subscribe(
                self._on_message,
                lambda status: self._on_status(channel, status),
            )
        except Exception as exc:
            logger.warning("Subscribe to %s failed: %s", self.channel_name, exc)
            self._on_status(channel, ChannelStatus.CHANNEL_ERROR)
        finally:
            self._connecting = False

        # unsubscribe() ran while the join was in flight and left the release to us
        if self._closed and self._channel is channel:
            self._channel = None
            await self._release(channel)

    def _on_message(self, message: BroadcastMessage) -> None:
        if not self._closed:
            self._queue.put_nowait(message)

    def _on_status(self, channel: BroadcastChannel, status: ChannelStatus) -> None:
        if channel is not self._channel:
            return
        if status == ChannelStatus.SUBSCRIBED:
            self.state = SubscriptionState.SUBSCRIBED
            logger.debug("Subscribed to %s", self.channel_name)
            return
        if status not in DROP_STATUSES:
            return
        self.state = SubscriptionState.UNSUBSCRIBED
        if self.stopped:
            return
        logger.info("Channel %s dropped (%s); reconnecting", self.channel_name, status.value)
        if self._retry is not None and self._retry is not asyncio.current_task():
            self._retry.cancel()
        self._retry = asyncio.create_task(self._reconnect_later(channel))

    async def _reconnect_later(self, stale: BroadcastChannel) -> None:
        await asyncio.sleep(self._reconnect_delay)
        if self.stopped:
            return
        if self._channel is stale:
            self._channel = None
            await self._release(stale)
        if self.stopped:
            return
        await self._connect()

    async def _drain(self) -> None:
        while not self._closed:
            message = await self._queue.get()
            try:
                result = self._on_event(message.event, message.payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.debug("Trace handler failed for %s", message.event, exc_info=True)

    def _on_cancel(self, reason: str) -> None:
        self._stopped = True
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self._teardown = asyncio.ensure_future(self.unsubscribe())

    async def _release(self, channel: BroadcastChannel) -> None:
        self.releases += 1
        try:
            await self._client.remove_channel(channel)
        except Exception as exc:
            logger.debug("Releasing %s failed: %s", self.channel_name, exc)

    async def unsubscribe(self) -> None:
        """Stop delivery and release the channel (idempotent)."""
        if self._closed:
            return
        self._closed = True
        self._stopped = True
        if self._on_closed is not None:
            self._on_closed(self)
            self._on_closed = None
        if self._remove_cancel is not None:
            self._remove_cancel()
            self._remove_cancel = None
        if self._retry is not None:
            # a join in flight finishes and then releases its own channel
            if not self._connecting:
                self._retry.cancel()
            self._retry = None
        if self._pump is not None and self._pump is not asyncio.current_task():
            self._pump.cancel()
        self._pump = None
        self.state = SubscriptionState.UNSUBSCRIBED
        if self._connecting:
            return
        channel, self._channel = self._channel, None
        if channel is not None:
            await self._release(channel)


class TraceSubscriber:
    """Subscriber factory bound to a broadcast client.

    Calling the instance opens a :class:`TraceSubscription` and returns its
    ``unsubscribe`` coroutine function. ``subscriptions`` lists the ones
    still open.
    """

    def __init__(self, client: BroadcastClient, *, reconnect_delay: float | None = None) -> None:
        self._client = client
        self._reconnect_delay = reconnect_delay
        self.subscriptions: list[TraceSubscription] = []

    async def open(
        self,
        trace_id: str,
        on_event: TraceEventCallback,
        cancel: CancellationToken | None = None,
    ) -> TraceSubscription:
        subscription = TraceSubscription(
            self._client,
            trace_id,
            on_event,
            cancel=cancel,
            reconnect_delay=self._reconnect_delay,
            on_closed=self.subscriptions.remove,
        )
        self.subscriptions.append(subscription)
        await subscription.start()
        return subscription

    async def __call__(
        self,
        trace_id: str,
        on_event: TraceEventCallback,
        cancel: CancellationToken | None = None,
    ) -> Unsubscribe:
        subscription = await self.open(trace_id, on_event, cancel)
        return subscription.unsubscribe

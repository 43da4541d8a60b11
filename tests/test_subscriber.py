from __future__ import annotations

import asyncio
from typing import Any

import pytest

from cogo_sdk.cancellation import CancellationToken
from cogo_sdk.realtime.local import LocalBroadcastHub, LocalChannel
from cogo_sdk.realtime.protocol import ChannelStatus
from cogo_sdk.realtime.subscriber import (
    SubscriptionState,
    TraceSubscriber,
    TraceSubscription,
    trace_channel,
)


class FlakyHub(LocalBroadcastHub):
    """Hub whose first ``failures`` joins raise."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    def channel(self, name: str) -> LocalChannel:
        channel = super().channel(name)
        if self.failures > 0:
            self.failures -= 1

            async def fail(on_message: Any, on_status: Any) -> None:
                raise ConnectionError("join refused")

            channel.subscribe = fail  # type: ignore[method-assign]
        return channel


async def _open(
    hub: LocalBroadcastHub,
    on_event: Any,
    *,
    cancel: CancellationToken | None = None,
    reconnect_delay: float = 0.01,
) -> TraceSubscription:
    subscription = TraceSubscription(
        hub, "t1", on_event, cancel=cancel, reconnect_delay=reconnect_delay
    )
    await subscription.start()
    return subscription


def test_trace_channel_name() -> None:
    assert trace_channel("abc") == "trace:abc"


@pytest.mark.asyncio
async def test_broadcasts_are_delivered_in_order(wait_until) -> None:
    hub = LocalBroadcastHub()
    received: list[tuple[str, Any]] = []
    subscription = await _open(hub, lambda name, payload: received.append((name, payload)))

    assert subscription.state == SubscriptionState.SUBSCRIBED
    for i in range(3):
        await hub.broadcast("trace:t1", "progress", {"i": i})
    await hub.broadcast("trace:other", "done", {})

    await wait_until(lambda: len(received) == 3)
    assert received == [("progress", {"i": 0}), ("progress", {"i": 1}), ("progress", {"i": 2})]
    await subscription.unsubscribe()


@pytest.mark.asyncio
async def test_async_handlers_are_awaited_one_at_a_time(wait_until) -> None:
    hub = LocalBroadcastHub()
    order: list[str] = []

    async def on_event(name: str, payload: Any) -> None:
        order.append(f"start:{payload}")
        await asyncio.sleep(0.01)
        order.append(f"end:{payload}")

    subscription = await _open(hub, on_event)
    await hub.broadcast("trace:t1", "progress", 1)
    await hub.broadcast("trace:t1", "progress", 2)

    await wait_until(lambda: len(order) == 4)
    assert order == ["start:1", "end:1", "start:2", "end:2"]
    await subscription.unsubscribe()


@pytest.mark.asyncio
async def test_handler_errors_do_not_stop_delivery(wait_until) -> None:
    hub = LocalBroadcastHub()
    received: list[str] = []

    def on_event(name: str, payload: Any) -> None:
        if name == "bad":
            raise RuntimeError("handler bug")
        received.append(name)

    subscription = await _open(hub, on_event)
    await hub.broadcast("trace:t1", "bad")
    await hub.broadcast("trace:t1", "done")

    await wait_until(lambda: received == ["done"])
    await subscription.unsubscribe()


@pytest.mark.asyncio
async def test_dropped_channel_reconnects_after_delay(wait_until) -> None:
    hub = LocalBroadcastHub()
    received: list[str] = []
    subscription = await _open(hub, lambda name, payload: received.append(name))
    first = hub.issued[0]

    hub.drop("trace:t1", ChannelStatus.TIMED_OUT)
    assert subscription.state == SubscriptionState.UNSUBSCRIBED

    await wait_until(lambda: subscription.state == SubscriptionState.SUBSCRIBED)
    assert subscription.attempts == 2
    assert first.removed
    assert hub.subscriber_count("trace:t1") == 1

    await hub.broadcast("trace:t1", "done")
    await wait_until(lambda: received == ["done"])
    await subscription.unsubscribe()
    assert hub.subscriber_count("trace:t1") == 0


@pytest.mark.asyncio
async def test_failed_join_is_retried() -> None:
    hub = FlakyHub(failures=2)
    subscription = await _open(hub, lambda name, payload: None, reconnect_delay=0.005)

    for _ in range(100):
        if subscription.state == SubscriptionState.SUBSCRIBED:
            break
        await asyncio.sleep(0.005)

    assert subscription.state == SubscriptionState.SUBSCRIBED
    assert subscription.attempts == 3
    await subscription.unsubscribe()


@pytest.mark.asyncio
async def test_no_reconnect_after_unsubscribe() -> None:
    hub = LocalBroadcastHub()
    subscription = await _open(hub, lambda name, payload: None, reconnect_delay=0.02)

    hub.drop("trace:t1")
    await subscription.unsubscribe()
    await asyncio.sleep(0.05)

    assert subscription.attempts == 1
    assert len(hub.issued) == 1
    assert subscription.releases == 1


@pytest.mark.asyncio
async def test_unsubscribe_is_idempotent() -> None:
    hub = LocalBroadcastHub()
    subscription = await _open(hub, lambda name, payload: None)

    await subscription.unsubscribe()
    await subscription.unsubscribe()

    assert subscription.releases == 1
    assert hub.issued[0].removed
    assert subscription.state == SubscriptionState.UNSUBSCRIBED


@pytest.mark.asyncio
async def test_cancel_token_tears_down_once(wait_until) -> None:
    hub = LocalBroadcastHub()
    token = CancellationToken()
    received: list[str] = []
    subscription = await _open(hub, lambda name, payload: received.append(name), cancel=token)

    token.cancel("user")
    await wait_until(lambda: subscription.releases == 1)
    await subscription.unsubscribe()
    await hub.broadcast("trace:t1", "done")
    await asyncio.sleep(0.01)

    assert subscription.releases == 1
    assert received == []
    assert hub.subscriber_count("trace:t1") == 0


@pytest.mark.asyncio
async def test_already_cancelled_token_never_joins() -> None:
    hub = LocalBroadcastHub()
    token = CancellationToken()
    token.cancel()

    subscription = await _open(hub, lambda name, payload: None, cancel=token)
    await asyncio.sleep(0)

    assert subscription.attempts == 0
    assert hub.issued == []
    await subscription.unsubscribe()


@pytest.mark.asyncio
async def test_subscriber_factory_returns_unsubscribe(wait_until) -> None:
    hub = LocalBroadcastHub()
    subscribe = TraceSubscriber(hub, reconnect_delay=0.01)
    received: list[str] = []

    unsubscribe = await subscribe("t1", lambda name, payload: received.append(name))
    (subscription,) = subscribe.subscriptions
    await hub.broadcast("trace:t1", "progress")
    await wait_until(lambda: received == ["progress"])
    await unsubscribe()

    assert subscription.trace_id == "t1"
    assert subscription.releases == 1
    assert subscribe.subscriptions == []


@pytest.mark.asyncio
async def test_subscriber_forgets_closed_subscriptions(wait_until) -> None:
    hub = LocalBroadcastHub()
    subscribe = TraceSubscriber(hub, reconnect_delay=0.01)
    token = CancellationToken()

    first = await subscribe.open("t1", lambda name, payload: None)
    second = await subscribe.open("t2", lambda name, payload: None, token)
    assert subscribe.subscriptions == [first, second]

    await first.unsubscribe()
    assert subscribe.subscriptions == [second]

    token.cancel("done")
    await wait_until(lambda: subscribe.subscriptions == [])
    assert hub.subscriber_count("trace:t2") == 0

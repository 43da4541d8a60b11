"""Broadcast channel protocol for realtime trace subscriptions."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol


class ChannelStatus(str, Enum):
    """Delivery status reported by a broadcast channel."""

    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"


DROP_STATUSES = frozenset({ChannelStatus.CHANNEL_ERROR, ChannelStatus.TIMED_OUT, ChannelStatus.CLOSED})


@dataclass(frozen=True)
class BroadcastMessage:
    """Single broadcast delivered on a channel."""

    event: str
    payload: Any = None


MessageCallback = Callable[[BroadcastMessage], None]
StatusCallback = Callable[[ChannelStatus], None]


class BroadcastChannel(Protocol):
    """One named channel on a broadcast service."""

    name: str

    async def subscribe(self, on_message: MessageCallback, on_status: StatusCallback) -> None:
        """Join the channel; delivery and status changes arrive via callbacks.

        Raises:
            SubscriptionError: The join failed before the channel was live.
        """
        ...


class BroadcastClient(Protocol):
    """Pub/sub service exposing subscribe, broadcast and unsubscribe primitives."""

    def channel(self, name: str) -> BroadcastChannel: ...

    async def remove_channel(self, channel: BroadcastChannel) -> None: ...

    async def broadcast(self, name: str, event: str, payload: Any = None) -> None: ...

    async def close(self) -> None:
        """Release connections shared across channels."""
        ...

"""In-process broadcast hub."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any

from .protocol import BroadcastMessage, ChannelStatus, MessageCallback, StatusCallback

logger = logging.getLogger(__name__)


class LocalChannel:
    """Channel handle issued by :class:`LocalBroadcastHub`."""

    def __init__(self, hub: LocalBroadcastHub, name: str) -> None:
        self.name = name
        self._hub = hub
        self._on_message: MessageCallback | None = None
        self._on_status: StatusCallback | None = None
        self.subscribed = False
        self.removed = False

    async def subscribe(self, on_message: MessageCallback, on_status: StatusCallback) -> None:
        self._on_message = on_message
        self._on_status = on_status
        self._hub._attach(self)
        self.subscribed = True
        on_status(ChannelStatus.SUBSCRIBED)

    def _deliver(self, message: BroadcastMessage) -> None:
        if self._on_message is not None and self.subscribed:
            self._on_message(message)

    def _report(self, status: ChannelStatus) -> None:
        if status != ChannelStatus.SUBSCRIBED:
            self.subscribed = False
        if self._on_status is not None:
            self._on_status(status)


class LocalBroadcastHub:
    """Broadcast client that delivers messages within the current process.

    Satisfies the ``BroadcastClient`` protocol. Useful as a relay between
    components of one application and for exercising reconnect paths: call
    :meth:`drop` to report a channel failure to its subscribers.
    """

    def __init__(self) -> None:
        self._channels: dict[str, list[LocalChannel]] = defaultdict(list)
        self.issued: list[LocalChannel] = []

    def channel(self, name: str) -> LocalChannel:
        channel = LocalChannel(self, name)
        self.issued.append(channel)
        return channel

    def _attach(self, channel: LocalChannel) -> None:
        if channel not in self._channels[channel.name]:
            self._channels[channel.name].append(channel)

    async def remove_channel(self, channel: LocalChannel) -> None:
        members = self._channels.get(channel.name, [])
        if channel in members:
            members.remove(channel)
        channel.subscribed = False
        channel.removed = True

    async def broadcast(self, name: str, event: str, payload: Any = None) -> None:
        message = BroadcastMessage(event=event, payload=payload)
        for channel in list(self._channels.get(name, [])):
            channel._deliver(message)

    def drop(self, name: str, status: ChannelStatus = ChannelStatus.CHANNEL_ERROR) -> None:
        """Report ``status`` to every channel joined under ``name`` and detach them."""
        members = self._channels.pop(name, [])
        logger.debug("Dropping %d subscriber(s) on %s with %s", len(members), name, status.value)
        for channel in members:
            channel._report(status)

    def subscriber_count(self, name: str) -> int:
        return sum(1 for channel in self._channels.get(name, []) if channel.subscribed)

    async def close(self) -> None:
        for members in self._channels.values():
            for channel in members:
                channel.subscribed = False
        self._channels.clear()

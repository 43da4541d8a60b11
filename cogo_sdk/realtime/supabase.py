"""Supabase Realtime broadcast channels."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..client import create_headers
from ..errors import SubscriptionError
from .protocol import BroadcastMessage, ChannelStatus, MessageCallback, StatusCallback

logger = logging.getLogger(__name__)


def realtime_url(project_url: str) -> str:
    """Websocket endpoint of a project's realtime service."""
    base = project_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://") :]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://") :]
    return f"{base}/realtime/v1"


def to_status(state: Any) -> ChannelStatus | None:
    """Map a realtime subscribe state onto ``ChannelStatus``."""
    value = getattr(state, "value", state)
    try:
        return ChannelStatus(str(value).upper())
    except ValueError:
        return None


def to_message(message: Any) -> BroadcastMessage | None:
    """Unwrap a ``{"event", "payload"}`` broadcast as delivered by the socket."""
    if not isinstance(message, dict) or not isinstance(message.get("event"), str):
        return None
    return BroadcastMessage(event=message["event"], payload=message.get("payload"))


class SupabaseChannel:
    """Broadcast channel joined over the shared realtime socket."""

    def __init__(self, owner: SupabaseBroadcastClient, name: str) -> None:
        self.name = name
        self._owner = owner
        self._channel: Any = None  # realtime.AsyncRealtimeChannel

    async def subscribe(self, on_message: MessageCallback, on_status: StatusCallback) -> None:
        def deliver(raw: Any) -> None:
            message = to_message(raw)
            if message is None:
                logger.debug("Ignoring malformed broadcast on %s", self.name)
                return
            on_message(message)

        def report(state: Any, error: Exception | None = None) -> None:
            status = to_status(state)
            if status is None:
                return
            if error is not None:
                logger.debug("Channel %s reported %s: %s", self.name, status.value, error)
            on_status(status)

        try:
            socket = await self._owner._socket()
            self._channel = socket.channel(self.name)
            self._channel.on_broadcast("*", deliver)
            await self._channel.subscribe(report)
        except Exception as exc:
            raise SubscriptionError(f"Join failed for {self.name}: {exc}") from exc

    async def close(self) -> None:
        channel, self._channel = self._channel, None
        if channel is not None:
            await self._owner._remove(channel)


class SupabaseBroadcastClient:
    """Broadcast client over Supabase Realtime.

    Satisfies the ``BroadcastClient`` protocol. Channels share one websocket,
    opened on the first join; ``broadcast`` posts to the realtime REST
    endpoint so it needs no joined channel. Pass ``socket`` to reuse an
    existing ``realtime.AsyncRealtimeClient``.

    Usage::

        client = SupabaseBroadcastClient("https://abc.supabase.co", anon_key)
        subscribe = TraceSubscriber(client)
        ...
        await client.close()
    """

    def __init__(
        self,
        project_url: str,
        anon_key: str,
        *,
        socket: Any = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.project_url = project_url.rstrip("/")
        self._anon = anon_key
        self._socket_client = socket
        self._http = http
        self._connect_lock = asyncio.Lock()

    async def _socket(self) -> Any:
        async with self._connect_lock:
            if self._socket_client is None:
                from realtime import AsyncRealtimeClient

                self._socket_client = AsyncRealtimeClient(
                    realtime_url(self.project_url), self._anon
                )
            if not self._socket_client.is_connected:
                await self._socket_client.connect()
                logger.debug("Realtime socket connected to %s", self.project_url)
            return self._socket_client

    async def _remove(self, channel: Any) -> None:
        if self._socket_client is not None:
            await self._socket_client.remove_channel(channel)

    def channel(self, name: str) -> SupabaseChannel:
        return SupabaseChannel(self, name)

    async def remove_channel(self, channel: SupabaseChannel) -> None:
        await channel.close()

    async def broadcast(self, name: str, event: str, payload: Any = None) -> None:
        body = {"messages": [{"topic": name, "event": event, "payload": payload}]}
        headers = {"content-type": "application/json", **create_headers(self._anon)}
        url = f"{self.project_url}/realtime/v1/api/broadcast"
        http = self._http or httpx.AsyncClient()
        try:
            response = await http.post(url, json=body, headers=headers)
            response.raise_for_status()
        finally:
            if self._http is None:
                await http.aclose()

    async def close(self) -> None:
        """Close the shared socket if one was opened."""
        if self._socket_client is not None and self._socket_client.is_connected:
            await self._socket_client.close()

"""Postgres LISTEN/NOTIFY-based broadcast channels."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from ..errors import SubscriptionError
from .protocol import BroadcastMessage, ChannelStatus, MessageCallback, StatusCallback

logger = logging.getLogger(__name__)


def encode_message(event: str, payload: Any = None) -> str:
    """Serialize a broadcast envelope for ``pg_notify``."""
    return json.dumps({"event": event, "payload": payload})


def decode_message(raw: str | None) -> BroadcastMessage | None:
    """Parse a NOTIFY payload; returns None for anything but an envelope."""
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict) or not isinstance(data.get("event"), str):
        return None
    return BroadcastMessage(event=data["event"], payload=data.get("payload"))


class PostgresChannel:
    """A channel backed by one LISTEN connection.

    The channel name is used verbatim as a quoted identifier, so
    ``trace:<id>`` names need no escaping. Postgres truncates identifiers
    at 63 bytes.
    """

    def __init__(self, dsn: str, name: str) -> None:
        self.name = name
        self._dsn = dsn
        self._conn: Any = None  # psycopg.AsyncConnection
        self._task: asyncio.Task[None] | None = None

    async def subscribe(self, on_message: MessageCallback, on_status: StatusCallback) -> None:
        import psycopg
        from psycopg import sql

        try:
            self._conn = await psycopg.AsyncConnection.connect(self._dsn, autocommit=True)
            await self._conn.execute(sql.SQL("LISTEN {}").format(sql.Identifier(self.name)))
        except Exception as exc:
            await self._close_conn()
            raise SubscriptionError(f"LISTEN failed for {self.name}: {exc}") from exc

        on_status(ChannelStatus.SUBSCRIBED)
        self._task = asyncio.create_task(self._listen(on_message, on_status))

    async def _listen(self, on_message: MessageCallback, on_status: StatusCallback) -> None:
        try:
            async for notify in self._conn.notifies():
                message = decode_message(notify.payload)
                if message is None:
                    logger.debug("Ignoring malformed notify on %s", self.name)
                    continue
                on_message(message)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.debug("Notify stream failed for %s: %s", self.name, exc)
            on_status(ChannelStatus.CHANNEL_ERROR)
            return
        on_status(ChannelStatus.CLOSED)

    async def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self._close_conn()

    async def _close_conn(self) -> None:
        if self._conn is not None and not self._conn.closed:
            await self._conn.close()
        self._conn = None


class PostgresBroadcastClient:
    """Broadcast client over Postgres LISTEN/NOTIFY.

    Satisfies the ``BroadcastClient`` protocol. Each channel holds its own
    connection; ``broadcast`` opens a short-lived one per call. NOTIFY
    payloads are limited to 8000 bytes.
    """

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn

    def channel(self, name: str) -> PostgresChannel:
        return PostgresChannel(self._dsn, name)

    async def remove_channel(self, channel: PostgresChannel) -> None:
        await channel.close()

    async def broadcast(self, name: str, event: str, payload: Any = None) -> None:
        import psycopg

        async with await psycopg.AsyncConnection.connect(self._dsn, autocommit=True) as conn:
            await conn.execute("SELECT pg_notify(%s, %s)", (name, encode_message(event, payload)))

    async def close(self) -> None:
        """Nothing to release: each channel closes its own connection."""

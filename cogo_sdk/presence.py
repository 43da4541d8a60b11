"""Plugin presence registration with a background heartbeat."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from .client import CogoClient
from .errors import CogoError
from .http import fetch_json

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_MS = 15000
DEFAULT_TTL_MS = 60000


class PresenceError(CogoError):
    """The presence registry rejected a registration."""


class PresenceSession:
    """Registers a plugin instance and keeps it alive until unregistered.

    Usage::

        async with PresenceSession(client, "fp-1234", file_key=key) as presence:
            print(presence.session_id)
    """

    def __init__(
        self,
        client: CogoClient,
        plugin_id: str,
        *,
        project_id: str | None = None,
        file_key: str | None = None,
        user_id: str | None = None,
        agent_id: str | None = None,
        ttl_ms: int = DEFAULT_TTL_MS,
    ) -> None:
        self.client = client
        self.plugin_id = plugin_id
        self.project_id = project_id
        self.file_key = file_key
        self.user_id = user_id
        self.agent_id = agent_id
        self.ttl_ms = ttl_ms if ttl_ms > 0 else DEFAULT_TTL_MS
        self.session_id: str | None = None
        self.heartbeat_ms: float = DEFAULT_HEARTBEAT_MS
        self.heartbeats = 0
        self._heartbeat: asyncio.Task[None] | None = None

    @property
    def registered(self) -> bool:
        return self.session_id is not None

    def _headers(self) -> dict[str, str]:
        headers = {"content-type": "application/json", **self.client.headers()}
        if self.agent_id and self.agent_id.strip():
            headers["x-agent-id"] = self.agent_id.strip()
        return headers

    async def _post(self, path: str, body: dict[str, Any], **kwargs: Any) -> Any:
        return await fetch_json(
            "POST",
            self.client.url(path),
            headers=self._headers(),
            json_body=body,
            client=self.client.http,
            **kwargs,
        )

    async def register(self) -> str:
        """Register (or re-register) and start heartbeating. Returns the session id."""
        body: dict[str, Any] = {"plugin_id": self.session_id or self.plugin_id, "ttl_ms": self.ttl_ms}
        if self.project_id:
            body["project_id"] = self.project_id
        if self.file_key:
            body["file_key"] = self.file_key
        if self.user_id:
            body["user_id"] = self.user_id

        data = await self._post("figma-plugin/presence/register", body, retries=3, backoff_ms=500)
        if not isinstance(data, dict) or not data.get("ok"):
            raise PresenceError("presence_register_failed")

        self.session_id = str(data.get("session_id") or "")
        try:
            self.heartbeat_ms = float(data.get("heartbeat_ms") or DEFAULT_HEARTBEAT_MS)
        except (TypeError, ValueError):
            self.heartbeat_ms = DEFAULT_HEARTBEAT_MS
        await self._stop_heartbeat()
        self._heartbeat = asyncio.create_task(self._run_heartbeat())
        logger.info("Presence registered: %s (heartbeat %dms)", self.session_id, self.heartbeat_ms)
        return self.session_id

    async def _run_heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_ms / 1000)
            try:
                await self._post(
                    "figma-plugin/presence/heartbeat", {"session_id": self.session_id}, retries=0
                )
                self.heartbeats += 1
            except Exception as exc:
                logger.debug("Presence heartbeat failed for %s: %s", self.session_id, exc)

    async def _stop_heartbeat(self) -> None:
        task, self._heartbeat = self._heartbeat, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def unregister(self) -> None:
        """Stop heartbeating and tell the registry the session is gone."""
        await self._stop_heartbeat()
        session_id, self.session_id = self.session_id, None
        if not session_id:
            return
        try:
            await self._post("figma-plugin/presence/unregister", {"session_id": session_id}, retries=0)
        except Exception as exc:
            logger.debug("Presence unregister failed for %s: %s", session_id, exc)

    async def __aenter__(self) -> PresenceSession:
        await self.register()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.unregister()

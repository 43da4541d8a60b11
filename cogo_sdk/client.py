"""HTTP client bound to one edge-function deployment."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import SdkConfig
from .http import fetch_json


def create_headers(anon_key: str) -> dict[str, str]:
    return {"apikey": anon_key, "Authorization": f"Bearer {anon_key}"}


@dataclass
class Capabilities:
    """Server capability report from ``/intent-resolve/info``."""

    ok: bool
    envelope_version: str | None = None
    capabilities_version: str | None = None
    server_version: str | None = None
    task_types: list[str] = field(default_factory=list)
    intent_keywords: list[str] = field(default_factory=list)
    sse_events: list[str] = field(default_factory=list)
    limits: dict[str, Any] = field(default_factory=dict)
    editor_context_support: bool | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Capabilities:
        return cls(
            ok=bool(data.get("ok", False)),
            envelope_version=data.get("envelope_version"),
            capabilities_version=data.get("capabilities_version"),
            server_version=data.get("server_version"),
            task_types=list(data.get("task_types") or data.get("task_type") or []),
            intent_keywords=list(data.get("intent_keywords") or []),
            sse_events=list(data.get("sse_events") or []),
            limits=dict(data.get("limits") or {}),
            editor_context_support=data.get("editor_context_support"),
            raw=dict(data),
        )


class CogoClient:
    """Base URL, credentials and a shared ``httpx.AsyncClient``.

    Usage::

        async with CogoClient(edge_base, anon_key) as client:
            caps = await client.get_capabilities()
    """

    def __init__(
        self,
        edge_base: str,
        anon_key: str,
        *,
        http: httpx.AsyncClient | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        self._base = edge_base.rstrip("/")
        self._anon = anon_key
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(timeout=httpx.Timeout(timeout_s, read=None))

    @classmethod
    def from_config(cls, config: SdkConfig, *, http: httpx.AsyncClient | None = None) -> CogoClient:
        config.require_credentials()
        return cls(config.edge_base, config.anon_key, http=http, timeout_s=config.http_timeout_s)

    @property
    def base_url(self) -> str:
        return self._base

    @property
    def anon_key(self) -> str:
        return self._anon

    def headers(self) -> dict[str, str]:
        return create_headers(self._anon)

    def url(self, path: str) -> str:
        return f"{self._base}/{path.lstrip('/')}"

    async def get_capabilities(self) -> Capabilities:
        data = await fetch_json(
            "GET",
            self.url("intent-resolve/info"),
            headers=self.headers(),
            retries=1,
            backoff_ms=200,
            timeout_ms=8000,
            client=self.http,
        )
        return Capabilities.from_dict(data if isinstance(data, dict) else {})

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> CogoClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def create_cogo_client(edge_base: str, anon_key: str) -> CogoClient:
    return CogoClient(edge_base, anon_key)

"""JSON requests with retry, and idempotency keys."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

import httpx

from .errors import HttpError

logger = logging.getLogger(__name__)

DEFAULT_RETRIES = 2
DEFAULT_BACKOFF_MS = 250


def new_idempotency_key(prefix: str = "idem") -> str:
    """Return a fresh ``prefix:<uuid4>`` key for server-side request dedup."""
    return f"{prefix}:{uuid.uuid4()}"


def _error_details(body: Any, response: httpx.Response) -> tuple[str | int, str]:
    if isinstance(body, dict):
        code = body.get("code") or body.get("error") or response.status_code
        message = body.get("message") or body.get("error") or response.reason_phrase
        return code, str(message)
    return response.status_code, response.reason_phrase


async def fetch_json(
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    json_body: Any = None,
    retries: int = DEFAULT_RETRIES,
    backoff_ms: float = DEFAULT_BACKOFF_MS,
    timeout_ms: float | None = None,
    client: httpx.AsyncClient | None = None,
) -> Any:
    """Send a request and return the decoded body.

    5xx responses and transport failures (including timeouts) are retried
    up to ``retries`` times, waiting ``backoff_ms * attempt`` between tries.
    JSON bodies are decoded; anything else is returned as text.

    Raises:
        HttpError: The final response status was not successful.
        httpx.TransportError: The request failed after all retries.
    """
    http = client or httpx.AsyncClient()
    timeout = httpx.Timeout(timeout_ms / 1000) if timeout_ms else httpx.USE_CLIENT_DEFAULT
    attempt = 0
    try:
        while True:
            try:
                response = await http.request(
                    method, url, headers=headers, json=json_body, timeout=timeout
                )
            except httpx.TransportError as exc:
                if attempt >= retries:
                    raise
                attempt += 1
                logger.debug("%s %s failed (%s); retry %d/%d", method, url, exc, attempt, retries)
                await asyncio.sleep(backoff_ms * attempt / 1000)
                continue

            content_type = response.headers.get("content-type", "")
            body = response.json() if "application/json" in content_type else response.text
            if response.is_success:
                return body
            if response.status_code >= 500 and attempt < retries:
                attempt += 1
                logger.debug("%s %s -> %d; retry %d/%d", method, url, response.status_code, attempt, retries)
                await asyncio.sleep(backoff_ms * attempt / 1000)
                continue
            code, message = _error_details(body, response)
            raise HttpError(response.status_code, code, message)
    finally:
        if client is None:
            await http.aclose()

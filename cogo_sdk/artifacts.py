"""Fetch artifacts produced by ingest and generate calls, by signed URL or storage key."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from .client import create_headers


@dataclass(frozen=True)
class ArtifactInfo:
    content_type: str | None
    size: int | None


async def head(url: str, *, client: httpx.AsyncClient | None = None) -> ArtifactInfo:
    http = client or httpx.AsyncClient()
    try:
        response = await http.head(url)
    finally:
        if client is None:
            await http.aclose()
    length = response.headers.get("content-length")
    try:
        size = int(length) if length is not None else None
    except ValueError:
        size = None
    return ArtifactInfo(content_type=response.headers.get("content-type"), size=size)


async def download_json(url: str, *, client: httpx.AsyncClient | None = None) -> Any:
    """GET ``url`` and decode its body as JSON.

    Raises:
        httpx.HTTPStatusError: The response was not successful.
    """
    http = client or httpx.AsyncClient()
    try:
        response = await http.get(url)
        response.raise_for_status()
        return response.json()
    finally:
        if client is None:
            await http.aclose()


def storage_object_url(project_url: str, bucket: str, key: str) -> str:
    """Authenticated download URL of a Supabase Storage object."""
    return f"{project_url.rstrip('/')}/storage/v1/object/{quote(bucket)}/{quote(key.lstrip('/'))}"


async def _storage_get(
    project_url: str,
    anon_key: str,
    bucket: str,
    key: str,
    client: httpx.AsyncClient | None,
) -> httpx.Response:
    http = client or httpx.AsyncClient()
    try:
        return await http.get(
            storage_object_url(project_url, bucket, key), headers=create_headers(anon_key)
        )
    finally:
        if client is None:
            await http.aclose()


async def storage_head(
    project_url: str,
    anon_key: str,
    bucket: str,
    key: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> ArtifactInfo:
    """Type and size of a storage object; both None when it cannot be read."""
    response = await _storage_get(project_url, anon_key, bucket, key, client)
    if not response.is_success:
        return ArtifactInfo(content_type=None, size=None)
    return ArtifactInfo(content_type=response.headers.get("content-type"), size=len(response.content))


async def storage_download_json(
    project_url: str,
    anon_key: str,
    bucket: str,
    key: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> Any:
    """Download a storage object and decode it as JSON.

    Raises:
        httpx.HTTPStatusError: The object could not be downloaded.
    """
    response = await _storage_get(project_url, anon_key, bucket, key, client)
    response.raise_for_status()
    return response.json()

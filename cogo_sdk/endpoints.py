"""Chat, compat and attachment endpoints of the edge deployment."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any
from urllib.parse import quote

from .cancellation import CancellationToken
from .client import CogoClient
from .http import fetch_json
from .streaming.events import TypedEvent, TypedHandlers
from .streaming.orchestrator import DEFAULT_IDLE_MS, SubscribeTrace, stream_or_realtime
from .streaming.sse import FrameCallback, stream, stream_to_final
from .streaming.typed import stream_typed


@dataclass
class GenerateRequest:
    """Body of a ``design-generate`` call. ``dev_*`` flags only work on dev deployments."""

    text: str | None = None
    prompt: str | None = None
    intent: dict[str, Any] | None = None
    editor_context: dict[str, Any] | None = None
    session_id: str | None = None
    dev_cli_simulate: bool | None = None
    dev_abort_after_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


RequestBody = GenerateRequest | dict[str, Any]


def _body(request: RequestBody) -> dict[str, Any]:
    return request.to_dict() if isinstance(request, GenerateRequest) else dict(request)


class ChatEndpoints:
    """Typed wrappers over the deployment's HTTP and SSE routes."""

    def __init__(self, client: CogoClient) -> None:
        self.client = client

    def _json_headers(self, idempotency_key: str | None = None) -> dict[str, str]:
        headers = {"content-type": "application/json", **self.client.headers()}
        if idempotency_key:
            headers["idempotency-key"] = idempotency_key
        return headers

    def _sse_headers(self, idempotency_key: str | None = None) -> dict[str, str]:
        return {**self._json_headers(idempotency_key), "accept": "text/event-stream"}

    async def _post(self, path: str, payload: Any, idempotency_key: str | None = None) -> Any:
        return await fetch_json(
            "POST",
            self.client.url(path),
            headers=self._json_headers(idempotency_key),
            json_body=payload,
            client=self.client.http,
        )

    async def _get(self, path: str) -> Any:
        return await fetch_json(
            "GET", self.client.url(path), headers=self.client.headers(), client=self.client.http
        )

    # design-generate

    async def design_generate(self, request: RequestBody) -> Any:
        return await self._post("design-generate", _body(request))

    async def stream_design_generate(
        self,
        request: RequestBody,
        on_event: FrameCallback,
        *,
        cancel: CancellationToken | None = None,
        idempotency_key: str | None = None,
    ) -> None:
        await stream(
            self.client.url("design-generate"),
            self._sse_headers(idempotency_key),
            on_event,
            _body(request),
            cancel=cancel,
            client=self.client.http,
        )

    async def stream_design_generate_to_final(
        self,
        request: RequestBody,
        *,
        on_event: FrameCallback | None = None,
        cancel: CancellationToken | None = None,
        idempotency_key: str | None = None,
    ) -> Any:
        return await stream_to_final(
            self.client.url("design-generate"),
            self._sse_headers(idempotency_key),
            _body(request),
            on_event=on_event,
            cancel=cancel,
            client=self.client.http,
        )

    async def stream_design_generate_typed(
        self,
        request: RequestBody,
        handlers: TypedHandlers,
        *,
        cancel: CancellationToken | None = None,
        idempotency_key: str | None = None,
    ) -> TypedEvent | None:
        return await stream_typed(
            self.client.url("design-generate"),
            self._sse_headers(idempotency_key),
            _body(request),
            handlers=handlers,
            cancel=cancel,
            client=self.client.http,
        )

    async def stream_design_generate_or_realtime(
        self,
        request: RequestBody,
        handlers: TypedHandlers,
        *,
        subscribe_trace: SubscribeTrace | None = None,
        idle_ms: float | None = DEFAULT_IDLE_MS,
        cancel: CancellationToken | None = None,
        idempotency_key: str | None = None,
        handoff_timeout_ms: float | None = None,
    ) -> TypedEvent | None:
        return await stream_or_realtime(
            self.client.url("design-generate"),
            self._sse_headers(idempotency_key),
            _body(request),
            subscribe_trace=subscribe_trace,
            handlers=handlers,
            idle_ms=idle_ms,
            cancel=cancel,
            client=self.client.http,
            handoff_timeout_ms=handoff_timeout_ms,
        )

    async def stream_figma_context(
        self,
        body: dict[str, Any],
        on_event: FrameCallback,
        *,
        cancel: CancellationToken | None = None,
        idempotency_key: str | None = None,
    ) -> None:
        await stream(
            self.client.url("figma-context/stream"),
            self._sse_headers(idempotency_key),
            on_event,
            body,
            cancel=cancel,
            client=self.client.http,
        )

    # figma-compat

    async def compat_variables_derive(self, payload: dict[str, Any]) -> Any:
        return await self._post("figma-compat/uui/variables/derive", payload)

    async def compat_symbols_map(
        self, payload: dict[str, Any], *, idempotency_key: str | None = None
    ) -> Any:
        return await self._post("figma-compat/uui/symbols/map", payload, idempotency_key)

    # intent-resolve

    async def intent_capabilities(self) -> Any:
        return await self._get("intent-resolve/info")

    async def intent_resolve(self, text: str) -> Any:
        return await self._post("intent-resolve", {"text": text})

    # attachments

    async def attachments_presign(self, payload: dict[str, Any]) -> Any:
        return await self._post("figma-compat/uui/presign", payload)

    async def attachments_ingest(
        self, payload: dict[str, Any], *, idempotency_key: str | None = None
    ) -> Any:
        return await self._post("figma-compat/uui/ingest", payload, idempotency_key)

    async def attachments_result(self, trace_id: str) -> Any:
        return await self._get(f"figma-compat/uui/ingest/result?traceId={quote(trace_id, safe='')}")

    # BDD / ActionFlow / data actions

    async def bdd_generate(self, payload: dict[str, Any]) -> Any:
        return await self._post("figma-compat/uui/bdd/generate", payload)

    async def bdd_refine(self, payload: dict[str, Any]) -> Any:
        return await self._post("figma-compat/uui/bdd/refine", payload)

    async def actionflow_generate(self, payload: dict[str, Any]) -> Any:
        return await self._post("figma-compat/uui/actionflow/generate", payload)

    async def actionflow_refine(self, payload: dict[str, Any]) -> Any:
        return await self._post("figma-compat/uui/actionflow/refine", payload)

    async def data_action_generate(self, payload: dict[str, Any]) -> Any:
        return await self._post("figma-compat/uui/data_action/generate", payload)

    # traces

    async def trace_status(self, trace_id: str) -> Any:
        return await self._get(f"trace-status?trace_id={quote(trace_id, safe='')}")

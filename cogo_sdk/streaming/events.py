"""Typed event payloads and handler bindings for SSE and realtime frames."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, ClassVar, Union

from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger(__name__)

TERMINAL_EVENTS = frozenset({"done", "error"})
SUBSCRIBE_EVENTS = frozenset({"queued", "handoff"})


class _EventModel(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore", frozen=True)

    event_name: ClassVar[str]


class MetaEvent(_EventModel):
    event_name: ClassVar[str] = "meta"

    trace_id: str
    envelope_version: str | None = None
    intent: Any = None
    editor_context: Any = None


class CliPlanEvent(_EventModel):
    event_name: ClassVar[str] = "cli.plan"

    trace_id: str
    actions: list[Any]


class CliApplyEvent(_EventModel):
    event_name: ClassVar[str] = "cli.apply"

    trace_id: str
    action_id: str | None = None
    status: str
    message: str | None = None
    diff: Any = None


class QueuedEvent(_EventModel):
    event_name: ClassVar[str] = "queued"

    trace_id: str
    estimate_ms: int | float | None = None
    reason: str | None = None
    job_id: str | None = None


class HandoffEvent(_EventModel):
    event_name: ClassVar[str] = "handoff"

    trace_id: str
    job_id: str
    reason: str | None = None


class DoneEvent(_EventModel):
    """Final result frame; fields beyond ``trace_id`` are kept as extras."""

    model_config = ConfigDict(strict=True, extra="allow", frozen=True)
    event_name: ClassVar[str] = "done"

    trace_id: str

    @property
    def extras(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class ErrorEvent(_EventModel):
    event_name: ClassVar[str] = "error"

    code: str
    message: str
    retryable: bool | None = None
    trace_id: str | None = None
    details: Any = None


@dataclass(frozen=True)
class UnrecognizedEvent:
    """Frame whose name is unknown or whose payload failed validation.

    ``data`` is the raw payload string exactly as received.
    """

    event: str
    data: str


TypedEvent = Union[
    MetaEvent,
    CliPlanEvent,
    CliApplyEvent,
    QueuedEvent,
    HandoffEvent,
    DoneEvent,
    ErrorEvent,
    UnrecognizedEvent,
]

EVENT_MODELS: dict[str, type[_EventModel]] = {
    model.event_name: model
    for model in (
        MetaEvent,
        CliPlanEvent,
        CliApplyEvent,
        QueuedEvent,
        HandoffEvent,
        DoneEvent,
        ErrorEvent,
    )
}


def decode_event(event: str, payload: Any, raw: str | None = None) -> TypedEvent:
    """Validate an already-decoded payload against the schema bound to ``event``."""
    model = EVENT_MODELS.get(event)
    if raw is None:
        raw = payload if isinstance(payload, str) else json.dumps(payload, default=str)
    if model is None:
        return UnrecognizedEvent(event=event, data=raw)
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        logger.debug("Invalid %s payload (%d errors)", event, exc.error_count())
        return UnrecognizedEvent(event=event, data=raw)


def parse_event(event: str, raw: str) -> TypedEvent:
    """Decode the JSON text of a frame and validate it."""
    if event not in EVENT_MODELS:
        return UnrecognizedEvent(event=event, data=raw)
    try:
        payload = json.loads(raw)
    except ValueError:
        logger.debug("Undecodable %s payload: %.200s", event, raw)
        return UnrecognizedEvent(event=event, data=raw)
    return decode_event(event, payload, raw)


def extract_trace_id(raw: str) -> str | None:
    """Return the string ``trace_id`` of a raw JSON payload, if any."""
    if not raw:
        return None
    try:
        payload = json.loads(raw)
    except ValueError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get("trace_id"), str):
        return payload["trace_id"]
    return None


Handler = Callable[[Any], None | Awaitable[None]]
FallbackHandler = Callable[[str, str], None | Awaitable[None]]


@dataclass
class TypedHandlers:
    """Optional per-event callbacks; a missing handler drops its frame.

    ``fallback`` receives ``(event, raw_data)`` for unknown event names and
    for payloads that fail to decode or validate.
    """

    meta: Callable[[MetaEvent], None | Awaitable[None]] | None = None
    cli_plan: Callable[[CliPlanEvent], None | Awaitable[None]] | None = None
    cli_apply: Callable[[CliApplyEvent], None | Awaitable[None]] | None = None
    queued: Callable[[QueuedEvent], None | Awaitable[None]] | None = None
    handoff: Callable[[HandoffEvent], None | Awaitable[None]] | None = None
    done: Callable[[DoneEvent], None | Awaitable[None]] | None = None
    error: Callable[[ErrorEvent], None | Awaitable[None]] | None = None
    fallback: FallbackHandler | None = None

    _FIELDS: ClassVar[dict[str, str]] = {
        "meta": "meta",
        "cli.plan": "cli_plan",
        "cli.apply": "cli_apply",
        "queued": "queued",
        "handoff": "handoff",
        "done": "done",
        "error": "error",
    }

    def for_event(self, event: str) -> Handler | None:
        """Return the handler bound to a recognised event name."""
        attr = self._FIELDS.get(event)
        return getattr(self, attr) if attr else None

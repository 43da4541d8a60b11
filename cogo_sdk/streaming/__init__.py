"""Streaming core: SSE frames, typed events, aggregation and realtime fallback."""

from __future__ import annotations

from .aggregate import CliAggregator, CliSnapshot
from .events import (
    EVENT_MODELS,
    CliApplyEvent,
    CliPlanEvent,
    DoneEvent,
    ErrorEvent,
    HandoffEvent,
    MetaEvent,
    QueuedEvent,
    TypedEvent,
    TypedHandlers,
    UnrecognizedEvent,
    decode_event,
    parse_event,
)
from .frames import Frame, FrameParser
from .orchestrator import StreamOrRealtimeSession, stream_or_realtime
from .sse import RECOGNIZED_EVENTS, is_abort_error, stream, stream_to_final
from .typed import dispatch, stream_typed

__all__ = [
    # Frames
    "Frame",
    "FrameParser",
    # Raw stream
    "RECOGNIZED_EVENTS",
    "is_abort_error",
    "stream",
    "stream_to_final",
    # Typed events
    "EVENT_MODELS",
    "CliApplyEvent",
    "CliPlanEvent",
    "DoneEvent",
    "ErrorEvent",
    "HandoffEvent",
    "MetaEvent",
    "QueuedEvent",
    "TypedEvent",
    "TypedHandlers",
    "UnrecognizedEvent",
    "decode_event",
    "parse_event",
    "dispatch",
    "stream_typed",
    # Aggregation
    "CliAggregator",
    "CliSnapshot",
    # Orchestration
    "StreamOrRealtimeSession",
    "stream_or_realtime",
]

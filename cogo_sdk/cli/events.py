"""Event rendering: raw frames, typed events and realtime broadcasts."""

from __future__ import annotations

import json
from typing import Any

from rich.panel import Panel

from ..editor import select_toast
from ..streaming.aggregate import CliAggregator
from ..streaming.events import (
    CliApplyEvent,
    CliPlanEvent,
    DoneEvent,
    ErrorEvent,
    HandoffEvent,
    MetaEvent,
    QueuedEvent,
    TypedHandlers,
)
from .formatting import _format_ms, _format_snapshot, _markup, _preview
from .state import console
from .theme import THEME

_APPLY_COLORS = {"running": THEME.running, "success": THEME.success, "error": THEME.error}


def print_frame(event: str, data: str) -> None:
    """Print one raw SSE frame."""
    console.print(f"{_markup(event, THEME.event)} {_markup(_preview(data), THEME.payload)}")


def print_broadcast(name: str, payload: Any) -> None:
    """Print one realtime broadcast."""
    console.print(
        f"{_markup('rt', THEME.dim)} {_markup(name, THEME.event)} "
        f"{_markup(_preview(payload), THEME.payload)}"
    )


def print_result(result: Any) -> None:
    console.print(
        Panel(
            _markup(json.dumps(result, indent=2, ensure_ascii=False, default=str), THEME.payload),
            title=_markup("done", THEME.success),
            title_align="left",
            border_style=THEME.border,
        )
    )


class EventPrinter:
    """Renders typed events and keeps plan/apply counters.

    ``language`` selects the localized toast from ``ide_hints`` on ``done``.
    """

    def __init__(self, *, language: str = "en", show_unknown: bool = True) -> None:
        self.language = language
        self.show_unknown = show_unknown
        self.aggregator = CliAggregator()
        self.trace_id: str | None = None

    def handlers(self) -> TypedHandlers:
        return TypedHandlers(
            meta=self.on_meta,
            cli_plan=self.on_plan,
            cli_apply=self.on_apply,
            queued=self.on_queued,
            handoff=self.on_handoff,
            done=self.on_done,
            error=self.on_error,
            fallback=self.on_unknown,
        )

    def on_meta(self, event: MetaEvent) -> None:
        self.trace_id = event.trace_id
        console.print(_markup(f"trace {event.trace_id}", THEME.dim))

    def on_plan(self, event: CliPlanEvent) -> None:
        self.aggregator.on_plan(event)
        console.print(_markup(f"plan: {len(event.actions)} action(s)", THEME.plan))

    def on_apply(self, event: CliApplyEvent) -> None:
        self.aggregator.on_apply(event)
        color = _APPLY_COLORS.get(event.status, THEME.dim)
        label = event.action_id or "-"
        line = f"{_markup(event.status, color)} {_markup(label, THEME.payload)}"
        if event.message:
            line += f" {_markup(event.message, THEME.dim)}"
        console.print(line)

    def on_queued(self, event: QueuedEvent) -> None:
        detail = f"queued (eta {_format_ms(event.estimate_ms)})"
        if event.reason:
            detail += f": {event.reason}"
        console.print(_markup(detail, THEME.notice))

    def on_handoff(self, event: HandoffEvent) -> None:
        console.print(_markup(f"handed off to job {event.job_id}", THEME.notice))

    def on_done(self, event: DoneEvent) -> None:
        extras = event.extras
        toast = select_toast(extras.get("ide_hints"), self.language)
        if toast:
            console.print(_markup(toast, THEME.toast))
        snapshot = self.aggregator.snapshot()
        if snapshot.total or snapshot.running:
            console.print(_format_snapshot(snapshot))
        print_result({"trace_id": event.trace_id, **extras})

    def on_error(self, event: ErrorEvent) -> None:
        retry = " (retryable)" if event.retryable else ""
        console.print(_markup(f"error {event.code}: {event.message}{retry}", THEME.error))

    def on_unknown(self, event: str, data: str) -> None:
        if self.show_unknown:
            print_frame(event, data)

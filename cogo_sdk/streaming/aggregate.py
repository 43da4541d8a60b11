"""Plan/apply counters for CLI action streams."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .events import TypedHandlers


@dataclass(frozen=True)
class CliSnapshot:
    """Point-in-time copy of the aggregate counters."""

    total: int = 0
    running: int = 0
    success: int = 0
    failed: int = 0
    last: Any = None

    def to_dict(self) -> dict[str, Any]:
        last = self.last
        if hasattr(last, "model_dump"):
            last = last.model_dump()
        return {
            "total": self.total,
            "running": self.running,
            "success": self.success,
            "failed": self.failed,
            "last": last,
        }


_STATUS_COUNTERS = {"running": "running", "success": "success", "error": "failed"}


class CliAggregator:
    """Accumulates ``cli.plan`` and ``cli.apply`` frames for one session.

    Counters record emitted transitions, so an action that reports
    ``running`` and later ``success`` is counted once in each.
    """

    def __init__(self) -> None:
        self.total = 0
        self.running = 0
        self.success = 0
        self.failed = 0
        self.last: Any = None

    def on_plan(self, event: Any) -> None:
        actions = _field(event, "actions")
        if actions is not None:
            self.total = len(actions)

    def on_apply(self, event: Any) -> None:
        self.last = event
        status = _field(event, "status")
        counter = _STATUS_COUNTERS.get(status) if isinstance(status, str) else None
        if counter is not None:
            setattr(self, counter, getattr(self, counter) + 1)

    def snapshot(self) -> CliSnapshot:
        return CliSnapshot(
            total=self.total,
            running=self.running,
            success=self.success,
            failed=self.failed,
            last=self.last,
        )

    def handlers(self, **overrides: Any) -> TypedHandlers:
        """Build handlers wired to this aggregator; ``overrides`` set the rest."""
        return TypedHandlers(cli_plan=self.on_plan, cli_apply=self.on_apply, **overrides)


def _field(event: Any, name: str) -> Any:
    if isinstance(event, dict):
        return event.get(name)
    return getattr(event, name, None)

"""Display helpers for stream output."""

from __future__ import annotations

import importlib.metadata
import json
import logging
from typing import Any

from rich.logging import RichHandler
from rich.markup import escape

from ..streaming.aggregate import CliSnapshot
from .state import console
from .theme import THEME

PREVIEW_CHARS = 240


def _markup(text: str, color: str) -> str:
    """Wrap text in Rich markup with the given color, escaping special chars."""
    return f"[{color}]{escape(text)}[/{color}]"


def _get_version() -> str:
    """Return the installed package version or 'dev' if not installed."""
    try:
        return importlib.metadata.version("cogo-chat-sdk")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _configure_logging(level: str) -> None:
    """Route library logging through Rich at ``level``."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
        force=True,
    )


def _format_ms(ms: float | None) -> str:
    if ms is None:
        return "?"
    secs = ms / 1000
    if secs < 60:
        return f"{secs:.1f}s"
    return f"{int(secs // 60)}m{int(secs % 60)}s"


def _preview(data: Any, limit: int = PREVIEW_CHARS) -> str:
    """Compact single-line rendering of a payload, truncated to ``limit``."""
    if isinstance(data, str):
        text = data
    else:
        text = json.dumps(data, ensure_ascii=False, default=str)
    text = " ".join(text.split())
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def _format_snapshot(snapshot: CliSnapshot) -> str:
    parts = [
        f"total {snapshot.total}",
        _markup(f"running {snapshot.running}", THEME.running),
        _markup(f"success {snapshot.success}", THEME.success),
        _markup(f"failed {snapshot.failed}", THEME.error if snapshot.failed else THEME.dim),
    ]
    return " · ".join(parts)

"""Editor context for requests and IDE hints from responses."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

TOAST_LANGUAGES = ("en", "ko", "ru", "th", "ja")


@dataclass(frozen=True)
class Selection:
    path: str
    start: int
    end: int

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "range": [self.start, self.end]}


def build_editor_context(
    open_files: Sequence[str] | None = None,
    active_file: str | None = None,
    selection: Selection | Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the ``editor_context`` object, omitting anything empty."""
    ctx: dict[str, Any] = {}
    if open_files:
        ctx["open_files"] = list(open_files)
    if active_file:
        ctx["active_file"] = active_file
    if selection is not None:
        ctx["selection"] = selection.to_dict() if isinstance(selection, Selection) else dict(selection)
    return ctx


def select_toast(hints: Mapping[str, Any] | None, preferred: str = "en") -> str | None:
    """Pick the toast text for ``preferred`` language, falling back to ``toast``."""
    if not hints:
        return None
    lang = (preferred or "en").lower()
    if lang in TOAST_LANGUAGES:
        localized = hints.get(f"toast_{lang}")
        if localized is not None:
            return localized
    return hints.get("toast")

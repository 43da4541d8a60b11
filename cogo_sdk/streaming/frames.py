"""Split a growing text buffer into SSE frames."""

from __future__ import annotations

from dataclasses import dataclass

FRAME_DELIMITER = "\n\n"
DEFAULT_EVENT = "message"

_EVENT_PREFIX = "event: "
_DATA_PREFIX = "data: "


@dataclass(frozen=True)
class Frame:
    """One ``event``/``data`` unit delimited by a blank line on the wire."""

    event: str
    data: str


def parse_frame(raw: str) -> Frame:
    """Parse the lines of a single frame.

    Multiple ``data:`` lines are concatenated without a separator.
    """
    event = DEFAULT_EVENT
    data = ""
    for line in raw.split("\n"):
        if line.startswith(_EVENT_PREFIX):
            event = line[len(_EVENT_PREFIX) :].strip()
        if line.startswith(_DATA_PREFIX):
            data += line[len(_DATA_PREFIX) :]
    return Frame(event=event, data=data)


class FrameParser:
    """Incremental frame extractor over an append-only buffer.

    Usage::

        parser = FrameParser()
        for chunk in chunks:
            for frame in parser.feed(chunk):
                ...

    A trailing frame without its terminator stays buffered until the next
    ``feed`` call completes it.
    """

    def __init__(self) -> None:
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text buffered after the last complete frame."""
        return self._buffer

    def feed(self, text: str) -> list[Frame]:
        self._buffer += text
        frames: list[Frame] = []
        while True:
            idx = self._buffer.find(FRAME_DELIMITER)
            if idx < 0:
                break
            raw = self._buffer[:idx].rstrip()
            self._buffer = self._buffer[idx + len(FRAME_DELIMITER) :]
            frames.append(parse_frame(raw))
        return frames

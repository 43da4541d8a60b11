"""Cancellation primitives threaded through every suspending call."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

CancelCallback = Callable[[str], None]


@dataclass
class CancellationToken:
    """Cooperative cancellation token shared between a caller and the SDK.

    Callbacks registered with :meth:`add_callback` run synchronously inside
    :meth:`cancel`, in registration order. A token derived with :meth:`child`
    is cancelled whenever its parent is, but cancelling the child leaves the
    parent untouched, so internal "we are done" logic never leaks back into
    the caller's token.
    """

    reason: str | None = None
    cancelled_at: datetime | None = None
    _cancelled: bool = False
    _callbacks: list[CancelCallback] = field(default_factory=list, repr=False)
    _event: asyncio.Event | None = field(default=None, repr=False)
    _unlink: Callable[[], None] | None = field(default=None, repr=False)

    def cancel(self, reason: str = "requested") -> None:
        """Mark token as cancelled (idempotent)."""
        if self._cancelled:
            return
        self._cancelled = True
        self.reason = reason
        self.cancelled_at = datetime.now(timezone.utc)
        if self._event is not None:
            self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback(reason)
            except Exception:
                logger.exception("Cancellation callback failed")

    def is_cancelled(self) -> bool:
        """Return True if cancellation was requested."""
        return self._cancelled

    def add_callback(self, callback: CancelCallback) -> Callable[[], None]:
        """Run ``callback(reason)`` on cancellation; returns a remover.

        If the token is already cancelled the callback runs immediately.
        """
        if self._cancelled:
            callback(self.reason or "requested")
            return lambda: None
        self._callbacks.append(callback)

        def remove() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

        return remove

    async def wait(self) -> str | None:
        """Suspend until the token is cancelled and return the reason."""
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()
        return self.reason

    def child(self) -> CancellationToken:
        """Derive a token that follows this one."""
        derived = CancellationToken()
        derived._unlink = self.add_callback(derived.cancel)
        return derived

    def release(self) -> None:
        """Detach a derived token from its parent."""
        if self._unlink is not None:
            self._unlink()
            self._unlink = None

    @classmethod
    def linked(cls, parent: CancellationToken | None) -> CancellationToken:
        """Derive from ``parent`` when given, else create a standalone token."""
        return parent.child() if parent is not None else cls()

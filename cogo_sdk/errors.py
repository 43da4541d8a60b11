"""Error types raised by the SDK."""


class CogoError(Exception):
    """Base class for SDK errors."""


class StreamError(CogoError):
    """Raised when an event stream cannot be opened."""

    def __init__(self, status_code: int | None, details: str = "non-ok or bodyless response") -> None:
        self.status_code = status_code
        super().__init__(f"SSE error: {details} (status {status_code})")


class NoFinalFrameError(CogoError):
    """Raised when a stream ends without delivering a ``done`` frame."""

    def __init__(self) -> None:
        super().__init__("No final done frame received")


class StreamAborted(CogoError):
    """Raised when a stream is stopped through its cancellation token.

    This is a termination signal, not a failure. Callers that own the token
    are expected to catch it.
    """

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason
        super().__init__(f"Stream aborted: {reason or 'requested'}")


class SubscriptionError(CogoError):
    """Raised by broadcast channels when a realtime subscription fails."""


class HttpError(CogoError):
    """Raised when a JSON request returns a non-success status."""

    def __init__(self, status: int, code: str | int, message: str) -> None:
        self.status = status
        self.code = code
        self.message = message
        super().__init__(f"HTTP {status} {code}: {message}")


class MissingCredentialsError(CogoError, ValueError):
    """Raised when the edge base URL or anon key is not configured."""

    def __init__(self, missing: str) -> None:
        super().__init__(
            f"Missing {missing}. Set SUPABASE_EDGE (or SUPABASE_PROJECT_ID) and "
            "SUPABASE_ANON_KEY, or pass them in a config file."
        )

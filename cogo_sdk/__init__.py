"""cogo-chat-sdk: streaming client for the COGO design-generation edge functions."""

__version__ = "0.1.0"

from .cancellation import CancellationToken
from .client import Capabilities, CogoClient, create_cogo_client, create_headers
from .config import SdkConfig
from .editor import Selection, build_editor_context, select_toast
from .endpoints import ChatEndpoints, GenerateRequest
from .errors import (
    CogoError,
    HttpError,
    MissingCredentialsError,
    NoFinalFrameError,
    StreamAborted,
    StreamError,
    SubscriptionError,
)
from .http import fetch_json, new_idempotency_key
from .presence import PresenceSession
from .realtime import (
    LocalBroadcastHub,
    PostgresBroadcastClient,
    SupabaseBroadcastClient,
    TraceSubscriber,
)
from .streaming import (
    CliAggregator,
    TypedHandlers,
    stream,
    stream_or_realtime,
    stream_to_final,
    stream_typed,
)

__all__ = [
    "__version__",
    "CancellationToken",
    "Capabilities",
    "CogoClient",
    "create_cogo_client",
    "create_headers",
    "SdkConfig",
    "ChatEndpoints",
    "GenerateRequest",
    "Selection",
    "build_editor_context",
    "select_toast",
    "CogoError",
    "HttpError",
    "MissingCredentialsError",
    "NoFinalFrameError",
    "StreamAborted",
    "StreamError",
    "SubscriptionError",
    "fetch_json",
    "new_idempotency_key",
    "PresenceSession",
    "LocalBroadcastHub",
    "PostgresBroadcastClient",
    "SupabaseBroadcastClient",
    "TraceSubscriber",
    "CliAggregator",
    "TypedHandlers",
    "stream",
    "stream_or_realtime",
    "stream_to_final",
    "stream_typed",
]

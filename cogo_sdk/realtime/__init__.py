"""Realtime broadcast channels and trace subscriptions."""

from __future__ import annotations

from .local import LocalBroadcastHub
from .postgres import PostgresBroadcastClient
from .protocol import BroadcastChannel, BroadcastClient, BroadcastMessage, ChannelStatus
from .subscriber import (
    RECONNECT_DELAY_S,
    SubscriptionState,
    TraceSubscriber,
    TraceSubscription,
    trace_channel,
)
from .supabase import SupabaseBroadcastClient

__all__ = [
    "BroadcastChannel",
    "BroadcastClient",
    "BroadcastMessage",
    "ChannelStatus",
    "LocalBroadcastHub",
    "PostgresBroadcastClient",
    "RECONNECT_DELAY_S",
    "SubscriptionState",
    "SupabaseBroadcastClient",
    "TraceSubscriber",
    "TraceSubscription",
    "trace_channel",
]

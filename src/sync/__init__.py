"""
Sync module: per-topic update streams combining push and polling.
"""

from .channel import SyncChannel, SyncUpdate, SOURCE_POLL, SOURCE_PUSH, KIND_SNAPSHOT, KIND_EVENT
from .dedup import MessageCache, event_digest
from .backoff import ReconnectBackoff, calculate_backoff
from .transport import (
    PushTransport,
    PushSubscription,
    InMemoryPushTransport,
    NatsPushTransport,
)

__all__ = [
    "SyncChannel",
    "SyncUpdate",
    "SOURCE_POLL",
    "SOURCE_PUSH",
    "KIND_SNAPSHOT",
    "KIND_EVENT",
    "MessageCache",
    "event_digest",
    "ReconnectBackoff",
    "calculate_backoff",
    "PushTransport",
    "PushSubscription",
    "InMemoryPushTransport",
    "NatsPushTransport",
]

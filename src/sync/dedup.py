"""
Push event deduplication.

Push transports deliver at least once; the same event can also arrive
again after a resubscribe. Events are identified by a digest of their name
and canonical payload and remembered in a bounded LRU with TTL.
"""

import hashlib
import json
import logging
import time
from collections import OrderedDict
from typing import Any, Optional

logger = logging.getLogger(__name__)


def event_digest(event: str, payload: Any) -> str:
    """
    Stable identifier for a push event.

    Payloads carrying an explicit ``eventId`` use it; otherwise the sorted
    JSON rendering of the payload is hashed.
    """
    if isinstance(payload, dict) and payload.get("eventId"):
        return f"{event}:{payload['eventId']}"
    canonical = json.dumps(payload, sort_keys=True, default=str, separators=(",", ":"))
    return f"{event}:{hashlib.sha256(canonical.encode()).hexdigest()}"


class MessageCache:
    """
    LRU cache of seen event digests.
    """

    def __init__(self, max_size: int = 1000, ttl_seconds: float = 300.0):
        """
        Args:
            max_size: Maximum remembered events
            ttl_seconds: Time-to-live for cached entries
        """
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds

        # digest -> first seen timestamp
        self.cache: "OrderedDict[str, float]" = OrderedDict()

    def add(self, msg_id: str, now: Optional[float] = None) -> bool:
        """
        Remember an event.

        Returns:
            True if new, False if already seen
        """
        current_time = time.time() if now is None else now

        if msg_id in self.cache:
            if current_time - self.cache[msg_id] <= self.ttl_seconds:
                self.cache.move_to_end(msg_id)
                return False
            del self.cache[msg_id]

        self.cache[msg_id] = current_time

        while len(self.cache) > self.max_size:
            self.cache.popitem(last=False)

        return True

    def cleanup(self, now: Optional[float] = None):
        """Remove expired entries"""
        current_time = time.time() if now is None else now
        cutoff_time = current_time - self.ttl_seconds

        expired = [msg_id for msg_id, ts in self.cache.items() if ts < cutoff_time]
        for msg_id in expired:
            del self.cache[msg_id]

        if expired:
            logger.debug(f"Cleaned up {len(expired)} expired push events")

    def contains(self, msg_id: str) -> bool:
        return msg_id in self.cache

    def size(self) -> int:
        return len(self.cache)

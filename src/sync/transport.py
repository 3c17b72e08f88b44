"""
Push transports: subscribe/unsubscribe per event name.

A subscription resolves ``wait_closed()`` when the underlying connection
is lost; the owning SyncChannel then resubscribes with backoff. Payloads
are delivered as decoded JSON (``None`` for pure change signals).
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from nats.aio.client import Client as NATS

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, Any], Awaitable[None]]


class PushSubscription(ABC):
    """Live subscription to one push event"""

    event: str

    @abstractmethod
    async def wait_closed(self) -> None:
        """Return once the subscription is no longer delivering"""

    @abstractmethod
    async def unsubscribe(self) -> None:
        """Stop delivery; safe to call more than once"""


class PushTransport(ABC):
    @abstractmethod
    async def subscribe(self, event: str, handler: EventHandler) -> PushSubscription:
        """
        Subscribe to an event.

        Raises:
            ConnectionError: If the transport cannot subscribe right now
        """


# ----------------------------------------------------------------------
# In-memory transport
# ----------------------------------------------------------------------


class _MemorySubscription(PushSubscription):
    def __init__(self, transport: "InMemoryPushTransport", event: str, handler: EventHandler):
        self.transport = transport
        self.event = event
        self.handler = handler
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _close(self):
        self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def unsubscribe(self) -> None:
        self.transport._remove(self)
        self._close()
        if self.transport.unsubscribe_error is not None:
            raise self.transport.unsubscribe_error


class InMemoryPushTransport(PushTransport):
    """
    Process-local transport for tests and single-process setups.

    ``fail_subscribes`` makes the next N subscribe calls raise
    ConnectionError; ``duplicate_deliveries`` delivers every publish twice
    (at-least-once behaviour of a real broker).
    """

    def __init__(self, duplicate_deliveries: bool = False):
        self._subs: Dict[str, List[_MemorySubscription]] = {}
        self.duplicate_deliveries = duplicate_deliveries
        self.fail_subscribes = 0
        self.subscribe_attempts = 0
        self.unsubscribe_error: Optional[Exception] = None

    async def subscribe(self, event: str, handler: EventHandler) -> PushSubscription:
        self.subscribe_attempts += 1
        if self.fail_subscribes > 0:
            self.fail_subscribes -= 1
            raise ConnectionError(f"push transport unavailable for {event}")

        sub = _MemorySubscription(self, event, handler)
        self._subs.setdefault(event, []).append(sub)
        return sub

    def _remove(self, sub: _MemorySubscription):
        subs = self._subs.get(sub.event, [])
        if sub in subs:
            subs.remove(sub)

    async def publish(self, event: str, payload: Any = None) -> int:
        """
        Deliver an event to every live subscriber.

        Returns:
            Number of handler invocations
        """
        delivered = 0
        copies = 2 if self.duplicate_deliveries else 1
        for sub in list(self._subs.get(event, [])):
            for _ in range(copies):
                if sub.closed:
                    break
                await sub.handler(event, payload)
                delivered += 1
        return delivered

    def disconnect(self, event: Optional[str] = None):
        """Drop live subscriptions as if the connection was lost"""
        events = [event] if event is not None else list(self._subs)
        for name in events:
            for sub in self._subs.pop(name, []):
                sub._close()

    def subscriber_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._subs.get(event, []))
        return sum(len(subs) for subs in self._subs.values())


# ----------------------------------------------------------------------
# NATS transport
# ----------------------------------------------------------------------


class _NatsSubscription(PushSubscription):
    def __init__(self, transport: "NatsPushTransport", event: str, sub):
        self.transport = transport
        self.event = event
        self._sub = sub
        self._closed = asyncio.Event()

    def _close(self):
        self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def unsubscribe(self) -> None:
        self.transport._live.discard(self)
        if self._closed.is_set():
            return
        self._close()
        await self._sub.unsubscribe()


class NatsPushTransport(PushTransport):
    """
    Push events over NATS core subjects ``<prefix>.<event>``.

    The client does not auto-reconnect; a lost connection closes every
    live subscription and the next subscribe dials again.
    """

    def __init__(
        self,
        servers: str = "nats://127.0.0.1:4222",
        subject_prefix: str = "market",
        connect_timeout: float = 2.0,
    ):
        self.servers = servers
        self.subject_prefix = subject_prefix
        self.connect_timeout = connect_timeout
        self._nc: Optional[NATS] = None
        self._lock = asyncio.Lock()
        self._live: Set[_NatsSubscription] = set()

    def subject_for(self, event: str) -> str:
        return f"{self.subject_prefix}.{event}"

    async def _on_disconnected(self):
        if self._live:
            logger.warning(f"NATS connection lost; closing {len(self._live)} subscriptions")
        for sub in list(self._live):
            sub._close()
        self._live.clear()

    async def _on_error(self, e):
        logger.warning(f"NATS error: {e}")

    async def _connect(self) -> NATS:
        async with self._lock:
            if self._nc is not None and self._nc.is_connected:
                return self._nc

            nc = NATS()
            try:
                await nc.connect(
                    servers=[self.servers],
                    allow_reconnect=False,
                    connect_timeout=self.connect_timeout,
                    max_reconnect_attempts=0,
                    disconnected_cb=self._on_disconnected,
                    closed_cb=self._on_disconnected,
                    error_cb=self._on_error,
                )
            except Exception as e:
                raise ConnectionError(f"Cannot connect to {self.servers}: {e}") from e

            logger.info(f"Connected to NATS at {self.servers}")
            self._nc = nc
            return nc

    async def subscribe(self, event: str, handler: EventHandler) -> PushSubscription:
        nc = await self._connect()

        async def _deliver(msg):
            payload = None
            if msg.data:
                try:
                    payload = json.loads(msg.data.decode())
                except (UnicodeDecodeError, json.JSONDecodeError):
                    logger.warning(f"Dropping malformed push payload on {msg.subject}")
                    return
            await handler(event, payload)

        try:
            sub = await nc.subscribe(self.subject_for(event), cb=_deliver)
        except Exception as e:
            raise ConnectionError(f"Cannot subscribe to {event}: {e}") from e

        wrapped = _NatsSubscription(self, event, sub)
        self._live.add(wrapped)
        return wrapped

    async def close(self):
        """Drain the connection"""
        if self._nc is not None and self._nc.is_connected:
            await self._nc.drain()
        self._nc = None

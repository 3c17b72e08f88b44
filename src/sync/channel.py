"""
Sync Channel: one update stream per topic from push events and polling.

A channel owns, for the lifetime of the view that mounted it:
- a poll task: fetch immediately on start, then every ``poll_interval``
  seconds, or sooner when a refresh is requested
- one push task per event: subscribe, wait for the subscription to drop,
  resubscribe with exponential backoff

Every update, polled or pushed, goes through a single ``fold`` callback.
Each fetch and each push event takes a sequence number when it is issued;
a snapshot that was issued before the last applied update is discarded so
a slow response can never overwrite fresher state.

Fetch and fold failures are logged, counted and reported to the notifier,
then the loop carries on. Nothing raised inside a channel reaches the
caller or another channel.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set

from marketplace.notifications import Notifier
from observability import metrics_collector

from .backoff import ReconnectBackoff
from .dedup import MessageCache, event_digest
from .transport import PushSubscription, PushTransport

logger = logging.getLogger(__name__)

SOURCE_POLL = "poll"
SOURCE_PUSH = "push"

KIND_SNAPSHOT = "snapshot"
KIND_EVENT = "event"


@dataclass(frozen=True)
class SyncUpdate:
    """A single update handed to a channel's fold"""

    topic: str
    source: str
    kind: str
    payload: Any
    sequence: int
    event: Optional[str] = None
    received_at: float = field(default_factory=time.time)

    @property
    def is_snapshot(self) -> bool:
        return self.kind == KIND_SNAPSHOT


Fold = Callable[[SyncUpdate], None]


class SyncChannel:
    """
    Push subscription plus polling fallback for one topic.

    Args:
        topic: Name used in logs, metrics and notifications
        fetch: Coroutine function returning a full snapshot
        fold: Callback applying a SyncUpdate to local state
        poll_interval: Seconds between polls (None: fetch on start and on
            request only)
        transport: Push transport (None: polling only)
        push_events: Events whose payload is folded directly
        signal_events: Payload-less events that trigger a re-fetch
        notifier: Sink for soft warnings and failures
        warn_after: Consecutive push failures before a soft warning
        reconnect_base: Initial resubscribe delay in seconds
        reconnect_max: Resubscribe delay cap in seconds
        dedup: Cache of seen push events (a private one by default)
    """

    def __init__(
        self,
        topic: str,
        fetch: Callable[[], Awaitable[Any]],
        fold: Fold,
        poll_interval: Optional[float] = None,
        transport: Optional[PushTransport] = None,
        push_events: Sequence[str] = (),
        signal_events: Sequence[str] = (),
        notifier: Optional[Notifier] = None,
        warn_after: int = 5,
        reconnect_base: float = 1.0,
        reconnect_max: float = 30.0,
        dedup: Optional[MessageCache] = None,
    ):
        self.topic = topic
        self.fetch = fetch
        self.fold = fold
        self.poll_interval = poll_interval
        self.transport = transport
        self.push_events = tuple(push_events)
        self.signal_events = tuple(signal_events)
        self.notifier = notifier
        self.warn_after = max(1, warn_after)
        self.reconnect_base = reconnect_base
        self.reconnect_max = reconnect_max
        self.dedup = dedup or MessageCache()

        self.last_error: Optional[Exception] = None
        self.consecutive_failures = 0
        self.updates_applied = 0
        self.last_update_at: Optional[float] = None

        self._issued_seq = 0
        self._applied_seq = 0
        self._wake = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self._subscriptions: Dict[str, PushSubscription] = {}
        self._push_failures: Dict[str, int] = {}
        self._push_warned: Set[str] = set()
        self._started = False
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._started and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def push_connected(self) -> bool:
        events = self.push_events + self.signal_events
        return bool(events) and all(e in self._subscriptions for e in events)

    @property
    def push_degraded(self) -> bool:
        return bool(self._push_warned)

    def start(self):
        """
        Start polling and push subscriptions. Must be called from a running
        event loop; returns immediately.
        """
        if self._closed:
            raise RuntimeError(f"Channel {self.topic} is closed")
        if self._started:
            return
        self._started = True

        loop = asyncio.get_running_loop()
        self._tasks.append(loop.create_task(self._poll_loop(), name=f"sync-poll:{self.topic}"))

        if self.transport is not None:
            for event in self.push_events + self.signal_events:
                self._tasks.append(
                    loop.create_task(self._push_loop(event), name=f"sync-push:{self.topic}:{event}")
                )

        metrics_collector.channel_mounted(self.topic)
        logger.info(
            f"Sync channel {self.topic} started "
            f"(poll={self.poll_interval}, events={list(self.push_events + self.signal_events)})"
        )

    async def close(self):
        """
        Cancel the poll timer and unsubscribe every push subscription.

        Both steps always run; a failing unsubscribe is logged and kept in
        ``last_error`` but never raised.
        """
        if self._closed:
            return
        self._closed = True

        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for sub in subscriptions:
            try:
                await sub.unsubscribe()
            except Exception as e:
                self.last_error = e
                logger.warning(f"Unsubscribe from {sub.event} failed on {self.topic}: {e}")

        if self._started:
            metrics_collector.channel_unmounted(self.topic)
        logger.info(f"Sync channel {self.topic} closed")

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def request_refresh(self):
        """Ask the poll loop to fetch now; never blocks"""
        self._wake.set()

    async def refresh(self) -> bool:
        """
        Fetch and apply a snapshot now.

        Returns:
            True if the snapshot was applied; failures are recorded in
            ``last_error`` rather than raised
        """
        if self._closed:
            return False
        return await self._fetch_and_apply()

    async def _poll_loop(self):
        while not self._closed:
            self._wake.clear()
            await self._fetch_and_apply()
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

    async def _fetch_and_apply(self) -> bool:
        sequence = self._next_sequence()
        try:
            payload = await self.fetch()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._record_failure("fetch", e)
            return False

        if self._closed:
            return False

        if sequence <= self._applied_seq:
            metrics_collector.record_stale_discard(self.topic)
            logger.debug(
                f"Discarding stale snapshot on {self.topic} (seq {sequence} <= {self._applied_seq})"
            )
            return False

        self._applied_seq = sequence
        update = SyncUpdate(
            topic=self.topic,
            source=SOURCE_POLL,
            kind=KIND_SNAPSHOT,
            payload=payload,
            sequence=sequence,
        )
        if not self._apply(update):
            return False

        if self.consecutive_failures:
            logger.info(f"Sync channel {self.topic} recovered after {self.consecutive_failures} failures")
        self.consecutive_failures = 0
        self.last_error = None
        return True

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    async def _push_loop(self, event: str):
        backoff = ReconnectBackoff(base=self.reconnect_base, max_delay=self.reconnect_max)

        while not self._closed:
            try:
                sub = await self.transport.subscribe(event, self._on_push)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                delay = backoff.next()
                self._push_failed(event, backoff.failures, e)
                await asyncio.sleep(delay)
                continue

            self._subscriptions[event] = sub
            self._push_connected(event, backoff.failures)
            backoff.reset()

            await sub.wait_closed()

            self._subscriptions.pop(event, None)
            if self._closed:
                return

            logger.info(f"Push subscription {self.topic}/{event} lost, resubscribing")
            metrics_collector.record_reconnect(self.topic, "lost")
            # Cover the gap while disconnected
            self.request_refresh()
            await asyncio.sleep(backoff.next())

    def _push_failed(self, event: str, failures: int, error: Exception):
        self._push_failures[event] = failures
        metrics_collector.record_reconnect(self.topic, "failed")
        logger.warning(f"Push subscribe {self.topic}/{event} failed (attempt {failures}): {error}")

        if failures >= self.warn_after and event not in self._push_warned:
            first_warning = not self._push_warned
            self._push_warned.add(event)
            if first_warning and self.notifier is not None:
                self.notifier.warning(
                    "Live updates are unavailable; data refreshes periodically", topic=self.topic
                )

    def _push_connected(self, event: str, previous_failures: int):
        self._push_failures[event] = 0
        metrics_collector.record_reconnect(self.topic, "connected")
        if previous_failures:
            logger.info(f"Push subscription {self.topic}/{event} re-established")
        else:
            logger.info(f"Subscribed to {self.topic}/{event}")

        if event in self._push_warned:
            self._push_warned.discard(event)
            if not self._push_warned and self.notifier is not None:
                self.notifier.info("Live updates restored", topic=self.topic)

    async def _on_push(self, event: str, payload: Any):
        if self._closed:
            return

        if event in self.signal_events:
            metrics_collector.record_update(self.topic, SOURCE_PUSH)
            logger.debug(f"Refresh signal {event} on {self.topic}")
            self.request_refresh()
            return

        digest = event_digest(event, payload)
        if not self.dedup.add(digest):
            metrics_collector.record_duplicate(self.topic)
            logger.debug(f"Duplicate push {event} on {self.topic} dropped")
            return

        sequence = self._next_sequence()
        self._applied_seq = sequence
        self._apply(
            SyncUpdate(
                topic=self.topic,
                source=SOURCE_PUSH,
                kind=KIND_EVENT,
                payload=payload,
                sequence=sequence,
                event=event,
            )
        )

    # ------------------------------------------------------------------
    # Fold
    # ------------------------------------------------------------------

    def _next_sequence(self) -> int:
        self._issued_seq += 1
        return self._issued_seq

    def _apply(self, update: SyncUpdate) -> bool:
        try:
            self.fold(update)
        except Exception as e:
            self._record_failure("fold", e)
            return False

        self.updates_applied += 1
        self.last_update_at = update.received_at
        metrics_collector.record_update(self.topic, update.source)
        return True

    def _record_failure(self, stage: str, error: Exception):
        self.last_error = error
        self.consecutive_failures += 1
        metrics_collector.record_fetch_failure(self.topic, type(error).__name__)

        if stage == "fold":
            logger.error(f"Fold failed on {self.topic}: {error}", exc_info=True)
        else:
            logger.error(f"Fetch failed on {self.topic}: {error}")

        # One notice per failure streak; the previous good state stays shown
        if self.consecutive_failures == 1 and self.notifier is not None:
            self.notifier.error(f"Could not refresh {self.topic}: {error}", topic=self.topic)

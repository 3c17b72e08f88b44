"""
Prometheus metrics for the marketplace sync engine.

Covers sync-channel traffic (updates, duplicates, stale discards, fetch
failures, push reconnects) and backend request latency.
"""

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    REGISTRY,
)
import time


# ============================================================================
# SYNC METRICS
# ============================================================================

sync_updates_total = Counter(
    "market_sync_updates_total",
    "Updates delivered to folds by a sync channel",
    ["topic", "source"],
)

sync_duplicates_total = Counter(
    "market_sync_duplicates_total",
    "Push events dropped as duplicates",
    ["topic"],
)

sync_stale_discards_total = Counter(
    "market_sync_stale_discards_total",
    "Snapshots discarded because a more recent update was already applied",
    ["topic"],
)

sync_fetch_failures_total = Counter(
    "market_sync_fetch_failures_total",
    "Failed fetches or folds on a sync channel",
    ["topic", "error_type"],
)

push_reconnects_total = Counter(
    "market_push_reconnects_total",
    "Push subscription (re)connect attempts",
    ["topic", "result"],
)

active_channels = Gauge(
    "market_sync_active_channels",
    "Sync channels currently mounted",
    ["topic"],
)

# ============================================================================
# BACKEND METRICS
# ============================================================================

backend_requests_total = Counter(
    "market_backend_requests_total",
    "Backend REST calls",
    ["endpoint", "outcome"],
)

backend_latency = Histogram(
    "market_backend_latency_seconds",
    "Backend REST call latency",
    ["endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


class MetricsContext:
    """
    Context manager timing one backend call.

    Example:
        with MetricsContext("GET /auctions/:id") as ctx:
            await fetch()
            ctx.outcome = "ok"
    """

    def __init__(self, endpoint: str):
        self.endpoint = endpoint
        self.outcome = "error"
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        backend_latency.labels(endpoint=self.endpoint).observe(duration)
        if exc_type is None and self.outcome == "error":
            self.outcome = "ok"
        backend_requests_total.labels(endpoint=self.endpoint, outcome=self.outcome).inc()
        return False


class MetricsCollector:
    """Thin recording facade used by the sync layer"""

    def record_update(self, topic: str, source: str):
        sync_updates_total.labels(topic=topic, source=source).inc()

    def record_duplicate(self, topic: str):
        sync_duplicates_total.labels(topic=topic).inc()

    def record_stale_discard(self, topic: str):
        sync_stale_discards_total.labels(topic=topic).inc()

    def record_fetch_failure(self, topic: str, error_type: str):
        sync_fetch_failures_total.labels(topic=topic, error_type=error_type).inc()

    def record_reconnect(self, topic: str, result: str):
        """
        Record a push subscription attempt.

        Args:
            topic: Channel topic
            result: 'connected', 'failed' or 'lost'
        """
        push_reconnects_total.labels(topic=topic, result=result).inc()

    def channel_mounted(self, topic: str):
        active_channels.labels(topic=topic).inc()

    def channel_unmounted(self, topic: str):
        active_channels.labels(topic=topic).dec()

    def get_metrics(self) -> bytes:
        """Metrics in Prometheus exposition format"""
        return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()

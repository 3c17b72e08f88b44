"""
Prometheus counters for the sync layer and OpenTelemetry spans around
backend calls.
"""

from .metrics import MetricsContext, metrics_collector
from .tracing import (
    backend_span,
    create_span,
    get_tracer,
    record_response,
    setup_tracing,
    shutdown_tracing,
)

__all__ = [
    "MetricsContext",
    "metrics_collector",
    "backend_span",
    "create_span",
    "get_tracer",
    "record_response",
    "setup_tracing",
    "shutdown_tracing",
]

"""
OpenTelemetry tracing for backend calls.

Each REST call made by BackendClient runs inside a CLIENT span named after
its route template ("GET /auctions/:id"), so a slow or failing topic
refresh can be followed from the sync channel down to the HTTP response.
Without setup_tracing() spans go to whatever provider the host process
registered (a no-op one by default).
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, Status, StatusCode

logger = logging.getLogger(__name__)

TRACER_NAME = "market.client"

_tracer: Optional[trace.Tracer] = None
_provider: Optional[TracerProvider] = None


def setup_tracing(
    service_name: str, otlp_endpoint: Optional[str] = None, console_export: bool = False
) -> trace.Tracer:
    """
    Install a tracer provider for the client process.

    Args:
        service_name: Reported on every span (e.g. "market-client")
        otlp_endpoint: OTLP gRPC collector, e.g. "http://localhost:4317"
        console_export: Also print finished spans to stdout

    Returns:
        The tracer used by create_span()
    """
    global _tracer, _provider

    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))

    if otlp_endpoint:
        try:
            exporter = OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)
            provider.add_span_processor(BatchSpanProcessor(exporter))
            logger.info(f"Exporting spans to {otlp_endpoint}")
        except Exception as e:
            logger.warning(f"OTLP exporter unavailable, spans stay local: {e}")

    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _provider = provider
    _tracer = provider.get_tracer(TRACER_NAME)

    logger.info(f"Tracing enabled for {service_name}")
    return _tracer


def get_tracer() -> trace.Tracer:
    """Tracer from setup_tracing(), else one from the global provider"""
    if _tracer is None:
        return trace.get_tracer(TRACER_NAME)
    return _tracer


@contextmanager
def create_span(
    name: str,
    attributes: Optional[Dict[str, Any]] = None,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
) -> Iterator[Span]:
    """
    Run a block inside a span; an exception escaping the block marks the
    span as failed and is re-raised.

    Attributes with a None value are skipped, the rest are stringified.
    """
    with get_tracer().start_as_current_span(name, kind=kind) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, str(value))
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise


@contextmanager
def backend_span(method: str, route: str, url: str) -> Iterator[Span]:
    """
    CLIENT span around one backend REST call.

    Args:
        method: HTTP method
        route: Route template, used as span name suffix
        url: Concrete request URL
    """
    with create_span(
        f"{method} {route}",
        {"http.method": method, "http.route": route, "http.url": url},
        kind=trace.SpanKind.CLIENT,
    ) as span:
        yield span


def record_response(span: Span, status: int):
    """Attach the HTTP status; 4xx/5xx responses mark the span as failed"""
    span.set_attribute("http.status_code", status)
    if status >= 400:
        span.set_status(Status(StatusCode.ERROR, f"HTTP {status}"))


def shutdown_tracing():
    """Flush buffered spans; call before the process exits"""
    global _provider, _tracer

    if _provider is not None:
        _provider.shutdown()
        logger.info("Tracing shut down")
    _provider = None
    _tracer = None

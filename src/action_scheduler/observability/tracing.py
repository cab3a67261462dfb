"""
OpenTelemetry Tracing

Claims and migrations run inside `store_span`, so a slow or contended claim
can be traced back to the worker and store that issued it.
"""

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, Status, StatusCode

logger = logging.getLogger(__name__)

SERVICE = "action-scheduler-store"
SPAN_PREFIX = "action_store"

_tracer: Optional[trace.Tracer] = None


def init_tracing(
    service_name: str = SERVICE,
    service_version: str = "1.0.0",
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
) -> trace.Tracer:
    """
    Install a tracer provider for the store.

    Args:
        service_name: Reported service name
        service_version: Reported service version
        otlp_endpoint: Collector address; defaults to OTEL_EXPORTER_OTLP_ENDPOINT
        console_export: Also print finished spans to stdout
    """
    global _tracer

    endpoint = otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    provider = TracerProvider(
        resource=Resource.create({SERVICE_NAME: service_name, SERVICE_VERSION: service_version})
    )
    if endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))
        logger.info(f"OTel tracing: exporting to {endpoint}")
    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(service_name, service_version)
    return _tracer


def get_tracer() -> trace.Tracer:
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(SERVICE)
    return _tracer


def get_current_span() -> Span:
    return trace.get_current_span()


def get_trace_id() -> Optional[str]:
    """Current trace ID as hex, or None outside a recorded span."""
    ctx = get_current_span().get_span_context()
    return format(ctx.trace_id, "032x") if ctx.is_valid else None


def get_span_id() -> Optional[str]:
    ctx = get_current_span().get_span_context()
    return format(ctx.span_id, "016x") if ctx.is_valid else None


@contextmanager
def store_span(operation: str, store: str, **attributes: Any) -> Iterator[Span]:
    """
    Span named `action_store.<operation>` tagged with the store that ran it.

    Usage:
        with store_span("stake_claim", "db", max_actions=10) as span:
            span.set_attribute("claimed", len(ids))

    Exceptions are recorded on the span and re-raised.
    """
    with get_tracer().start_as_current_span(
        f"{SPAN_PREFIX}.{operation}",
        attributes={"store": store, **attributes},
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise

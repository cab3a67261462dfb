"""
Observability Module

Provides tracing, metrics collection, and structured logging.
"""

from .tracing import (
    init_tracing,
    get_tracer,
    get_trace_id,
    get_span_id,
    store_span,
)
from .metrics import (
    init_metrics,
    get_meter,
    reset_metrics,
    record_counter,
    record_histogram,
)
from .logging import configure_logging

__all__ = [
    # Tracing
    "init_tracing",
    "get_tracer",
    "get_trace_id",
    "get_span_id",
    "store_span",
    # Metrics
    "init_metrics",
    "get_meter",
    "reset_metrics",
    "record_counter",
    "record_histogram",
    # Logging
    "configure_logging",
]

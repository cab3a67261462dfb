"""
OpenTelemetry Metrics

Claim and migration throughput. Recording is a no-op until `init_metrics`
has registered the instruments, so the store never needs a meter provider
to function.
"""

import logging
import os
from typing import Any, Dict, Optional

from opentelemetry import metrics
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, Resource

logger = logging.getLogger(__name__)

# name -> (description, unit)
COUNTERS = {
    "claims_staked_total": ("Claims staked, including empty ones", "1"),
    "actions_claimed_total": ("Actions reserved by claims", "1"),
    "actions_migrated_total": ("Actions moved out of the legacy store", "1"),
    "action_events_published_total": ("Action notifications published", "1"),
}
HISTOGRAMS = {
    "claim_duration_seconds": ("Time spent staking one claim", "s"),
}

_meter: Optional[metrics.Meter] = None
_counters: Dict[str, metrics.Counter] = {}
_histograms: Dict[str, metrics.Histogram] = {}


def init_metrics(
    service_name: str = "action-scheduler-store",
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
    export_interval_ms: int = 60000,
) -> metrics.Meter:
    """
    Install a meter provider and register the store instruments.

    `otlp_endpoint` defaults to OTEL_EXPORTER_OTLP_ENDPOINT.
    """
    global _meter

    endpoint = otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    readers = []
    if endpoint:
        readers.append(PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=endpoint, insecure=True),
            export_interval_millis=export_interval_ms,
        ))
        logger.info(f"OTel metrics: exporting to {endpoint}")
    if console_export:
        readers.append(PeriodicExportingMetricReader(
            ConsoleMetricExporter(),
            export_interval_millis=export_interval_ms,
        ))

    metrics.set_meter_provider(
        MeterProvider(resource=Resource.create({SERVICE_NAME: service_name}), metric_readers=readers)
    )
    _meter = metrics.get_meter(service_name)

    for name, (description, unit) in COUNTERS.items():
        _counters[name] = _meter.create_counter(name, description=description, unit=unit)
    for name, (description, unit) in HISTOGRAMS.items():
        _histograms[name] = _meter.create_histogram(name, description=description, unit=unit)

    return _meter


def get_meter() -> Optional[metrics.Meter]:
    """The store meter, or None before `init_metrics`."""
    return _meter


def reset_metrics() -> None:
    """Forget registered instruments so recording becomes a no-op again."""
    global _meter
    _meter = None
    _counters.clear()
    _histograms.clear()


def record_counter(name: str, value: int = 1, attributes: Dict[str, Any] = None):
    counter = _counters.get(name)
    if counter is not None and value:
        counter.add(value, attributes or {})


def record_histogram(name: str, value: float, attributes: Dict[str, Any] = None):
    histogram = _histograms.get(name)
    if histogram is not None:
        histogram.record(value, attributes or {})

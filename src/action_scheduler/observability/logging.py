"""
Structured Logging with Trace Correlation

JSON log lines carrying the active trace and span IDs, so claim and
migration logs can be joined with their spans.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

from .tracing import SERVICE, get_span_id, get_trace_id

# Attributes every LogRecord has; anything else was passed via `extra=`
_STANDARD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "trace_id", "span_id"}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with `extra=` fields inlined."""

    def __init__(self, service_name: str = SERVICE):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "service": self.service_name,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "trace_id": getattr(record, "trace_id", None) or get_trace_id(),
            "span_id": getattr(record, "span_id", None) or get_span_id(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                entry[key] = value
            except (TypeError, ValueError):
                entry[key] = str(value)

        return json.dumps(entry)


class TraceContextFilter(logging.Filter):
    """Stamp trace_id/span_id on records for plain-text formats."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = get_trace_id() or "no-trace"
        record.span_id = get_span_id() or "-"
        return True


def configure_logging(
    level: str = "INFO",
    structured: bool = True,
    service_name: str = SERVICE,
    stream: Optional[TextIO] = None,
) -> logging.Handler:
    """
    Replace the root handlers with one trace-aware handler.

    Args:
        level: Log level name
        structured: JSON output instead of plain text
        service_name: Reported in every JSON line
        stream: Defaults to stdout
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stdout)
    if structured:
        handler.setFormatter(StructuredFormatter(service_name))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(trace_id)s] %(message)s"
        ))
    handler.addFilter(TraceContextFilter())
    root_logger.addHandler(handler)

    logging.getLogger("opentelemetry").setLevel(logging.WARNING)
    return handler

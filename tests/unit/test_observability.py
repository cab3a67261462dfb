"""
Tests for logging and metrics helpers.
"""

import json
import logging

from action_scheduler.observability import (
    store_span,
    get_meter,
    init_metrics,
    record_counter,
    record_histogram,
    reset_metrics,
)
from action_scheduler.observability.logging import StructuredFormatter, TraceContextFilter
from conftest import make_action


class TestStructuredLogging:
    """Tests for the JSON formatter."""

    def _record(self, msg, **extra):
        record = logging.LogRecord("action_scheduler.test", logging.INFO, __file__, 1, msg, (), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_output(self):
        """Test that records render as JSON with extras."""
        output = json.loads(StructuredFormatter().format(self._record("claimed", claim_id=7)))
        assert output["message"] == "claimed"
        assert output["level"] == "INFO"
        assert output["logger"] == "action_scheduler.test"
        assert output["claim_id"] == 7

    def test_trace_filter_without_span(self):
        """Test the filter outside any span."""
        record = self._record("x")
        assert TraceContextFilter().filter(record)
        assert record.trace_id == "no-trace"

    def test_span_context_manager(self):
        """Test that spans work without a configured provider."""
        with store_span("test", "db", k="v") as span:
            span.set_attribute("n", 1)


class TestMetrics:
    """Tests for metric helpers."""

    def test_noop_before_init(self):
        """Test that recording before init is harmless."""
        reset_metrics()
        record_counter("claims_staked_total", 1)
        record_histogram("claim_duration_seconds", 0.1)

    def test_store_records_after_init(self, store):
        """Test that claiming records metrics once initialised."""
        try:
            init_metrics()
            assert get_meter() is not None
            store.save_action(make_action())
            assert len(store.stake_claim().action_ids) == 1
            record_counter("unregistered_metric", 1)
        finally:
            reset_metrics()

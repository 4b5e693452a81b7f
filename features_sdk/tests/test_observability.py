"""
Unit tests for shared logging processors, metrics and errors.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import InvalidArgument, ProtocolError
from shared.logging import (
    add_correlation_context,
    add_sdk_context,
    clear_context,
    set_client_id,
    set_context_key,
)
from shared.metrics import MetricsCollector


class TestLoggingProcessors:
    """Test cases for structlog processors."""

    def teardown_method(self):
        clear_context()

    def test_component_from_logger_name(self):
        event = add_sdk_context(None, "info", {"logger": "features_sdk.resolver", "event": "x"})

        assert event["component"] == "resolver"

    def test_correlation_context(self):
        """Test the active context key and client id are attached."""
        set_context_key("context.user.id=u1&publishableKey=pk")
        set_client_id("client-1")

        event = add_correlation_context(None, "info", {"event": "x"})

        assert event["context_key"] == "context.user.id=u1&publishableKey=pk"
        assert event["client_id"] == "client-1"

    def test_no_correlation_when_unset(self):
        event = add_correlation_context(None, "info", {"event": "x"})

        assert "context_key" not in event
        assert "client_id" not in event


class TestMetricsCollector:
    """Test cases for MetricsCollector."""

    def test_collectors_are_isolated(self):
        """Test two collectors do not share a registry."""
        first, second = MetricsCollector(), MetricsCollector()

        first.increment_counter("fetch_total", mode="blocking", outcome="success")

        assert first.get_sample_value("features_fetch_total", mode="blocking", outcome="success") == 1.0
        assert second.get_sample_value("features_fetch_total", mode="blocking", outcome="success") == 0.0

    def test_unknown_metric_ignored(self):
        collector = MetricsCollector()

        collector.increment_counter("does_not_exist", label="x")
        collector.observe_histogram("does_not_exist", 1.0)

    def test_time_operation(self):
        collector = MetricsCollector()

        with collector.time_operation("fetch_duration_seconds", mode="background"):
            pass

        assert collector.get_sample_value("features_fetch_duration_seconds_count", mode="background") == 1.0
        assert b"features_fetch_duration_seconds" in collector.render()


class TestErrors:
    """Test cases for error types."""

    def test_protocol_error(self):
        error = ProtocolError(404, details={"path": "features/evaluated"})

        assert error.status_code == 404
        assert error.to_dict() == {
            "code": "PROTOCOL_ERROR",
            "message": "Unexpected response code: 404",
            "details": {"path": "features/evaluated"},
        }

    def test_invalid_argument_is_raisable(self):
        with pytest.raises(InvalidArgument) as exc_info:
            raise InvalidArgument("bad key")

        assert exc_info.value.code == "INVALID_ARGUMENT"

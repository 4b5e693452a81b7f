"""
Shared metrics configuration for the Feature Access SDK.
"""

from prometheus_client import Counter, Histogram, CollectorRegistry, generate_latest
from typing import Dict, Any, Optional
import time
import threading
from contextlib import contextmanager

from shared.logging import get_logger


class MetricsCollector:
    """Per-client metrics collector.

    Each collector owns its own ``CollectorRegistry`` unless one is passed
    in, so several clients (or tests) can live in one process without
    duplicate-registration errors.
    """

    def __init__(self, sdk_name: str = "features_sdk", registry: Optional[CollectorRegistry] = None):
        self.sdk_name = sdk_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self.logger = get_logger("features_sdk.metrics")
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up SDK metrics."""

        self._metrics["cache_lookups_total"] = Counter(
            "features_cache_lookups_total",
            "Feature cache lookups by result",
            ["result"],
            registry=self.registry
        )

        self._metrics["fetch_total"] = Counter(
            "features_fetch_total",
            "Feature fetches by mode and outcome",
            ["mode", "outcome"],
            registry=self.registry
        )

        self._metrics["fetch_duration_seconds"] = Histogram(
            "features_fetch_duration_seconds",
            "Feature fetch duration in seconds",
            ["mode"],
            registry=self.registry
        )

        self._metrics["events_rate_limited_total"] = Counter(
            "features_events_rate_limited_total",
            "Analytics events declined by the rate limiter",
            ["action"],
            registry=self.registry
        )

        self._metrics["batch_flush_total"] = Counter(
            "features_batch_flush_total",
            "Batch buffer flushes by queue and outcome",
            ["queue", "outcome"],
            registry=self.registry
        )

        self._metrics["batch_dropped_items_total"] = Counter(
            "features_batch_dropped_items_total",
            "Buffered items dropped after failed delivery",
            ["reason"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def get_sample_value(self, metric_name: str, **labels) -> float:
        """Read back a sample value, 0.0 when the series was never touched."""
        value = self.registry.get_sample_value(metric_name, labels)
        return value or 0.0

    def render(self) -> bytes:
        """Render all metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.observe_histogram(operation_name, time.perf_counter() - start_time, **labels)

    def increment_counter(self, metric_name: str, amount: float = 1.0, **labels):
        """Increment a counter metric."""
        if metric_name not in self._metrics:
            return
        try:
            with self._lock:
                self._metrics[metric_name].labels(**labels).inc(amount)
        except Exception as exc:  # pragma: no cover - metrics failures must never break callers
            self.logger.debug("Failed to record metric", metric=metric_name, error=str(exc))

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        if metric_name not in self._metrics:
            return
        try:
            with self._lock:
                self._metrics[metric_name].labels(**labels).observe(value)
        except Exception as exc:  # pragma: no cover
            self.logger.debug("Failed to record metric", metric=metric_name, error=str(exc))


def get_metrics_collector(sdk_name: str = "features_sdk", registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a client instance."""
    return MetricsCollector(sdk_name, registry)

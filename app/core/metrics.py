"""
Prometheus metrics collection for the feedback API.

Provides metrics for monitoring:
- HTTP request counts and latency
- Feedback pipeline runs by outcome
- Intent dispatch outcomes by intent and status
- Insight provider call latency and failures

Usage:
    from app.core.metrics import (
        track_request_start, track_request_end,
        track_pipeline_run, track_intent_result, track_insight_call
    )
"""

import time
from dataclasses import dataclass, field
from collections import defaultdict
from typing import Optional
import threading

DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


@dataclass
class Histogram:
    """Cumulative bucket counts for one label set."""
    bounds: tuple = DEFAULT_BUCKETS
    counts: list = field(default_factory=list)
    sum_value: float = 0.0
    count: int = 0

    def __post_init__(self):
        if not self.counts:
            self.counts = [0] * (len(self.bounds) + 1)

    def observe(self, value: float):
        self.sum_value += value
        self.count += 1
        for i, bound in enumerate(self.bounds):
            if value <= bound:
                self.counts[i] += 1
        self.counts[-1] += 1


def _label_str(names: tuple, values: tuple) -> str:
    return ",".join(f'{n}="{v}"' for n, v in zip(names, values))


@dataclass
class MetricFamily:
    """A named metric with a fixed label schema and one series per label tuple."""
    name: str
    help_text: str
    kind: str
    label_names: tuple = ()
    series: dict = field(default_factory=dict)

    def _header(self) -> list[str]:
        return [f"# HELP {self.name} {self.help_text}", f"# TYPE {self.name} {self.kind}"]


class CounterFamily(MetricFamily):
    def __init__(self, name: str, help_text: str, label_names: tuple = ()):
        super().__init__(name, help_text, "counter", label_names, defaultdict(float))

    def inc(self, *labels: str, amount: float = 1.0):
        self.series[labels] += amount

    def lines(self) -> list[str]:
        out = self._header()
        for labels, value in self.series.items():
            label_part = f"{{{_label_str(self.label_names, labels)}}}" if labels else ""
            out.append(f"{self.name}{label_part} {value}")
        return out


class GaugeFamily(CounterFamily):
    def __init__(self, name: str, help_text: str):
        super().__init__(name, help_text)
        self.kind = "gauge"
        self.series[()] = 0.0

    def dec(self, amount: float = 1.0):
        self.series[()] -= amount


class HistogramFamily(MetricFamily):
    def __init__(self, name: str, help_text: str, label_names: tuple = ()):
        super().__init__(name, help_text, "histogram", label_names, defaultdict(Histogram))

    def observe(self, value: float, *labels: str):
        self.series[labels].observe(value)

    def lines(self) -> list[str]:
        out = self._header()
        for labels, histogram in self.series.items():
            base = _label_str(self.label_names, labels)
            prefix = f"{base}," if base else ""
            suffix = f"{{{base}}}" if base else ""
            for bound, bucket_count in zip(histogram.bounds + (float("inf"),), histogram.counts):
                le = "+Inf" if bound == float("inf") else str(bound)
                out.append(f'{self.name}_bucket{{{prefix}le="{le}"}} {bucket_count}')
            out.append(f"{self.name}_sum{suffix} {histogram.sum_value}")
            out.append(f"{self.name}_count{suffix} {histogram.count}")
        return out


class MetricsRegistry:
    """
    Central registry for all metrics.

    Thread-safe singleton; every update and the text export hold one lock.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        self._metrics_lock = threading.Lock()

        self.http_requests_total = CounterFamily(
            "http_requests_total", "Total number of HTTP requests", ("method", "status", "path")
        )
        self.http_request_duration = HistogramFamily(
            "http_request_duration_seconds", "HTTP request duration in seconds", ("method", "path")
        )
        self.http_requests_in_flight = GaugeFamily(
            "http_requests_in_flight", "Number of HTTP requests currently being processed"
        )
        self.pipeline_runs_total = CounterFamily(
            "ratepro_pipeline_runs_total", "Feedback pipeline runs by outcome", ("outcome",)
        )
        self.pipeline_duration = HistogramFamily(
            "ratepro_pipeline_duration_seconds", "Feedback pipeline run duration in seconds", ("outcome",)
        )
        self.intent_results_total = CounterFamily(
            "ratepro_intent_results_total", "Dispatched intents by status", ("intent", "status")
        )
        self.insight_calls_total = CounterFamily(
            "ratepro_insight_calls_total", "Insight provider calls by status", ("status",)
        )
        self.insight_call_duration = HistogramFamily(
            "ratepro_insight_call_duration_seconds", "Insight provider call duration in seconds"
        )

    @property
    def families(self) -> list[MetricFamily]:
        return [
            self.http_requests_total,
            self.http_request_duration,
            self.http_requests_in_flight,
            self.pipeline_runs_total,
            self.pipeline_duration,
            self.intent_results_total,
            self.insight_calls_total,
            self.insight_call_duration,
        ]

    def format_prometheus(self) -> str:
        """Format all metrics in Prometheus text format."""
        blocks = []
        with self._metrics_lock:
            for family in self.families:
                blocks.append("\n".join(family.lines()))
        return "\n\n".join(blocks) + "\n"


# Global registry instance
_registry = MetricsRegistry()


def get_registry() -> MetricsRegistry:
    """Get the global metrics registry."""
    return _registry


def track_request_start() -> float:
    with _registry._metrics_lock:
        _registry.http_requests_in_flight.inc()
    return time.time()


def track_request_end(start_time: float, method: str, path: str, status_code: int):
    duration = time.time() - start_time
    normalized_path = _normalize_path(path)

    with _registry._metrics_lock:
        _registry.http_requests_in_flight.dec()
        _registry.http_requests_total.inc(method, str(status_code), normalized_path)
        _registry.http_request_duration.observe(duration, method, normalized_path)


def track_pipeline_run(outcome: str, duration: Optional[float] = None):
    """Track one analyze-and-act run (completed, skipped, dry_run, in_progress, insight_failed, invalid)."""
    with _registry._metrics_lock:
        _registry.pipeline_runs_total.inc(outcome)
        if duration is not None:
            _registry.pipeline_duration.observe(duration, outcome)


def track_intent_result(intent: str, status: str):
    with _registry._metrics_lock:
        _registry.intent_results_total.inc(intent, status)


def track_insight_call(duration: float, success: bool = True):
    status = "success" if success else "error"
    with _registry._metrics_lock:
        _registry.insight_calls_total.inc(status)
        _registry.insight_call_duration.observe(duration)


def _normalize_path(path: str) -> str:
    """
    Collapse numeric and uuid-like path segments to keep label cardinality low.

    Examples:
        /api/v2/segments/123/contacts -> /api/v2/segments/:id/contacts
    """
    return "/".join(
        ":id" if part.isdigit() or (len(part) >= 8 and "-" in part) else part
        for part in path.split("/")
    )

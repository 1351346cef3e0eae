"""
Process-wide metric registry backed by prometheus_client.

Metric names use dotted notation (``s3benchmark.put.bytes``) and are
mapped to Prometheus-safe names (``s3benchmark_put_bytes``).
"""

import re
import time
import logging
import threading
from typing import Dict, Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    PlatformCollector,
    ProcessCollector,
)

logger = logging.getLogger(__name__)

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_:]")


def metric_name(name: str) -> str:
    """Convert a dotted metric name into a valid Prometheus metric name."""
    converted = _INVALID_NAME_CHARS.sub("_", name)
    if converted and converted[0].isdigit():
        converted = f"_{converted}"
    return converted


class TimerContext:
    """A single timed span. ``stop`` records the duration exactly once."""

    def __init__(self, histogram: Histogram):
        self._histogram = histogram
        self._start = time.perf_counter()
        self._duration: Optional[float] = None

    def stop(self) -> float:
        """Stop the span and record it.

        Returns:
            Duration of the span in seconds
        """
        if self._duration is None:
            self._duration = time.perf_counter() - self._start
            self._histogram.observe(self._duration)
        return self._duration

    def __enter__(self) -> "TimerContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()


class Timer:
    """Latency distribution; each ``time()`` call opens a new span."""

    def __init__(self, name: str, histogram: Histogram, registry: CollectorRegistry):
        self.name = name
        self._histogram = histogram
        self._registry = registry

    def time(self) -> TimerContext:
        return TimerContext(self._histogram)

    def update(self, seconds: float) -> None:
        self._histogram.observe(seconds)

    @property
    def count(self) -> int:
        value = self._registry.get_sample_value(f"{metric_name(self.name)}_count")
        return int(value or 0)

    @property
    def total_seconds(self) -> float:
        return self._registry.get_sample_value(f"{metric_name(self.name)}_sum") or 0.0


class MetricRegistry:
    """Create-or-get registry of named counters, timers and gauges.

    All metric objects are safe to update from the event loop and from
    executor threads concurrently.
    """

    def __init__(self, registry: CollectorRegistry = None, process_metrics: bool = False):
        """Initialize the registry.

        Args:
            registry: Prometheus registry to register into (default: a fresh one)
            process_metrics: Also export process CPU/memory/fd and platform metrics
        """
        self.registry = registry or CollectorRegistry()
        self._counters: Dict[str, Counter] = {}
        self._gauges: Dict[str, Gauge] = {}
        self._timers: Dict[str, Timer] = {}
        self._lock = threading.Lock()

        if process_metrics:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)

    def counter(self, name: str, description: str = "") -> Counter:
        with self._lock:
            counter = self._counters.get(name)
            if counter is None:
                counter = Counter(metric_name(name), description or name, registry=self.registry)
                self._counters[name] = counter
            return counter

    def gauge(self, name: str, description: str = "") -> Gauge:
        with self._lock:
            gauge = self._gauges.get(name)
            if gauge is None:
                gauge = Gauge(metric_name(name), description or name, registry=self.registry)
                self._gauges[name] = gauge
            return gauge

    def timer(self, name: str, description: str = "") -> Timer:
        with self._lock:
            timer = self._timers.get(name)
            if timer is None:
                histogram = Histogram(
                    metric_name(name), description or name, registry=self.registry
                )
                timer = Timer(name, histogram, self.registry)
                self._timers[name] = timer
            return timer

    def count(self, name: str) -> int:
        """Current value of a counter; 0 if it was never created."""
        value = self.registry.get_sample_value(f"{metric_name(name)}_total")
        return int(value or 0)

    def gauge_value(self, name: str) -> Optional[float]:
        return self.registry.get_sample_value(metric_name(name))

    def names(self):
        with self._lock:
            return sorted(set(self._counters) | set(self._gauges) | set(self._timers))

"""
Aggregate metrics and periodic reporting.

AggregateMetrics is a process-wide set of counters that components
increment while handling requests. MetricsReporter flushes them to an
observability sink on a fixed interval.

Reset policy on each flush:
- total_requests, throttled_requests: interval-scoped, reset after a flush
- cache_hits, cache_misses: cumulative, so the exported hit rate is a
  lifetime rate rather than an interval rate
- total_cost: exported as a running total, not reset
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricDatum:
    """A single named metric value."""
    name: str
    value: float
    unit: str = "None"


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time copy of the aggregate counters."""
    total_requests: int
    total_cost: float
    cache_hits: int
    cache_misses: int
    throttled_requests: int

    @property
    def cache_hit_rate(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        if lookups == 0:
            return 0.0
        return self.cache_hits / lookups


class AggregateMetrics:
    """Thread-safe counters shared by the metering components."""

    def __init__(self):
        self._lock = threading.Lock()
        self._total_requests = 0
        self._total_cost = 0.0
        self._cache_hits = 0
        self._cache_misses = 0
        self._throttled_requests = 0

    def record_request(self, cost: float) -> None:
        with self._lock:
            self._total_requests += 1
            self._total_cost += cost

    def record_cache_hit(self) -> None:
        with self._lock:
            self._cache_hits += 1

    def record_cache_miss(self) -> None:
        with self._lock:
            self._cache_misses += 1

    def record_throttled(self) -> None:
        with self._lock:
            self._throttled_requests += 1

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                total_requests=self._total_requests,
                total_cost=self._total_cost,
                cache_hits=self._cache_hits,
                cache_misses=self._cache_misses,
                throttled_requests=self._throttled_requests,
            )

    def cache_hit_rate(self) -> float:
        return self.snapshot().cache_hit_rate

    def reset_interval(self, flushed: MetricsSnapshot) -> None:
        """Subtract a flushed snapshot from the interval-scoped counters.

        Increments that landed between snapshot() and this call are kept
        for the next interval.
        """
        with self._lock:
            self._total_requests = max(0, self._total_requests - flushed.total_requests)
            self._throttled_requests = max(0, self._throttled_requests - flushed.throttled_requests)


class MetricsSink(ABC):
    """Destination for exported metrics."""

    @abstractmethod
    def put_metrics(self, metrics: List[MetricDatum], dimensions: Optional[Dict[str, str]] = None) -> None:
        """
        Publish a batch of metrics.

        Args:
            metrics: Metric values to publish
            dimensions: Optional tags such as service and cluster name

        Raises:
            InfrastructureError: If the sink cannot be reached
        """
        pass


class LogMetricsSink(MetricsSink):
    """Sink that writes metrics to the log. Used when no external sink is configured."""

    def put_metrics(self, metrics: List[MetricDatum], dimensions: Optional[Dict[str, str]] = None) -> None:
        rendered = ", ".join(f"{m.name}={m.value:g}" for m in metrics)
        logger.info("metrics %s %s", rendered, dimensions or {})


class MetricsReporter:
    """Flushes aggregate metrics to a sink."""

    def __init__(
        self,
        metrics: AggregateMetrics,
        sink: MetricsSink,
        dimensions: Optional[Dict[str, str]] = None,
    ):
        self.metrics = metrics
        self.sink = sink
        self.dimensions = dict(dimensions or {})

    def build_batch(self, snapshot: MetricsSnapshot) -> List[MetricDatum]:
        return [
            MetricDatum("TotalRequests", float(snapshot.total_requests), "Count"),
            MetricDatum("TotalCost", float(snapshot.total_cost), "None"),
            MetricDatum("CacheHitRate", snapshot.cache_hit_rate, "Percent"),
            MetricDatum("ThrottledRequests", float(snapshot.throttled_requests), "Count"),
        ]

    def flush(self) -> bool:
        """Push the current counters and reset the interval-scoped ones.

        Returns:
            True if the batch was published, False if the sink failed
        """
        snapshot = self.metrics.snapshot()
        try:
            self.sink.put_metrics(self.build_batch(snapshot), self.dimensions)
        except Exception:
            logger.exception("Error reporting metrics; counters kept for next interval")
            return False

        self.metrics.reset_interval(snapshot)
        return True

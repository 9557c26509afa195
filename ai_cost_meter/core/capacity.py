"""
Capacity optimization.

A periodic control loop that reads recent load and cache effectiveness
and converges the worker count of an elastic compute service on a target.

The heuristic is monotone and idempotent: repeated ticks over unchanged
metrics compute the same target and issue no further updates. A failed
tick is abandoned and the next tick starts again from fresh state.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from .metrics import AggregateMetrics, MetricDatum, MetricsSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceRef:
    """Identifies the compute service being scaled."""
    cluster: str
    service: str

    def __str__(self) -> str:
        return f"{self.cluster}/{self.service}"


@dataclass(frozen=True)
class ScalingPolicy:
    """Thresholds for the target-count heuristic."""
    high_cpu: float = 70.0
    low_cpu: float = 20.0
    idle_requests_per_minute: float = 1.0
    busy_requests_per_minute: float = 10.0
    cpu_step: float = 20.0
    requests_step: float = 20.0
    high_cache_hit_rate: float = 0.8
    max_instances: int = 10
    window_minutes: int = 15

    def __post_init__(self):
        if self.max_instances < 0:
            raise ValueError("max_instances cannot be negative")
        if self.cpu_step <= 0 or self.requests_step <= 0:
            raise ValueError("cpu_step and requests_step must be > 0")
        if self.window_minutes <= 0:
            raise ValueError("window_minutes must be > 0")
        if not 0 <= self.high_cache_hit_rate <= 1:
            raise ValueError("high_cache_hit_rate must be between 0 and 1")


@dataclass(frozen=True)
class LoadSample:
    """Raw load figures over a trailing window."""
    avg_cpu: float
    total_requests: float


@dataclass(frozen=True)
class LoadSnapshot:
    """Inputs to the target-count heuristic."""
    avg_cpu: float
    total_requests: float
    requests_per_minute: float
    cache_hit_rate: float


@dataclass(frozen=True)
class ScalingDecision:
    """Result of one optimizer tick."""
    current_count: int
    target_count: int
    snapshot: LoadSnapshot

    @property
    def changed(self) -> bool:
        return self.current_count != self.target_count

    @property
    def delta(self) -> int:
        return self.target_count - self.current_count


class LoadSource(ABC):
    """Provides recent CPU and request figures for a service."""

    @abstractmethod
    def get_load(self, service_ref: ServiceRef, window_minutes: int) -> LoadSample:
        """
        Read load over the trailing window.

        Raises:
            InfrastructureError: If the metrics backend cannot be reached
        """
        pass


class ComputeControl(ABC):
    """Single scalar knob on an elastic compute service."""

    @abstractmethod
    def get_current_desired_count(self, service_ref: ServiceRef) -> int:
        pass

    @abstractmethod
    def set_desired_count(self, service_ref: ServiceRef, count: int) -> None:
        pass


def calculate_target_count(snapshot: LoadSnapshot, policy: ScalingPolicy = ScalingPolicy()) -> int:
    """Compute the desired instance count for the observed load.

    Steps:
    1. Start from one instance
    2. Above the high CPU mark, add one instance per cpu_step of excess;
       otherwise, with low CPU and almost no traffic, scale to zero
    3. Above the busy request rate, add one instance per requests_step
    4. With a high cache hit rate, drop one instance (never below zero)
    5. Clamp to max_instances
    """
    target = 1

    if snapshot.avg_cpu > policy.high_cpu:
        target += math.ceil((snapshot.avg_cpu - policy.high_cpu) / policy.cpu_step)
    elif snapshot.avg_cpu < policy.low_cpu and snapshot.requests_per_minute < policy.idle_requests_per_minute:
        target = 0

    if snapshot.requests_per_minute > policy.busy_requests_per_minute:
        target += math.ceil(snapshot.requests_per_minute / policy.requests_step)

    if snapshot.cache_hit_rate > policy.high_cache_hit_rate:
        target = max(0, target - 1)

    return min(target, policy.max_instances)


class CapacityOptimizer:
    """Converges a compute service on the computed target count."""

    def __init__(
        self,
        load_source: LoadSource,
        compute: ComputeControl,
        metrics: AggregateMetrics,
        service_ref: Optional[ServiceRef] = None,
        policy: ScalingPolicy = ScalingPolicy(),
        sink: Optional[MetricsSink] = None,
    ):
        self.load_source = load_source
        self.compute = compute
        self.metrics = metrics
        self.service_ref = service_ref
        self.policy = policy
        self.sink = sink

    def read_snapshot(self) -> LoadSnapshot:
        sample = self.load_source.get_load(self.service_ref, self.policy.window_minutes)
        return LoadSnapshot(
            avg_cpu=sample.avg_cpu,
            total_requests=sample.total_requests,
            requests_per_minute=sample.total_requests / self.policy.window_minutes,
            cache_hit_rate=self.metrics.cache_hit_rate(),
        )

    def tick(self) -> Optional[ScalingDecision]:
        """Run one control-loop iteration.

        Returns:
            The decision taken, or None if the service is not configured or
            the tick was abandoned after an error
        """
        if self.service_ref is None:
            logger.info("Compute cluster or service name not configured; skipping capacity tick")
            return None

        try:
            current = self.compute.get_current_desired_count(self.service_ref)
            snapshot = self.read_snapshot()
            target = calculate_target_count(snapshot, self.policy)
            decision = ScalingDecision(current_count=current, target_count=target, snapshot=snapshot)

            logger.info(
                "Capacity for %s: current=%d optimal=%d (cpu=%.1f rpm=%.2f hit_rate=%.2f)",
                self.service_ref, current, target,
                snapshot.avg_cpu, snapshot.requests_per_minute, snapshot.cache_hit_rate,
            )

            if not decision.changed:
                return decision

            self.compute.set_desired_count(self.service_ref, target)
            logger.info("Updated %s desired count from %d to %d", self.service_ref, current, target)
        except Exception:
            logger.exception("Error optimizing resources for %s; abandoning tick", self.service_ref)
            return None

        if self.sink is not None:
            try:
                self.sink.put_metrics([MetricDatum("TaskCountChange", float(decision.delta), "Count")])
            except Exception:
                logger.exception("Error reporting task count change for %s", self.service_ref)

        return decision

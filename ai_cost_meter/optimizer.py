"""
Cost optimizer facade.

Wires the tier table, usage ledger, rate limiter, result cache, admission
controller, capacity optimizer and metrics reporter around one shared
store and one AggregateMetrics instance, and owns their background tasks.
"""

import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from ai_cost_meter.config.loader import MeterConfig, StoreBackend, StoreConfig
from ai_cost_meter.core.admission import AdmissionController, AdmissionDecision
from ai_cost_meter.core.cache import DEFAULT_KEY_PREFIX, ResultCache
from ai_cost_meter.core.capacity import (
    CapacityOptimizer,
    ComputeControl,
    LoadSource,
    ScalingDecision,
    ScalingPolicy,
    ServiceRef,
)
from ai_cost_meter.core.ledger import UsageLedger, utc_now
from ai_cost_meter.core.metrics import AggregateMetrics, LogMetricsSink, MetricsReporter, MetricsSink
from ai_cost_meter.core.rate_limiter import RateLimiter
from ai_cost_meter.core.recommendations import Recommendation, build_recommendations
from ai_cost_meter.core.scheduler import Supervisor
from ai_cost_meter.core.tiers import TIER_TABLE, TierTable, estimate_cost
from ai_cost_meter.storage.base import KeyValueStore
from ai_cost_meter.storage.memory import InMemoryKeyValueStore
from ai_cost_meter.storage.models import UsageSummary
from ai_cost_meter.storage.sqlite_store import SQLiteKeyValueStore, initialize_schema

logger = logging.getLogger(__name__)

METRICS_TASK = "metrics-reporter"
CAPACITY_TASK = "capacity-optimizer"
PRUNE_TASK = "rate-limit-prune"


class CostOptimizer:
    """Usage metering and cost optimization for model requests.

    Request path: should_process_request() -> get_cached_result() -> on a
    miss, invoke the model -> track_usage() and cache_result().
    """

    def __init__(
        self,
        store: KeyValueStore,
        tiers: TierTable = TIER_TABLE,
        metrics: Optional[AggregateMetrics] = None,
        rate_limiter: Optional[RateLimiter] = None,
        sink: Optional[MetricsSink] = None,
        load_source: Optional[LoadSource] = None,
        compute: Optional[ComputeControl] = None,
        service_ref: Optional[ServiceRef] = None,
        scaling_policy: ScalingPolicy = ScalingPolicy(),
        cache_prefix: str = DEFAULT_KEY_PREFIX,
        dimensions: Optional[Dict[str, str]] = None,
        clock: Callable = utc_now,
        reporting_interval: float = 60.0,
        capacity_interval: float = 300.0,
    ):
        self.store = store
        self.reporting_interval = reporting_interval
        self.capacity_interval = capacity_interval
        self.tiers = tiers
        self.metrics = metrics or AggregateMetrics()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.sink = sink or LogMetricsSink()

        self.ledger = UsageLedger(store, metrics=self.metrics, clock=clock)
        self.cache = ResultCache(store, metrics=self.metrics, tiers=tiers, prefix=cache_prefix)
        self.admission = AdmissionController(self.ledger, self.rate_limiter, metrics=self.metrics, tiers=tiers)
        self.reporter = MetricsReporter(self.metrics, self.sink, dimensions=dimensions)

        self.capacity: Optional[CapacityOptimizer] = None
        if load_source is not None and compute is not None:
            self.capacity = CapacityOptimizer(
                load_source,
                compute,
                self.metrics,
                service_ref=service_ref,
                policy=scaling_policy,
                sink=self.sink,
            )

        self.supervisor = Supervisor()

    def should_process_request(self, user_id: str, tier: str, use_case: str) -> AdmissionDecision:
        return self.admission.decide(user_id, tier, use_case)

    def generate_cache_key(self, tier: str, use_case: str, content: str, options: Optional[Mapping[str, Any]] = None) -> str:
        return self.cache.key(tier, use_case, content, options)

    def get_cached_result(self, cache_key: str, tier: str) -> Optional[Any]:
        return self.cache.get(cache_key, tier)

    def cache_result(self, cache_key: str, result: Any, tier: str) -> bool:
        return self.cache.put(cache_key, result, tier)

    def track_usage(
        self,
        user_id: str,
        tier: str,
        use_case: str,
        input_units: int,
        output_units: int,
        cost: Union[float, Decimal, None] = None,
    ) -> bool:
        """Record consumption; cost defaults to the tier's estimate."""
        if cost is None:
            try:
                cost = estimate_cost(self.tiers.resolve(tier), input_units, output_units)
            except (TypeError, ValueError):
                logger.error(
                    "Cannot estimate cost for user %s: input=%r output=%r",
                    user_id, input_units, output_units,
                )
                return False
        return self.ledger.record_usage(user_id, tier, use_case, input_units, output_units, cost)

    def get_user_usage(self, user_id: str) -> UsageSummary:
        return self.ledger.get_usage_or_zero(user_id)

    def estimate_cost(self, tier: str, input_units: int, output_units: int = 0) -> Decimal:
        return estimate_cost(self.tiers.resolve(tier), input_units, output_units)

    def optimize_resources(self) -> Optional[ScalingDecision]:
        if self.capacity is None:
            logger.info("No load source or compute control configured; skipping capacity tick")
            return None
        return self.capacity.tick()

    def report_metrics(self) -> bool:
        return self.reporter.flush()

    def prune_rate_limits(self) -> int:
        longest = max(p.rate_window_ms for p in self.tiers.policies.values())
        return self.rate_limiter.prune(longest)

    def prune(self) -> int:
        """Drop idle rate-limit windows and expired store entries."""
        removed = self.prune_rate_limits()
        try:
            removed += self.store.purge_expired()
        except Exception:
            logger.exception("Error purging expired store entries")
        return removed

    def recommendations(self, user_id: str) -> List[Recommendation]:
        """Cost-saving suggestions for a user; empty on any error."""
        try:
            usage = self.ledger.get_usage(user_id)
            snapshot = self.metrics.snapshot()
            hit_rate = snapshot.cache_hit_rate if snapshot.cache_hits + snapshot.cache_misses else None
            return build_recommendations(usage, hit_rate)
        except Exception:
            logger.exception("Error getting recommendations for user %s", user_id)
            return []

    def schedule(self, reporting_interval: Optional[float] = None, capacity_interval: Optional[float] = None) -> Supervisor:
        """Register the background tasks without starting them.

        Intervals default to the ones the optimizer was built with.
        """
        if reporting_interval is None:
            reporting_interval = self.reporting_interval
        if capacity_interval is None:
            capacity_interval = self.capacity_interval
        if not self.supervisor.tasks:
            self.supervisor.add(METRICS_TASK, self.report_metrics, reporting_interval)
            self.supervisor.add(PRUNE_TASK, self.prune, reporting_interval)
            if self.capacity is not None:
                self.supervisor.add(CAPACITY_TASK, self.optimize_resources, capacity_interval)
        return self.supervisor

    def start(self, reporting_interval: Optional[float] = None, capacity_interval: Optional[float] = None) -> None:
        self.schedule(reporting_interval, capacity_interval).start()

    def stop(self) -> None:
        self.supervisor.stop()


def build_store(config: StoreConfig) -> KeyValueStore:
    """Create the key-value store selected by configuration."""
    if config.backend == StoreBackend.MEMORY:
        return InMemoryKeyValueStore()
    if config.backend == StoreBackend.REDIS:
        from ai_cost_meter.storage.redis_store import RedisKeyValueStore
        return RedisKeyValueStore.from_url(config.url, timeout_seconds=config.timeout_seconds)

    initialize_schema(config.path)
    return SQLiteKeyValueStore(config.path, timeout=config.timeout_seconds)


def build_optimizer(config: MeterConfig, use_aws: bool = False, region_name: Optional[str] = None) -> CostOptimizer:
    """Create a CostOptimizer from configuration.

    Args:
        config: Validated metering configuration
        use_aws: Publish metrics to CloudWatch and scale through ECS
        region_name: AWS region for the clients
    """
    sink = None
    load_source = None
    compute = None
    if use_aws:
        from ai_cost_meter.integrations.aws import (
            CloudWatchLoadSource,
            CloudWatchSink,
            EcsComputeControl,
            make_client,
        )
        cloudwatch = make_client("cloudwatch", config.store.timeout_seconds, region_name)
        sink = CloudWatchSink(cloudwatch, namespace=config.reporting.namespace)
        load_source = CloudWatchLoadSource(cloudwatch)
        compute = EcsComputeControl(make_client("ecs", config.store.timeout_seconds, region_name))

    return CostOptimizer(
        store=build_store(config.store),
        tiers=config.tiers,
        sink=sink,
        load_source=load_source,
        compute=compute,
        service_ref=config.service,
        scaling_policy=config.capacity.policy,
        cache_prefix=config.cache_prefix,
        dimensions=config.dimensions,
        reporting_interval=config.reporting.interval_seconds,
        capacity_interval=config.capacity.interval_seconds,
    )

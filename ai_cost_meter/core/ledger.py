"""
Usage ledger.

Persistent per-user counters bucketed by UTC day and UTC month. Counters
are incremented at the store, never read-modify-written here, and each
period key carries its own retention expiry.

The ledger drives soft quota checks, not billing of record: the daily
and monthly updates are both attempted but not applied as one
transaction.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Tuple, Union

from ai_cost_meter.storage.base import KeyValueStore
from ai_cost_meter.storage.models import UsageRecord, UsageSummary

from .metrics import AggregateMetrics
from .tiers import resolve_tier

logger = logging.getLogger(__name__)

DAILY_RETENTION_SECONDS = 86400 * 7
MONTHLY_RETENTION_SECONDS = 86400 * 32


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def period_keys(user_id: str, now: datetime) -> Tuple[str, str]:
    """Daily and monthly ledger keys for a user at a given instant."""
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    day = now.strftime("%Y-%m-%d")
    return f"usage:{user_id}:{day}", f"usage:{user_id}:{day[:7]}"


class UsageLedger:
    """Records and reads per-user usage counters."""

    def __init__(
        self,
        store: KeyValueStore,
        metrics: Optional[AggregateMetrics] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            store: Key-value store holding the counters
            metrics: Aggregate metrics updated on each recorded request
            clock: Function returning the current time
        """
        self.store = store
        self.metrics = metrics
        self.clock = clock

    def _increment_period(self, key: str, units: int, cost: float, retention: int) -> None:
        self.store.increment_field(key, "requests", 1)
        self.store.increment_field(key, "tokens", units)
        self.store.increment_float_field(key, "cost", cost)
        self.store.set_expiry(key, retention)

    def record_usage(
        self,
        user_id: str,
        tier: str,
        use_case: str,
        input_units: int,
        output_units: int,
        cost: Union[float, Decimal],
    ) -> bool:
        """Record one completed request against the current day and month.

        Never raises: invalid amounts and storage failures are logged and
        the update is skipped. Counters only grow, so negative unit counts
        or costs are rejected.

        Args:
            user_id: User identifier
            tier: Tier name (logged only)
            use_case: Use case name (logged only)
            input_units: Units consumed by the request input
            output_units: Units produced by the model
            cost: Estimated cost of the request

        Returns:
            True if both period records were updated
        """
        try:
            input_count = int(input_units)
            output_count = int(output_units)
            amount = float(cost)
        except (TypeError, ValueError):
            logger.error(
                "Invalid usage amounts for user %s: input=%r output=%r cost=%r",
                user_id, input_units, output_units, cost,
            )
            return False
        if input_count < 0 or output_count < 0 or amount < 0:
            logger.error(
                "Negative usage amounts for user %s: input=%d output=%d cost=%s",
                user_id, input_count, output_count, amount,
            )
            return False

        units = input_count + output_count
        daily_key, monthly_key = period_keys(user_id, self.clock())

        ok = True
        for key, retention in ((daily_key, DAILY_RETENTION_SECONDS), (monthly_key, MONTHLY_RETENTION_SECONDS)):
            try:
                self._increment_period(key, units, amount, retention)
            except Exception:
                ok = False
                logger.exception(
                    "Error tracking usage for user %s (%s/%s) at %s",
                    user_id, resolve_tier(tier), use_case, key,
                )

        if ok and self.metrics is not None:
            self.metrics.record_request(amount)
        return ok

    def get_record(self, key: str) -> UsageRecord:
        return UsageRecord.from_fields(self.store.get_all_fields(key))

    def get_usage(self, user_id: str) -> UsageSummary:
        """Read the current day and month for a user.

        Absent records read as zero.

        Raises:
            InfrastructureError: If the store cannot be read
        """
        daily_key, monthly_key = period_keys(user_id, self.clock())
        return UsageSummary.from_records(self.get_record(daily_key), self.get_record(monthly_key))

    def get_usage_or_zero(self, user_id: str) -> UsageSummary:
        """Like get_usage(), but logs store errors and reports zero usage."""
        try:
            return self.get_usage(user_id)
        except Exception:
            logger.exception("Error getting usage for user %s", user_id)
            return UsageSummary()

"""
Admission control for incoming requests.

Combines tier policy, usage ledger and rate limiter into one allow/deny
decision.

Check Order:
1. Daily and monthly quota - exhausted quota short-circuits, so the rate
   limiter is not touched
2. Rate-limit window - counts the request against the (user, tier) window

Any failure while reading usage or rate-limit state admits the request.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .ledger import UsageLedger
from .metrics import AggregateMetrics
from .rate_limiter import RateLimiter
from .tiers import TIER_TABLE, LimitStatus, TierTable, check_limits

logger = logging.getLogger(__name__)


class DenialReason(Enum):
    """Why a request was refused."""
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    RATE_LIMITED = "RATE_LIMITED"


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of an admission check."""
    allowed: bool
    reason: Optional[DenialReason] = None
    retry_after_ms: Optional[int] = None
    remaining_requests: Optional[int] = None
    limits: Optional[LimitStatus] = None

    @classmethod
    def fail_open(cls) -> "AdmissionDecision":
        return cls(allowed=True)

    def to_dict(self) -> Dict[str, object]:
        """Caller-facing representation; optional fields are omitted when unset."""
        result: Dict[str, object] = {"allowed": self.allowed}
        if self.reason is not None:
            result["reason"] = self.reason.value
        if self.retry_after_ms is not None:
            result["retryAfterMs"] = self.retry_after_ms
        if self.remaining_requests is not None:
            result["remainingRequests"] = self.remaining_requests
        if self.limits is not None:
            result["limits"] = self.limits.to_dict()
        return result


class AdmissionController:
    """Decides whether a request may proceed.

    Mutates rate-limiter state on grants and on rate-limit denials. Never
    records usage; callers do that through the ledger after the work is
    actually done.
    """

    def __init__(
        self,
        ledger: UsageLedger,
        rate_limiter: RateLimiter,
        metrics: Optional[AggregateMetrics] = None,
        tiers: TierTable = TIER_TABLE,
    ):
        self.ledger = ledger
        self.rate_limiter = rate_limiter
        self.metrics = metrics
        self.tiers = tiers

    def decide(self, user_id: str, tier: str, use_case: str) -> AdmissionDecision:
        """
        Decide on a single request.

        Args:
            user_id: Non-empty user identifier
            tier: Tier name, case-insensitive; unknown names act as free
            use_case: Use case being requested

        Returns:
            AdmissionDecision; store and limiter failures yield allowed=True

        Raises:
            ValueError: If user_id is empty
        """
        if not user_id:
            raise ValueError("user_id is required and cannot be empty")

        try:
            policy = self.tiers.resolve(tier)
            usage = self.ledger.get_usage(user_id)
            limits = check_limits(policy, usage.daily, usage.monthly)

            if limits.exceeded:
                logger.info(
                    "Quota exhausted for user %s on tier %s (%s): daily=%d monthly=%d",
                    user_id, policy.name, use_case, usage.daily, usage.monthly,
                )
                return AdmissionDecision(
                    allowed=False,
                    reason=DenialReason.LIMIT_EXCEEDED,
                    limits=limits,
                )

            result = self.rate_limiter.acquire(user_id, policy)
            if not result.allowed:
                if self.metrics is not None:
                    self.metrics.record_throttled()
                logger.warning(
                    "Rate limit exceeded for user %s on tier %s: %d requests in %dms window",
                    user_id, policy.name, result.requests_in_window, policy.rate_window_ms,
                )
                return AdmissionDecision(
                    allowed=False,
                    reason=DenialReason.RATE_LIMITED,
                    retry_after_ms=result.retry_after_ms,
                    limits=limits,
                )

            return AdmissionDecision(
                allowed=True,
                remaining_requests=result.remaining_requests,
                limits=limits,
            )

        except Exception:
            logger.exception("Error checking request limits for user %s; admitting request", user_id)
            return AdmissionDecision.fail_open()

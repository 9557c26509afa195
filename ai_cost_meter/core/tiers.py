"""
Subscription tier policies.

Static mapping from tier name to quota, rate-limit window, cache policy
and cost-per-unit. Every component resolves tier names through
resolve_tier() so unknown or oddly-cased names behave the same everywhere.
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, Mapping, Optional


DEFAULT_TIER = "free"


@dataclass(frozen=True)
class TierPolicy:
    """Limits and cache policy for a single subscription tier."""
    name: str
    daily_request_limit: int
    monthly_request_limit: int
    rate_window_ms: int
    rate_window_max_requests: int
    cache_enabled: bool
    cache_ttl_seconds: int
    cost_per_unit: Decimal  # Estimation only, not billing of record

    def __post_init__(self):
        """Validate limits are usable."""
        if self.daily_request_limit < 0:
            raise ValueError("daily_request_limit cannot be negative")
        if self.monthly_request_limit < 0:
            raise ValueError("monthly_request_limit cannot be negative")
        if self.rate_window_ms <= 0:
            raise ValueError("rate_window_ms must be > 0")
        if self.rate_window_max_requests < 0:
            raise ValueError("rate_window_max_requests cannot be negative")
        if self.cache_ttl_seconds <= 0:
            raise ValueError("cache_ttl_seconds must be > 0")
        if self.cost_per_unit < 0:
            raise ValueError("cost_per_unit cannot be negative")


@dataclass(frozen=True)
class LimitStatus:
    """Quota position of a user against their tier."""
    daily_limit_exceeded: bool
    monthly_limit_exceeded: bool
    remaining_daily: int
    remaining_monthly: int

    @property
    def exceeded(self) -> bool:
        return self.daily_limit_exceeded or self.monthly_limit_exceeded

    def to_dict(self) -> Dict[str, object]:
        return {
            "dailyLimitExceeded": self.daily_limit_exceeded,
            "monthlyLimitExceeded": self.monthly_limit_exceeded,
            "remainingDaily": self.remaining_daily,
            "remainingMonthly": self.remaining_monthly,
        }


@dataclass(frozen=True)
class TierTable:
    """Fixed set of tier policies with free-tier fallback."""
    policies: Dict[str, TierPolicy]

    def __post_init__(self):
        if DEFAULT_TIER not in self.policies:
            raise ValueError(f"Tier table must define '{DEFAULT_TIER}'")

    def resolve(self, tier: Optional[str]) -> TierPolicy:
        """Get the policy for a tier name, falling back to the free tier.

        Args:
            tier: Tier name in any case; None or unknown names map to free

        Returns:
            TierPolicy for the tier
        """
        return self.policies.get(resolve_tier(tier, self.policies), self.policies[DEFAULT_TIER])

    def with_overrides(self, overrides: Mapping[str, Mapping[str, object]]) -> "TierTable":
        """Return a new table with per-tier field overrides applied."""
        policies = dict(self.policies)
        for name, fields in overrides.items():
            base = policies.get(name)
            if base is None:
                raise ValueError(f"Unknown tier: {name}")
            policies[name] = replace(base, **fields)
        return TierTable(policies)


def resolve_tier(tier: Optional[str], known: Optional[Mapping[str, object]] = None) -> str:
    """Normalize a tier name.

    Names are matched case-insensitively after trimming whitespace. Anything
    that does not name a known tier resolves to the free tier.
    """
    names = known if known is not None else TIER_TABLE.policies
    if not tier:
        return DEFAULT_TIER
    normalized = str(tier).strip().lower()
    return normalized if normalized in names else DEFAULT_TIER


# Production tier table
TIER_TABLE = TierTable({
    "free": TierPolicy(
        name="free",
        daily_request_limit=10,
        monthly_request_limit=100,
        rate_window_ms=60_000,
        rate_window_max_requests=1,
        cache_enabled=True,
        cache_ttl_seconds=3600,
        cost_per_unit=Decimal("0.0003"),
    ),
    "basic": TierPolicy(
        name="basic",
        daily_request_limit=100,
        monthly_request_limit=2000,
        rate_window_ms=60_000,
        rate_window_max_requests=10,
        cache_enabled=True,
        cache_ttl_seconds=1800,
        cost_per_unit=Decimal("0.00025"),
    ),
    "pro": TierPolicy(
        name="pro",
        daily_request_limit=500,
        monthly_request_limit=10000,
        rate_window_ms=60_000,
        rate_window_max_requests=50,
        cache_enabled=True,
        cache_ttl_seconds=900,
        cost_per_unit=Decimal("0.003"),
    ),
    "enterprise": TierPolicy(
        name="enterprise",
        daily_request_limit=2000,
        monthly_request_limit=50000,
        rate_window_ms=60_000,
        rate_window_max_requests=200,
        cache_enabled=True,
        cache_ttl_seconds=300,
        cost_per_unit=Decimal("0.015"),
    ),
})


_FREE_FEATURES = {
    "basicSEO": True,
    "keywordAnalysis": True,
    "contentSuggestions": False,
    "advancedAnalytics": False,
    "realTimeOptimization": False,
    "customPrompts": False,
}

_BASIC_FEATURES = {
    **_FREE_FEATURES,
    "contentSuggestions": True,
    "batchProcessing": True,
}

_PRO_FEATURES = {
    **_BASIC_FEATURES,
    "advancedAnalytics": True,
    "realTimeOptimization": True,
    "customPrompts": True,
    "competitorAnalysis": True,
    "multiLanguage": True,
}

_ENTERPRISE_FEATURES = {
    **_PRO_FEATURES,
    "customModels": True,
    "prioritySupport": True,
    "whiteLabel": True,
    "apiAccess": True,
}

TIER_FEATURES: Dict[str, Dict[str, bool]] = {
    "free": _FREE_FEATURES,
    "basic": _BASIC_FEATURES,
    "pro": _PRO_FEATURES,
    "enterprise": _ENTERPRISE_FEATURES,
}


def tier_features(tier: Optional[str]) -> Dict[str, bool]:
    """Feature flags available to a tier (free tier for unknown names)."""
    return dict(TIER_FEATURES[resolve_tier(tier, TIER_FEATURES)])


def check_limits(policy: TierPolicy, daily_usage: int, monthly_usage: int) -> LimitStatus:
    """Compare request counts against a tier's quota ceilings.

    A limit counts as exceeded once usage meets it.
    """
    return LimitStatus(
        daily_limit_exceeded=daily_usage >= policy.daily_request_limit,
        monthly_limit_exceeded=monthly_usage >= policy.monthly_request_limit,
        remaining_daily=max(0, policy.daily_request_limit - daily_usage),
        remaining_monthly=max(0, policy.monthly_request_limit - monthly_usage),
    )


def estimate_cost(policy: TierPolicy, input_units: int, output_units: int = 0) -> Decimal:
    """Estimate the cost of a request from its unit counts.

    Args:
        policy: Tier policy supplying cost_per_unit
        input_units: Units consumed by the request input
        output_units: Units produced by the model

    Returns:
        Estimated cost as a Decimal

    Raises:
        ValueError: If a unit count is negative
    """
    if input_units < 0 or output_units < 0:
        raise ValueError("unit counts cannot be negative")
    return Decimal(input_units + output_units) * policy.cost_per_unit

"""
Data models for the usage ledger.

Defines the per-period usage record and the combined usage summary.
"""

from dataclasses import dataclass
from typing import Dict, Mapping


@dataclass(frozen=True)
class UsageRecord:
    """Counters for one user over one calendar day or month.

    Counters only grow within their period; a new period starts a new record.
    """
    request_count: int = 0
    token_count: int = 0
    cost_accumulated: float = 0.0

    @classmethod
    def from_fields(cls, fields: Mapping[str, str]) -> "UsageRecord":
        """Build a record from raw hash fields; missing fields read as zero."""
        return cls(
            request_count=int(fields.get("requests") or 0),
            token_count=int(fields.get("tokens") or 0),
            cost_accumulated=float(fields.get("cost") or 0),
        )


@dataclass(frozen=True)
class UsageSummary:
    """Daily and monthly usage for a user."""
    daily: int = 0
    monthly: int = 0
    daily_cost: float = 0.0
    monthly_cost: float = 0.0
    daily_tokens: int = 0
    monthly_tokens: int = 0

    @classmethod
    def from_records(cls, daily: UsageRecord, monthly: UsageRecord) -> "UsageSummary":
        return cls(
            daily=daily.request_count,
            monthly=monthly.request_count,
            daily_cost=daily.cost_accumulated,
            monthly_cost=monthly.cost_accumulated,
            daily_tokens=daily.token_count,
            monthly_tokens=monthly.token_count,
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "daily": self.daily,
            "monthly": self.monthly,
            "dailyCost": self.daily_cost,
            "monthlyCost": self.monthly_cost,
            "dailyTokens": self.daily_tokens,
            "monthlyTokens": self.monthly_tokens,
        }

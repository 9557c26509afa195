"""
Cost optimization recommendations.

Suggests plan, caching and batching changes from a user's usage and the
process-wide cache hit rate.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from ai_cost_meter.storage.models import UsageSummary

HIGH_MONTHLY_COST = 50.0
LOW_CACHE_HIT_RATE = 0.5
BATCHING_DAILY_REQUESTS = 20


class RecommendationType(Enum):
    COST_REDUCTION = "COST_REDUCTION"
    CACHE_OPTIMIZATION = "CACHE_OPTIMIZATION"
    BATCH_PROCESSING = "BATCH_PROCESSING"


class Priority(Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


@dataclass(frozen=True)
class Recommendation:
    """A single suggested change with its estimated monthly savings."""
    type: RecommendationType
    priority: Priority
    message: str
    potential_savings: float


def build_recommendations(usage: UsageSummary, cache_hit_rate: Optional[float]) -> List[Recommendation]:
    """Derive recommendations from usage.

    Args:
        usage: Current daily and monthly usage for the user
        cache_hit_rate: Lifetime cache hit rate between 0 and 1, or None
            before the first cache lookup

    Returns:
        Recommendations in rule order
    """
    recommendations = []

    if usage.monthly_cost > HIGH_MONTHLY_COST:
        recommendations.append(Recommendation(
            type=RecommendationType.COST_REDUCTION,
            priority=Priority.HIGH,
            message="Consider upgrading to a higher tier for better cost efficiency",
            potential_savings=usage.monthly_cost * 0.2,
        ))

    if cache_hit_rate is not None and cache_hit_rate < LOW_CACHE_HIT_RATE:
        recommendations.append(Recommendation(
            type=RecommendationType.CACHE_OPTIMIZATION,
            priority=Priority.MEDIUM,
            message="Enable caching to reduce API costs by up to 60%",
            potential_savings=usage.monthly_cost * 0.6,
        ))

    if usage.daily > BATCHING_DAILY_REQUESTS:
        recommendations.append(Recommendation(
            type=RecommendationType.BATCH_PROCESSING,
            priority=Priority.MEDIUM,
            message="Use batch processing for multiple requests to reduce costs",
            potential_savings=usage.monthly_cost * 0.3,
        ))

    return recommendations

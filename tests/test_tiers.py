"""
Unit tests for tier policies.

Tests tier resolution, limit checks, cost estimation and feature flags.
"""

from decimal import Decimal

import pytest

from ai_cost_meter.core.tiers import (
    TIER_TABLE,
    TierPolicy,
    check_limits,
    estimate_cost,
    resolve_tier,
    tier_features,
)


class TestTierResolution:
    """Test tier name normalization."""

    def test_known_tiers_resolve_to_themselves(self):
        for name in ("free", "basic", "pro", "enterprise"):
            assert resolve_tier(name) == name

    def test_resolution_is_case_insensitive(self):
        assert resolve_tier("PRO") == "pro"
        assert resolve_tier("  Enterprise ") == "enterprise"

    def test_unknown_tier_falls_back_to_free(self):
        assert resolve_tier("platinum") == "free"
        assert resolve_tier("") == "free"
        assert resolve_tier(None) == "free"

    def test_table_resolve_returns_policy(self):
        assert TIER_TABLE.resolve("BASIC").name == "basic"
        assert TIER_TABLE.resolve("INVALID").name == "free"


class TestTierPolicyValues:
    """Test the production tier table."""

    def test_free_tier(self):
        policy = TIER_TABLE.resolve("free")
        assert policy.daily_request_limit == 10
        assert policy.monthly_request_limit == 100
        assert policy.rate_window_ms == 60_000
        assert policy.rate_window_max_requests == 1
        assert policy.cache_enabled is True
        assert policy.cache_ttl_seconds == 3600
        assert policy.cost_per_unit == Decimal("0.0003")

    def test_enterprise_tier(self):
        policy = TIER_TABLE.resolve("enterprise")
        assert policy.daily_request_limit == 2000
        assert policy.monthly_request_limit == 50000
        assert policy.rate_window_max_requests == 200
        assert policy.cache_ttl_seconds == 300
        assert policy.cost_per_unit == Decimal("0.015")

    def test_policy_is_immutable(self):
        policy = TIER_TABLE.resolve("free")
        with pytest.raises(Exception):
            policy.daily_request_limit = 1000

    def test_invalid_policy_rejected(self):
        with pytest.raises(ValueError, match="rate_window_ms"):
            TierPolicy(
                name="broken",
                daily_request_limit=1,
                monthly_request_limit=1,
                rate_window_ms=0,
                rate_window_max_requests=1,
                cache_enabled=False,
                cache_ttl_seconds=60,
                cost_per_unit=Decimal("0"),
            )

    def test_overrides_replace_single_fields(self):
        table = TIER_TABLE.with_overrides({"free": {"cache_enabled": False}})
        assert table.resolve("free").cache_enabled is False
        assert table.resolve("free").daily_request_limit == 10
        assert TIER_TABLE.resolve("free").cache_enabled is True

    def test_overrides_reject_unknown_tier(self):
        with pytest.raises(ValueError, match="Unknown tier"):
            TIER_TABLE.with_overrides({"gold": {"cache_enabled": False}})


class TestCheckLimits:
    """Test quota comparison."""

    def test_within_limits(self):
        limits = check_limits(TIER_TABLE.resolve("free"), 5, 50)
        assert limits.daily_limit_exceeded is False
        assert limits.monthly_limit_exceeded is False
        assert limits.remaining_daily == 5
        assert limits.remaining_monthly == 50
        assert limits.exceeded is False

    def test_daily_limit_met_counts_as_exceeded(self):
        limits = check_limits(TIER_TABLE.resolve("free"), 10, 50)
        assert limits.daily_limit_exceeded is True
        assert limits.remaining_daily == 0
        assert limits.exceeded is True

    def test_monthly_limit_exceeded(self):
        limits = check_limits(TIER_TABLE.resolve("free"), 5, 150)
        assert limits.monthly_limit_exceeded is True
        assert limits.remaining_monthly == 0

    def test_to_dict_shape(self):
        limits = check_limits(TIER_TABLE.resolve("free"), 5, 50)
        assert limits.to_dict() == {
            "dailyLimitExceeded": False,
            "monthlyLimitExceeded": False,
            "remainingDaily": 5,
            "remainingMonthly": 50,
        }


class TestEstimateCost:
    """Test cost estimation."""

    def test_free_tier_cost(self):
        cost = estimate_cost(TIER_TABLE.resolve("free"), 1000, 500)
        assert cost == Decimal("1500") * Decimal("0.0003")

    def test_enterprise_tier_cost(self):
        cost = estimate_cost(TIER_TABLE.resolve("enterprise"), 1000, 500)
        assert cost == Decimal("22.5")

    def test_zero_output_units(self):
        assert estimate_cost(TIER_TABLE.resolve("free"), 1000) == Decimal("0.3")

    def test_negative_units_rejected(self):
        with pytest.raises(ValueError):
            estimate_cost(TIER_TABLE.resolve("free"), -1)


class TestTierFeatures:
    """Test feature flags per tier."""

    def test_free_features(self):
        features = tier_features("FREE")
        assert features["basicSEO"] is True
        assert features["contentSuggestions"] is False
        assert "apiAccess" not in features

    def test_enterprise_features(self):
        features = tier_features("enterprise")
        assert features["apiAccess"] is True
        assert features["competitorAnalysis"] is True

    def test_unknown_tier_gets_free_features(self):
        assert tier_features("INVALID") == tier_features("free")

    def test_returned_map_is_a_copy(self):
        tier_features("free")["customPrompts"] = True
        assert tier_features("free")["customPrompts"] is False

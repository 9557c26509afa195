"""
Shared fixtures for the test suite.

Time is always driven through injected clocks so window, expiry and
day-boundary behaviour can be tested without sleeping.
"""

from datetime import datetime, timedelta, timezone

import pytest

from ai_cost_meter.core.metrics import AggregateMetrics
from ai_cost_meter.storage.memory import InMemoryKeyValueStore


class FakeClock:
    """Manually advanced clock returning a number (seconds or milliseconds)."""

    def __init__(self, start=0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, amount):
        self.now += amount


class FakeDateClock:
    """Manually advanced UTC datetime clock."""

    def __init__(self, start=datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def ms_clock():
    return FakeClock(start=1_000_000)


@pytest.fixture
def seconds_clock():
    return FakeClock(start=1_700_000_000.0)


@pytest.fixture
def date_clock():
    return FakeDateClock()


@pytest.fixture
def metrics():
    return AggregateMetrics()


@pytest.fixture
def store(seconds_clock):
    return InMemoryKeyValueStore(clock=seconds_clock)

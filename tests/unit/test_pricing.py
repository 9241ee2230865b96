"""Unit tests for amount computation."""
from datetime import time
from decimal import Decimal

import pytest

from booking_engine.catalog import ResourceSnapshot
from booking_engine.models import ResourceKind, ResourceType
from booking_engine.pricing import compute_total, duration_hours

COTTAGE = ResourceSnapshot(
    id=1,
    name="Family Cottage #1",
    kind=ResourceKind.AMENITY,
    type=ResourceType.COTTAGE,
    capacity=15,
    hourly_rate=Decimal("250.00"),
    daily_rate=Decimal("1500.00"),
    is_active=True,
)


def test_duration_hours_handles_partial_hours():
    assert duration_hours(time(9, 0), time(10, 30)) == Decimal("1.5")


def test_daily_rule_charges_flat_daily_rate():
    assert compute_total(COTTAGE, time(9, 0), time(10, 0), "daily") == Decimal("1500.00")


def test_hourly_rule_charges_by_duration():
    assert compute_total(COTTAGE, time(9, 0), time(12, 30), "hourly") == Decimal("875.00")


def test_hourly_rule_rounds_to_cents():
    assert compute_total(COTTAGE, time(9, 0), time(9, 20), "hourly") == Decimal("83.33")


def test_unknown_rule_is_rejected():
    with pytest.raises(ValueError):
        compute_total(COTTAGE, time(9, 0), time(10, 0), "weekly")


def test_snapshot_is_immutable():
    with pytest.raises(AttributeError):
        COTTAGE.daily_rate = Decimal("1.00")

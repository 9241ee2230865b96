"""Amount due for a reservation, fixed once at creation."""
from __future__ import annotations

from datetime import datetime, time
from decimal import ROUND_HALF_UP, Decimal

from .catalog import ResourceSnapshot

CENTS = Decimal("0.01")


def duration_hours(start: time, end: time) -> Decimal:
    anchor = datetime(2000, 1, 1)
    delta = datetime.combine(anchor, end) - datetime.combine(anchor, start)
    return Decimal(int(delta.total_seconds())) / Decimal(3600)


def compute_total(resource: ResourceSnapshot, start: time, end: time, rule: str = "daily") -> Decimal:
    if rule == "daily":
        amount = resource.daily_rate
    elif rule == "hourly":
        amount = resource.hourly_rate * duration_hours(start, end)
    else:
        raise ValueError(f"Unknown pricing rule: {rule}")
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)

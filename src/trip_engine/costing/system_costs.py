"""System cost generator for per-km and per-day overheads."""

from __future__ import annotations

import math
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from trip_engine.costing.taxonomy import (
    SYSTEM_COSTS_CATEGORY,
    SYSTEM_PER_DAY_SUBCATEGORIES,
    SYSTEM_PER_KM_SUBCATEGORIES,
)
from trip_engine.costing.types import CostEntry, SystemCostType, parse_datetime, round_money

if TYPE_CHECKING:
    from trip_engine.costing.rates import SystemCostRates
    from trip_engine.costing.types import Trip

SECONDS_PER_DAY = 24 * 60 * 60


class SystemCostGenerator:
    """Builds the standard overhead entries for a trip.

    Output is deterministic for a given trip and rate table:
    - 2 per-km entries: rate x distance
    - 8 per-day entries: rate x duration in days

    Entries never pass through the cost validator and are never flagged.
    Persisting them (and removing earlier system entries) is the caller's job.
    """

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        return round_money(amount)

    @staticmethod
    def duration_days(start: datetime | date, end: datetime | date) -> int:
        """Whole days between start and end, rounded up, at least 1."""
        start, end = parse_datetime(start), parse_datetime(end)
        seconds = abs((end - start).total_seconds())
        return max(1, math.ceil(seconds / SECONDS_PER_DAY))

    @classmethod
    def generate(
        cls,
        trip: Trip,
        rates: SystemCostRates,
        entry_date: date | None = None,
    ) -> list[CostEntry]:
        """Generate the ten system cost entries for a trip."""
        entry_date = entry_date or date.today()
        days = cls.duration_days(trip.start_date, trip.end_date)
        distance = trip.distance_km or Decimal("0")
        entries: list[CostEntry] = []

        for index, (key, rate) in enumerate(rates.per_km_items(), start=1):
            entries.append(
                CostEntry(
                    trip_id=trip.trip_id,
                    category=SYSTEM_COSTS_CATEGORY,
                    sub_category=SYSTEM_PER_KM_SUBCATEGORIES[key],
                    amount=cls.round_to_cents(rate * distance),
                    currency=trip.revenue_currency,
                    reference_number=f"SYS-KM-{trip.trip_id}-{index}",
                    date=entry_date,
                    notes=f"System generated per-kilometer cost ({rate} per km x {distance} km)",
                    is_flagged=False,
                    is_system_generated=True,
                    system_cost_type=SystemCostType.PER_KM,
                    calculation_details=f"{distance} km x {rate:.2f} per km",
                )
            )

        for index, (key, rate) in enumerate(rates.per_day_items(), start=1):
            entries.append(
                CostEntry(
                    trip_id=trip.trip_id,
                    category=SYSTEM_COSTS_CATEGORY,
                    sub_category=SYSTEM_PER_DAY_SUBCATEGORIES[key],
                    amount=cls.round_to_cents(rate * days),
                    currency=trip.revenue_currency,
                    reference_number=f"SYS-DAY-{trip.trip_id}-{index}",
                    date=entry_date,
                    notes=f"System generated per-day cost ({rate} per day x {days} days)",
                    is_flagged=False,
                    is_system_generated=True,
                    system_cost_type=SystemCostType.PER_DAY,
                    calculation_details=f"{days} days x {rate:.2f} per day",
                )
            )

        return entries

    @staticmethod
    def total(entries: list[CostEntry]) -> Decimal:
        return sum((e.amount for e in entries), Decimal("0"))

    @staticmethod
    def expected_total(rates: SystemCostRates, days: int, distance_km: Decimal) -> Decimal:
        """Closed-form total: days x sum(per-day) + km x sum(per-km)."""
        return rates.per_day_total * days + rates.per_km_total * distance_km

"""System cost rate tables with effective-dated versions."""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable

from trip_engine.costing.types import Currency, parse_date, parse_datetime


class RateNotFoundError(Exception):
    """Raised when no rate version applies."""

    def __init__(self, currency: str, as_of_date: date):
        self.currency = currency
        self.as_of_date = as_of_date
        super().__init__(f"No system cost rates for {currency} effective on {as_of_date}")


@dataclass(frozen=True)
class PerKmCosts:
    repair_maintenance: Decimal
    tyre_cost: Decimal


@dataclass(frozen=True)
class PerDayCosts:
    git_insurance: Decimal
    short_term_insurance: Decimal
    tracking_cost: Decimal
    fleet_management_system: Decimal
    licensing: Decimal
    vid_roadworthy: Decimal
    wages: Decimal
    depreciation: Decimal


@dataclass(frozen=True)
class SystemCostRates:
    """One version of the overhead rate table for a currency."""

    currency: Currency
    per_km_costs: PerKmCosts
    per_day_costs: PerDayCosts
    effective_date: date = date.min
    updated_by: str = "System Default"
    last_updated: datetime | None = None

    def per_km_items(self) -> list[tuple[str, Decimal]]:
        return [(f.name, getattr(self.per_km_costs, f.name)) for f in fields(PerKmCosts)]

    def per_day_items(self) -> list[tuple[str, Decimal]]:
        return [(f.name, getattr(self.per_day_costs, f.name)) for f in fields(PerDayCosts)]

    @property
    def per_km_total(self) -> Decimal:
        return sum((rate for _, rate in self.per_km_items()), Decimal("0"))

    @property
    def per_day_total(self) -> Decimal:
        return sum((rate for _, rate in self.per_day_items()), Decimal("0"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "currency": self.currency.value,
            "per_km_costs": {name: str(rate) for name, rate in self.per_km_items()},
            "per_day_costs": {name: str(rate) for name, rate in self.per_day_items()},
            "effective_date": self.effective_date.isoformat(),
            "updated_by": self.updated_by,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SystemCostRates:
        per_km = {k: Decimal(str(v)) for k, v in data["per_km_costs"].items()}
        per_day = {k: Decimal(str(v)) for k, v in data["per_day_costs"].items()}
        return cls(
            currency=Currency(data["currency"]),
            per_km_costs=PerKmCosts(**per_km),
            per_day_costs=PerDayCosts(**per_day),
            effective_date=parse_date(data.get("effective_date")) or date.min,
            updated_by=data.get("updated_by", "System Default"),
            last_updated=parse_datetime(data.get("last_updated")),
        )


DEFAULT_SYSTEM_COST_RATES: dict[Currency, SystemCostRates] = {
    Currency.USD: SystemCostRates(
        currency=Currency.USD,
        per_km_costs=PerKmCosts(
            repair_maintenance=Decimal("0.11"),
            tyre_cost=Decimal("0.03"),
        ),
        per_day_costs=PerDayCosts(
            git_insurance=Decimal("10.21"),
            short_term_insurance=Decimal("7.58"),
            tracking_cost=Decimal("2.47"),
            fleet_management_system=Decimal("1.34"),
            licensing=Decimal("1.32"),
            vid_roadworthy=Decimal("0.41"),
            wages=Decimal("16.88"),
            depreciation=Decimal("321.17"),
        ),
    ),
    Currency.ZAR: SystemCostRates(
        currency=Currency.ZAR,
        per_km_costs=PerKmCosts(
            repair_maintenance=Decimal("2.05"),
            tyre_cost=Decimal("0.64"),
        ),
        per_day_costs=PerDayCosts(
            git_insurance=Decimal("134.82"),
            short_term_insurance=Decimal("181.52"),
            tracking_cost=Decimal("49.91"),
            fleet_management_system=Decimal("23.02"),
            licensing=Decimal("23.52"),
            vid_roadworthy=Decimal("11.89"),
            wages=Decimal("300.15"),
            depreciation=Decimal("634.45"),
        ),
    ),
}


@dataclass(frozen=True)
class SystemCostReminder:
    """Rate review reminder configuration, consumed by an external scheduler."""

    reminder_frequency_days: int = 30
    is_active: bool = True
    last_reminder_date: date | None = None

    def next_reminder_date(self, today: date) -> date:
        base = self.last_reminder_date or today
        return base + timedelta(days=self.reminder_frequency_days)


DEFAULT_SYSTEM_COST_REMINDER = SystemCostReminder()


class RateTable:
    """Versioned rate tables per currency.

    Resolution picks the newest version whose effective date is on or
    before the as-of date.
    """

    def __init__(self, versions: Iterable[SystemCostRates] | None = None):
        self._versions: dict[Currency, list[SystemCostRates]] = {}
        for rates in DEFAULT_SYSTEM_COST_RATES.values() if versions is None else versions:
            self.add(rates)

    def add(self, rates: SystemCostRates) -> None:
        bucket = self._versions.setdefault(rates.currency, [])
        bucket.append(rates)
        bucket.sort(key=lambda r: r.effective_date)

    def currencies(self) -> list[Currency]:
        return sorted(self._versions, key=lambda c: c.value)

    def versions(self, currency: Currency | str) -> list[SystemCostRates]:
        return list(self._versions.get(Currency(currency), []))

    def resolve(self, currency: Currency | str, as_of: date | None = None) -> SystemCostRates:
        """Return the rates in effect for a currency on a date.

        Raises:
            RateNotFoundError: If no version is effective on that date
        """
        currency = Currency(currency)
        as_of = as_of or date.today()
        best: SystemCostRates | None = None
        for rates in self._versions.get(currency, []):
            if rates.effective_date <= as_of:
                best = rates
        if best is None:
            raise RateNotFoundError(currency.value, as_of)
        return best

    @classmethod
    def from_file(cls, path: str | Path, include_defaults: bool = True) -> RateTable:
        """Load rate versions from a JSON list, optionally over the defaults."""
        payload = json.loads(Path(path).read_text())
        table = cls() if include_defaults else cls(versions=[])
        for item in payload:
            table.add(SystemCostRates.from_dict(item))
        return table

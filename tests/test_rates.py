"""Tests for versioned system cost rate tables."""

import json
from datetime import date
from decimal import Decimal

import pytest

from trip_engine.costing.rates import (
    DEFAULT_SYSTEM_COST_RATES,
    DEFAULT_SYSTEM_COST_REMINDER,
    RateNotFoundError,
    RateTable,
    SystemCostRates,
)
from trip_engine.costing.types import Currency


def _version(effective: str, wages: str) -> dict:
    data = DEFAULT_SYSTEM_COST_RATES[Currency.ZAR].to_dict()
    data["effective_date"] = effective
    data["per_day_costs"]["wages"] = wages
    data["updated_by"] = "finance"
    return data


class TestDefaults:
    def test_both_currencies_available(self):
        table = RateTable()
        assert table.currencies() == [Currency.USD, Currency.ZAR]

    def test_default_usd_values(self):
        usd = RateTable().resolve("USD", date(2024, 1, 1))
        assert usd.per_km_costs.repair_maintenance == Decimal("0.11")
        assert usd.per_day_costs.depreciation == Decimal("321.17")

    def test_totals(self):
        zar = DEFAULT_SYSTEM_COST_RATES[Currency.ZAR]
        assert zar.per_km_total == Decimal("2.69")
        assert zar.per_day_total == Decimal("1359.28")


class TestResolve:
    """Resolution picks the newest version effective on the date."""

    def test_newest_effective_version_wins(self):
        table = RateTable()
        table.add(SystemCostRates.from_dict(_version("2024-07-01", "320.00")))

        assert table.resolve("ZAR", date(2024, 6, 30)).per_day_costs.wages == Decimal("300.15")
        assert table.resolve("ZAR", date(2024, 7, 1)).per_day_costs.wages == Decimal("320.00")

    def test_no_version_effective(self):
        table = RateTable(versions=[SystemCostRates.from_dict(_version("2024-07-01", "320"))])

        with pytest.raises(RateNotFoundError) as exc_info:
            table.resolve("ZAR", date(2024, 1, 1))

        assert exc_info.value.currency == "ZAR"

    def test_unknown_currency_has_no_versions(self):
        table = RateTable(versions=[])
        with pytest.raises(RateNotFoundError):
            table.resolve(Currency.USD, date(2024, 1, 1))


class TestFromFile:
    def test_loads_versions_over_defaults(self, tmp_path):
        path = tmp_path / "rates.json"
        path.write_text(json.dumps([_version("2025-01-01", "350.00")]))

        table = RateTable.from_file(path)

        assert len(table.versions("ZAR")) == 2
        assert table.resolve("ZAR", date(2025, 2, 1)).updated_by == "finance"

    def test_without_defaults(self, tmp_path):
        path = tmp_path / "rates.json"
        path.write_text(json.dumps([_version("2025-01-01", "350.00")]))

        table = RateTable.from_file(path, include_defaults=False)

        assert table.currencies() == [Currency.ZAR]


class TestReminder:
    def test_default_interval(self):
        assert DEFAULT_SYSTEM_COST_REMINDER.reminder_frequency_days == 30
        assert DEFAULT_SYSTEM_COST_REMINDER.next_reminder_date(date(2024, 6, 1)) == date(2024, 7, 1)

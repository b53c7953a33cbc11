"""Tests for the trip engine CLI."""

import json
from datetime import date
from decimal import Decimal

import pytest

from trip_engine.cli import TripCli
from trip_engine.costing.rates import RateTable, SystemCostRates


@pytest.fixture
def cli():
    return TripCli(rates=RateTable())


class TestCli:
    def test_no_command_prints_help(self, cli, capsys):
        assert cli.run([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_categories_exclude_system_costs(self, cli, capsys):
        assert cli.run(["categories", "--json"]) == 0

        categories = json.loads(capsys.readouterr().out)
        assert "System Costs" not in categories
        assert "Gate Pass" in categories["Border Costs"]

    def test_categories_mark_high_risk(self, cli, capsys):
        cli.run(["categories"])

        assert "Border Costs  [high risk]" in capsys.readouterr().out

    def test_rates_json(self, cli, capsys):
        assert cli.run(["rates", "--currency", "zar", "--as-of", "2024-06-01", "--json"]) == 0

        data = json.loads(capsys.readouterr().out)
        assert data["currency"] == "ZAR"
        assert Decimal(data["per_km_costs"]["repair_maintenance"]) == Decimal("2.05")

    def test_rates_missing_version(self, capsys):
        future = SystemCostRates.from_dict(
            {**RateTable().resolve("USD").to_dict(), "effective_date": "2030-01-01"}
        )
        cli = TripCli(rates=RateTable(versions=[future]))

        assert cli.run(["rates", "--currency", "USD", "--as-of", "2024-01-01"]) == 1
        assert "No system cost rates" in capsys.readouterr().err

    def test_preview_system_costs(self, cli, capsys):
        code = cli.run(
            [
                "preview-system-costs",
                "--currency", "ZAR",
                "--start", "2024-06-01T08:00:00+00:00",
                "--end", "2024-06-05T17:00:00+00:00",
                "--distance", "500",
                "--as-of", date(2024, 6, 1).isoformat(),
            ]
        )

        out = capsys.readouterr().out
        assert code == 0
        assert "5 day(s), 500 km (ZAR)" in out
        assert "8,141.40" in out

    def test_preview_rejects_reversed_dates(self, cli, capsys):
        code = cli.run(
            [
                "preview-system-costs",
                "--currency", "ZAR",
                "--start", "2024-06-05T00:00:00",
                "--end", "2024-06-01T00:00:00",
            ]
        )

        assert code == 1
        assert "--end" in capsys.readouterr().err

    def test_invalid_currency_exits(self, cli):
        with pytest.raises(SystemExit):
            cli.run(["rates", "--currency", "EUR"])

    @pytest.mark.parametrize(
        ("external", "expected", "code"),
        [("In Transit", "active", 0), ("delivered", "completed", 0), ("lost", "", 1)],
    )
    def test_normalize_status(self, cli, capsys, external, expected, code):
        assert cli.run(["normalize-status", external]) == code
        assert capsys.readouterr().out.strip() == expected

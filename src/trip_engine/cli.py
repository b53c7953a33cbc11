"""Trip engine command line interface.

Operational tools for:
- Listing the cost taxonomy
- Showing the system cost rates in effect
- Previewing system costs for a planned trip
- Normalizing external booking statuses
- Creating the database schema

Usage:
    python -m trip_engine.cli categories
    python -m trip_engine.cli rates --currency ZAR --as-of 2024-06-01
    python -m trip_engine.cli preview-system-costs --currency ZAR --distance 500
        --start 2024-06-01 --end 2024-06-05
    python -m trip_engine.cli normalize-status in_transit
    python -m trip_engine.cli init-db
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from trip_engine.config import get_settings
from trip_engine.costing.rates import RateNotFoundError, RateTable
from trip_engine.costing.system_costs import SystemCostGenerator
from trip_engine.costing.taxonomy import CostTaxonomy
from trip_engine.costing.types import Currency, Trip, parse_datetime
from trip_engine.errors import ValidationError
from trip_engine.services.import_reconciliation import normalize_status


def parse_decimal(s: str) -> Decimal:
    """Parse a non-negative decimal argument."""
    try:
        value = Decimal(s)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {s}") from None
    if not value.is_finite() or value < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0: {s}")
    return value


def parse_currency(s: str) -> Currency:
    try:
        return Currency(s.upper())
    except ValueError:
        raise argparse.ArgumentTypeError(f"unsupported currency: {s}") from None


class TripCli:
    """Trip engine Command Line Interface."""

    def __init__(self, rates: RateTable | None = None, taxonomy: CostTaxonomy | None = None):
        self._rates = rates
        self.taxonomy = taxonomy or CostTaxonomy()
        self.parser = self._build_parser()

    @property
    def rates(self) -> RateTable:
        if self._rates is None:
            path = get_settings().system_cost_rates_file
            self._rates = RateTable.from_file(path) if path else RateTable()
        return self._rates

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m trip_engine.cli",
            description="Trip engine operational tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        categories = subparsers.add_parser(
            "categories",
            help="List cost categories available for manual entries",
        )
        categories.add_argument("--json", action="store_true", help="Output as JSON")

        rates = subparsers.add_parser(
            "rates",
            help="Show the system cost rates in effect",
        )
        rates.add_argument("--currency", type=parse_currency, required=True, help="USD or ZAR")
        rates.add_argument(
            "--as-of",
            type=date.fromisoformat,
            help="Resolve the version in effect on this date (default: today)",
        )
        rates.add_argument("--json", action="store_true", help="Output as JSON")

        preview = subparsers.add_parser(
            "preview-system-costs",
            help="Preview the system costs a trip would receive",
        )
        preview.add_argument("--currency", type=parse_currency, required=True, help="USD or ZAR")
        preview.add_argument("--start", type=parse_datetime, required=True, help="Trip start (ISO)")
        preview.add_argument("--end", type=parse_datetime, required=True, help="Trip end (ISO)")
        preview.add_argument(
            "--distance", type=parse_decimal, default=Decimal("0"), help="Distance in km"
        )
        preview.add_argument("--as-of", type=date.fromisoformat, help="Rate date (default: today)")

        normalize = subparsers.add_parser(
            "normalize-status",
            help="Map an external booking status onto the trip lifecycle",
        )
        normalize.add_argument("status", help="External status value")

        subparsers.add_parser(
            "init-db",
            help="Create missing tables in DATABASE_URL",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[..., int]] = {
            "categories": self._cmd_categories,
            "rates": self._cmd_rates,
            "preview-system-costs": self._cmd_preview_system_costs,
            "normalize-status": self._cmd_normalize_status,
            "init-db": self._cmd_init_db,
        }

        handler = handlers.get(parsed.command)
        if handler:
            return handler(parsed)

        print(f"Unknown command: {parsed.command}", file=sys.stderr)
        return 1

    def _cmd_categories(self, args: argparse.Namespace) -> int:
        categories = self.taxonomy.manual_categories()
        if args.json:
            print(json.dumps({k: list(v) for k, v in categories.items()}, indent=2))
            return 0

        for name, subs in categories.items():
            marker = "  [high risk]" if self.taxonomy.is_high_risk(name) else ""
            print(f"{name}{marker}")
            for sub in subs:
                print(f"  - {sub}")
        return 0

    def _resolve(self, currency: Currency, as_of: date | None) -> Any:
        try:
            return self.rates.resolve(currency, as_of or date.today())
        except RateNotFoundError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return None

    def _cmd_rates(self, args: argparse.Namespace) -> int:
        rates = self._resolve(args.currency, args.as_of)
        if rates is None:
            return 1
        if args.json:
            print(json.dumps(rates.to_dict(), indent=2))
            return 0

        print(f"System cost rates ({rates.currency.value})")
        print(f"  Effective: {rates.effective_date.isoformat()}  by {rates.updated_by}")
        print("\n  Per km:")
        for name, rate in rates.per_km_items():
            print(f"    {name:<26} {rate:>10.2f}")
        print("\n  Per day:")
        for name, rate in rates.per_day_items():
            print(f"    {name:<26} {rate:>10.2f}")
        return 0

    def _cmd_preview_system_costs(self, args: argparse.Namespace) -> int:
        if args.end < args.start:
            print("ERROR: --end must not be before --start", file=sys.stderr)
            return 1
        rates = self._resolve(args.currency, args.as_of)
        if rates is None:
            return 1

        trip = Trip(
            trip_id="preview",
            fleet_number="-",
            route="-",
            driver_name="-",
            client_name="-",
            start_date=args.start,
            end_date=args.end,
            base_revenue=Decimal("0"),
            revenue_currency=args.currency,
            distance_km=args.distance,
        )
        entries = SystemCostGenerator.generate(trip, rates, entry_date=args.as_of)
        days = SystemCostGenerator.duration_days(args.start, args.end)

        print(f"System costs for {days} day(s), {args.distance} km ({args.currency.value})")
        print("=" * 60)
        for entry in entries:
            print(f"  {entry.sub_category:<30} {entry.amount:>12,.2f}  {entry.calculation_details}")
        print("-" * 60)
        print(f"  {'Total':<30} {SystemCostGenerator.total(entries):>12,.2f}")
        return 0

    def _cmd_normalize_status(self, args: argparse.Namespace) -> int:
        try:
            status = normalize_status(args.status)
        except ValidationError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        print(status.value)
        return 0

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        from trip_engine.database import create_schema, get_engine

        async def _create() -> None:
            engine = get_engine()
            try:
                await create_schema(engine)
            finally:
                await engine.dispose()

        asyncio.run(_create())
        print("Schema is up to date.")
        return 0


def main() -> int:
    """CLI entry point."""
    cli = TripCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())

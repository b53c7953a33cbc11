"""Read-only catalog endpoints: cost taxonomy and system cost rates."""

from datetime import date
from typing import Annotated, Any

from fastapi import APIRouter, Query

from trip_engine.api.dependencies import Rates, Taxonomy
from trip_engine.costing.rates import RateNotFoundError
from trip_engine.errors import ValidationError

router = APIRouter(tags=["catalog"])


@router.get("/cost-categories")
async def list_cost_categories(taxonomy: Taxonomy) -> dict[str, Any]:
    """Categories available for manual entries, plus the high-risk set."""
    return {
        "categories": {k: list(v) for k, v in taxonomy.manual_categories().items()},
        "high_risk": sorted(taxonomy.high_risk),
    }


@router.get("/system-cost-rates/{currency}")
async def get_system_cost_rates(
    currency: str,
    rates: Rates,
    as_of: Annotated[date | None, Query()] = None,
) -> dict[str, Any]:
    """Rate version in effect for a currency on a date (default: today)."""
    try:
        resolved = rates.resolve(currency.upper(), as_of or date.today())
    except (RateNotFoundError, ValueError) as exc:
        raise ValidationError.single("currency", str(exc)) from exc
    return resolved.to_dict()

"""Cost rules: taxonomy, rates, validation and system cost generation."""

from trip_engine.costing.rates import (
    DEFAULT_SYSTEM_COST_RATES,
    RateNotFoundError,
    RateTable,
    SystemCostRates,
)
from trip_engine.costing.system_costs import SystemCostGenerator
from trip_engine.costing.taxonomy import CostTaxonomy
from trip_engine.costing.validator import CostValidationResult, CostValidator

__all__ = [
    "DEFAULT_SYSTEM_COST_RATES",
    "RateNotFoundError",
    "RateTable",
    "SystemCostRates",
    "SystemCostGenerator",
    "CostTaxonomy",
    "CostValidationResult",
    "CostValidator",
]

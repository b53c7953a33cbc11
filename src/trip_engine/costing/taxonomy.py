"""Cost category taxonomy.

The taxonomy is injected into the validator rather than read from a module
global, so tests and deployments can substitute their own mapping.
"""

from __future__ import annotations

from collections.abc import Mapping

SYSTEM_COSTS_CATEGORY = "System Costs"

HIGH_RISK_CATEGORIES = frozenset({"Non-Value-Added Costs", "Border Costs"})

# Sub-category names produced by the system cost generator
SYSTEM_PER_KM_SUBCATEGORIES = {
    "repair_maintenance": "Repair & Maintenance per KM",
    "tyre_cost": "Tyre Cost per KM",
}
SYSTEM_PER_DAY_SUBCATEGORIES = {
    "git_insurance": "GIT Insurance",
    "short_term_insurance": "Short-Term Insurance",
    "tracking_cost": "Tracking Cost",
    "fleet_management_system": "Fleet Management System",
    "licensing": "Licensing",
    "vid_roadworthy": "VID / Roadworthy",
    "wages": "Wages",
    "depreciation": "Depreciation",
}

DEFAULT_COST_CATEGORIES: dict[str, tuple[str, ...]] = {
    "Border Costs": (
        "Beitbridge Border Fee",
        "Gate Pass",
        "Coupon",
        "Carbon Tax Horse",
        "CVG Horse",
        "CVG Trailer",
        "Insurance (1 Month Horse)",
        "Insurance (3 Months Trailer)",
        "Insurance (2 Months Trailer)",
        "Insurance (1 Month Trailer)",
        "Carbon Tax (3 Months Horse)",
        "Carbon Tax (2 Months Horse)",
        "Carbon Tax (1 Month Horse)",
        "Carbon Tax (3 Months Trailer)",
        "Carbon Tax (2 Months Trailer)",
        "Carbon Tax (1 Month Trailer)",
        "Road Access",
        "Bridge Fee",
        "Road Toll Fee",
        "Counseling Leavy",
        "Transit Permit Horse",
        "Transit Permit Trailer",
        "National Road Safety Fund Horse",
        "National Road Safety Fund Trailer",
        "Electronic Seal",
        "EME Permit",
        "Zim Clearing",
        "Zim Supervision",
        "SA Clearing",
        "Runner Fee Beitbridge",
        "Runner Fee Zambia Kazungula",
        "Runner Fee Chirundu",
    ),
    "Parking": (
        "Bubi",
        "Lunde",
        "Mvuma",
        "Gweru",
        "Kadoma",
        "Chegutu",
        "Norton",
        "Harare",
        "Ruwa",
        "Marondera",
        "Rusape",
        "Mutare",
        "Nyanga",
        "Bindura",
        "Shamva",
        "Centenary",
        "Guruve",
        "Karoi",
        "Chinhoyi",
        "Kariba",
        "Hwange",
        "Victoria Falls",
        "Bulawayo",
        "Gwanda",
        "Beitbridge",
        "Masvingo",
        "Zvishavane",
        "Shurugwi",
        "Kwekwe",
    ),
    "Diesel": (
        "ACM Petroleum Chirundu - Reefer",
        "ACM Petroleum Chirundu - Horse",
        "RAM Petroleum Harare - Reefer",
        "RAM Petroleum Harare - Horse",
        "Engen Beitbridge - Reefer",
        "Engen Beitbridge - Horse",
        "Shell Mutare - Reefer",
        "Shell Mutare - Horse",
        "BP Bulawayo - Reefer",
        "BP Bulawayo - Horse",
        "Total Gweru - Reefer",
        "Total Gweru - Horse",
        "Puma Masvingo - Reefer",
        "Puma Masvingo - Horse",
        "Zuva Petroleum Kadoma - Reefer",
        "Zuva Petroleum Kadoma - Horse",
        "Mobil Chinhoyi - Reefer",
        "Mobil Chinhoyi - Horse",
        "Caltex Kwekwe - Reefer",
        "Caltex Kwekwe - Horse",
    ),
    "Non-Value-Added Costs": (
        "Fines",
        "Penalties",
        "Passport Stamping",
        "Push Documents",
        "Jump Queue",
        "Dismiss Inspection",
        "Parcels",
        "Labour",
    ),
    "Trip Allowances": ("Food", "Airtime", "Taxi"),
    "Tolls": (
        "Tolls BB to JHB",
        "Tolls Cape Town to JHB",
        "Tolls JHB to CPT",
        "Tolls Mutare to BB",
        "Tolls JHB to Martinsdrift",
        "Tolls BB to Harare",
        "Tolls Zambia",
    ),
    SYSTEM_COSTS_CATEGORY: tuple(SYSTEM_PER_KM_SUBCATEGORIES.values())
    + tuple(SYSTEM_PER_DAY_SUBCATEGORIES.values()),
}


class CostTaxonomy:
    """Closed mapping of category -> sub-categories.

    The ``System Costs`` category is reserved: it is part of the taxonomy
    (so generated entries are well-formed) but manual entries may not use it.
    """

    def __init__(
        self,
        categories: Mapping[str, tuple[str, ...] | list[str]] | None = None,
        high_risk: frozenset[str] | set[str] = HIGH_RISK_CATEGORIES,
    ):
        source = DEFAULT_COST_CATEGORIES if categories is None else categories
        self._categories = {name: tuple(subs) for name, subs in source.items()}
        self.high_risk = frozenset(high_risk)

    @property
    def categories(self) -> list[str]:
        return list(self._categories)

    def sub_categories(self, category: str) -> tuple[str, ...]:
        return self._categories.get(category, ())

    def has_category(self, category: str) -> bool:
        return category in self._categories

    def contains(self, category: str, sub_category: str) -> bool:
        return sub_category in self._categories.get(category, ())

    def is_reserved(self, category: str) -> bool:
        return category == SYSTEM_COSTS_CATEGORY

    def is_high_risk(self, category: str) -> bool:
        return category in self.high_risk

    def manual_categories(self) -> dict[str, tuple[str, ...]]:
        """Categories available for manual entry."""
        return {
            name: subs for name, subs in self._categories.items() if not self.is_reserved(name)
        }

    def as_dict(self) -> dict[str, list[str]]:
        return {name: list(subs) for name, subs in self._categories.items()}

"""Cost entry validation and automatic flagging.

Rules 1-5 are hard validation: every failure is collected and returned
together. Flag rules only run on an entry that passed validation, and
their results are ORed:

1. category/sub-category belong to the taxonomy ("System Costs" is reserved)
2. amount is a number > 0
3. reference number, date and currency are present
4. reference number is unique (case-insensitive) among manual entries
5. at least one attachment or a no-document reason
6. high-risk category -> flag
7. no attachment but a no-document reason -> flag
8. caller-requested flag (reason mandatory); its reason wins
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from trip_engine.costing.taxonomy import CostTaxonomy
from trip_engine.costing.types import (
    CostEntry,
    CostEntryDraft,
    Currency,
    InvestigationStatus,
    parse_date,
    round_money,
)
from trip_engine.errors import FieldError, ValidationError

logger = logging.getLogger(__name__)

HIGH_RISK_FLAG_REASON = "high-risk category requires review"
MISSING_DOCUMENTATION_PREFIX = "missing documentation: "


@dataclass(frozen=True)
class FlagDecision:
    """Outcome of the flag rules for a valid entry."""

    is_flagged: bool
    reason: str | None = None
    triggered_by: tuple[str, ...] = ()


@dataclass(frozen=True)
class CostValidationResult:
    """Either a normalized entry or the full list of failures."""

    entry: CostEntry | None = None
    errors: list[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.entry is not None and not self.errors

    def raise_for_errors(self) -> CostEntry:
        if not self.ok:
            raise ValidationError(self.errors)
        return self.entry


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def parse_amount(value: Any) -> Decimal | None:
    """Parse an amount, returning None when it is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


class CostValidator:
    """Validates manual cost entries against the injected taxonomy."""

    def __init__(self, taxonomy: CostTaxonomy | None = None):
        self.taxonomy = taxonomy or CostTaxonomy()

    # ----- rules 1-5 -----

    def _check_category(self, category: str, sub_category: str) -> list[FieldError]:
        errors: list[FieldError] = []
        if not category:
            errors.append(FieldError("category", "Category is required"))
        elif self.taxonomy.is_reserved(category):
            errors.append(
                FieldError("category", f"'{category}' is reserved for system-generated costs")
            )
        elif not self.taxonomy.has_category(category):
            errors.append(FieldError("category", f"Unknown category '{category}'"))

        if not sub_category:
            errors.append(FieldError("sub_category", "Sub-category is required"))
        elif category and self.taxonomy.has_category(category) and not self.taxonomy.contains(
            category, sub_category
        ):
            errors.append(
                FieldError(
                    "sub_category",
                    f"'{sub_category}' is not a sub-category of '{category}'",
                )
            )
        return errors

    @staticmethod
    def _check_amount(raw: Any) -> tuple[Decimal | None, list[FieldError]]:
        amount = parse_amount(raw)
        if amount is None:
            return None, [FieldError("amount", "Amount must be a valid number")]
        amount = round_money(amount)
        if amount <= 0:
            return None, [FieldError("amount", "Amount must be greater than 0")]
        return amount, []

    @staticmethod
    def _check_required(draft: CostEntryDraft) -> tuple[Any, Currency | None, list[FieldError]]:
        errors: list[FieldError] = []
        if not _text(draft.reference_number):
            errors.append(FieldError("reference_number", "Reference number is required"))

        entry_date = None
        if draft.date in (None, ""):
            errors.append(FieldError("date", "Date is required"))
        else:
            try:
                entry_date = parse_date(draft.date)
            except ValueError:
                errors.append(FieldError("date", "Date must be an ISO date"))

        currency = None
        if not _text(draft.currency):
            errors.append(FieldError("currency", "Currency is required"))
        else:
            try:
                currency = Currency(_text(draft.currency).upper())
            except ValueError:
                errors.append(FieldError("currency", f"Unsupported currency '{draft.currency}'"))
        return entry_date, currency, errors

    @staticmethod
    def _check_duplicate_reference(
        reference_number: str,
        existing_costs: Iterable[CostEntry],
        exclude_cost_id: str | None = None,
    ) -> list[FieldError]:
        needle = reference_number.strip().casefold()
        if not needle:
            return []
        for cost in existing_costs:
            if cost.is_system_generated or cost.cost_id == exclude_cost_id:
                continue
            if cost.reference_number.strip().casefold() == needle:
                return [
                    FieldError(
                        "reference_number",
                        f"Reference number '{reference_number}' is already used on this trip",
                    )
                ]
        return []

    @staticmethod
    def _check_documentation(
        attachments_present: bool, no_document_reason: str
    ) -> list[FieldError]:
        if not attachments_present and not no_document_reason:
            return [
                FieldError(
                    "attachments",
                    "Attach a receipt or provide a reason for missing documentation",
                )
            ]
        return []

    # ----- rules 6-8 -----

    def decide_flag(
        self,
        category: str,
        attachments_present: bool,
        no_document_reason: str,
        flag_requested: bool = False,
        flag_reason: str = "",
    ) -> FlagDecision:
        """Apply the flag rules to an entry that passed validation."""
        triggered: list[str] = []
        reasons: list[str] = []

        if flag_requested:
            triggered.append("manual")
            reasons.append(flag_reason)
        if self.taxonomy.is_high_risk(category):
            triggered.append("high_risk_category")
            reasons.append(HIGH_RISK_FLAG_REASON)
        if not attachments_present and no_document_reason:
            triggered.append("missing_documentation")
            reasons.append(f"{MISSING_DOCUMENTATION_PREFIX}{no_document_reason}")

        if not triggered:
            return FlagDecision(is_flagged=False)
        return FlagDecision(is_flagged=True, reason=reasons[0], triggered_by=tuple(triggered))

    # ----- entry points -----

    def validate(
        self,
        trip_id: str,
        existing_costs: Iterable[CostEntry],
        proposed: CostEntryDraft,
        attachments_present: bool | None = None,
        actor: str | None = None,
        now: datetime | None = None,
    ) -> CostValidationResult:
        """Validate a proposed manual entry and decide its flag state.

        Args:
            trip_id: Owning trip
            existing_costs: Current cost collection of the trip
            proposed: The caller's draft
            attachments_present: Overrides ``bool(proposed.attachments)`` when
                the attachments are uploaded separately
            actor: Identity stamped on flagged entries
            now: Advisory timestamp for ``flagged_at``

        Returns:
            CostValidationResult with the entry or every failure found
        """
        existing_costs = list(existing_costs)
        category = _text(proposed.category)
        sub_category = _text(proposed.sub_category)
        reference_number = _text(proposed.reference_number)
        no_document_reason = _text(proposed.no_document_reason)
        flag_reason = _text(proposed.flag_reason)
        if attachments_present is None:
            attachments_present = bool(proposed.attachments)

        errors = self._check_category(category, sub_category)
        amount, amount_errors = self._check_amount(proposed.amount)
        errors.extend(amount_errors)
        entry_date, currency, required_errors = self._check_required(proposed)
        errors.extend(required_errors)
        errors.extend(self._check_duplicate_reference(reference_number, existing_costs))
        errors.extend(self._check_documentation(attachments_present, no_document_reason))
        if proposed.flag_requested and not flag_reason:
            errors.append(
                FieldError("flag_reason", "Flag reason is required when manually flagging a cost")
            )

        if errors:
            return CostValidationResult(errors=errors)

        decision = self.decide_flag(
            category,
            attachments_present,
            no_document_reason,
            flag_requested=proposed.flag_requested,
            flag_reason=flag_reason,
        )
        now = now or datetime.now(timezone.utc)

        entry = CostEntry(
            trip_id=trip_id,
            category=category,
            sub_category=sub_category,
            amount=amount,
            currency=currency,
            reference_number=reference_number,
            date=entry_date,
            notes=_text(proposed.notes) or None,
            attachments=list(proposed.attachments),
            is_flagged=decision.is_flagged,
            flag_reason=decision.reason,
            no_document_reason=no_document_reason or None,
            investigation_status=InvestigationStatus.PENDING if decision.is_flagged else None,
            flagged_at=now if decision.is_flagged else None,
            flagged_by=actor if decision.is_flagged else None,
        )
        if decision.is_flagged:
            logger.info(
                "Cost %s on trip %s flagged (%s)",
                reference_number,
                trip_id,
                ", ".join(decision.triggered_by),
            )
        return CostValidationResult(entry=entry)

    def validate_update(
        self,
        existing_costs: Iterable[CostEntry],
        current: CostEntry,
        changes: dict[str, Any],
    ) -> tuple[dict[str, Any], list[FieldError]]:
        """Validate an edit of an existing manual entry.

        Returns the normalized field values and any failures. The entry
        itself is excluded from the duplicate-reference check.
        """
        if current.is_system_generated:
            return {}, [FieldError("cost_id", "System-generated costs cannot be edited")]

        allowed = {
            "category",
            "sub_category",
            "amount",
            "currency",
            "reference_number",
            "date",
            "notes",
            "no_document_reason",
        }
        unknown = sorted(set(changes) - allowed)
        if unknown:
            return {}, [FieldError(name, "Field cannot be edited") for name in unknown]

        merged = CostEntryDraft(
            category=changes.get("category", current.category),
            sub_category=changes.get("sub_category", current.sub_category),
            amount=changes.get("amount", current.amount),
            currency=changes.get("currency", current.currency.value),
            reference_number=changes.get("reference_number", current.reference_number),
            date=changes.get("date", current.date),
            notes=changes.get("notes", current.notes),
            no_document_reason=changes.get("no_document_reason", current.no_document_reason),
        )
        category = _text(merged.category)
        sub_category = _text(merged.sub_category)
        errors = self._check_category(category, sub_category)
        amount, amount_errors = self._check_amount(merged.amount)
        errors.extend(amount_errors)
        entry_date, currency, required_errors = self._check_required(merged)
        errors.extend(required_errors)
        errors.extend(
            self._check_duplicate_reference(
                _text(merged.reference_number), existing_costs, exclude_cost_id=current.cost_id
            )
        )
        errors.extend(
            self._check_documentation(bool(current.attachments), _text(merged.no_document_reason))
        )
        if errors:
            return {}, errors

        normalized = {
            "category": category,
            "sub_category": sub_category,
            "amount": amount,
            "currency": currency,
            "reference_number": _text(merged.reference_number),
            "date": entry_date,
            "notes": _text(merged.notes) or None,
            "no_document_reason": _text(merged.no_document_reason) or None,
        }
        return {k: v for k, v in normalized.items() if k in changes}, []

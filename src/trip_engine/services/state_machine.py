"""Trip lifecycle state machine with transition gates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Iterable

from trip_engine.costing.types import (
    ChangeType,
    ClientType,
    CostEntry,
    EditRecord,
    PaymentStatus,
    TripStatus,
    parse_date,
    parse_datetime,
    parse_decimal,
    round_money,
)
from trip_engine.errors import FieldError, GateViolation, ValidationError
from trip_engine.services.audit import audit_trip_change

if TYPE_CHECKING:
    from trip_engine.costing.types import Trip
    from trip_engine.services.audit import AuditRecorder

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _non_empty_text(value: Any) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValueError("must not be empty")
    return text


def _optional_text(value: Any) -> str | None:
    text = str(value).strip() if value is not None else ""
    return text or None


def _non_negative_decimal(value: Any) -> Decimal:
    amount = parse_decimal(value)
    if amount is None or not amount.is_finite() or amount < 0:
        raise ValueError("must be a number >= 0")
    return amount


def _money_amount(value: Any) -> Decimal:
    return round_money(_non_negative_decimal(value))


def _required_datetime(value: Any) -> datetime:
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError("is required")
    return parsed


@dataclass(frozen=True)
class InvoiceApproval:
    """Token issued by the invoice submission gate.

    ``TripStateMachine.mark_invoiced`` only accepts a trip together with an
    approval issued for that trip.
    """

    trip_id: str
    values: dict[str, Any] = field(default_factory=dict)


class TripStateMachine:
    """State machine for trip status transitions.

    Allowed transitions:
    - active → completed (no unresolved flags)
    - completed → invoiced (via InvoiceSubmissionGate only)
    - invoiced → paid (full payment recorded)

    Status never moves backwards.
    """

    ORDER: list[TripStatus] = [
        TripStatus.ACTIVE,
        TripStatus.COMPLETED,
        TripStatus.INVOICED,
        TripStatus.PAID,
    ]

    VALID_TRANSITIONS: dict[str, list[str]] = {
        TripStatus.ACTIVE: [TripStatus.COMPLETED],
        TripStatus.COMPLETED: [TripStatus.INVOICED],
        TripStatus.INVOICED: [TripStatus.PAID],
        TripStatus.PAID: [],  # Terminal state
    }

    # Statuses where cost entries may be added, edited or investigated
    COSTS_MUTABLE = {TripStatus.ACTIVE}

    # Statuses where trip fields may be edited (with a reason)
    FIELDS_EDITABLE = {TripStatus.ACTIVE, TripStatus.COMPLETED}

    # Statuses where additional costs may be appended
    ADDITIONAL_COSTS_ALLOWED = {TripStatus.COMPLETED, TripStatus.INVOICED, TripStatus.PAID}

    # Field name -> parser for update_fields
    EDITABLE_FIELDS: dict[str, Callable[[Any], Any]] = {
        "route": _non_empty_text,
        "description": _optional_text,
        "driver_name": _non_empty_text,
        "client_name": _non_empty_text,
        "fleet_number": _non_empty_text,
        "client_type": ClientType,
        "start_date": _required_datetime,
        "end_date": _required_datetime,
        "distance_km": _non_negative_decimal,
        "base_revenue": _money_amount,
        "planned_arrival_at": parse_datetime,
        "planned_offload_at": parse_datetime,
        "planned_departure_at": parse_datetime,
        "actual_arrival_at": parse_datetime,
        "actual_offload_at": parse_datetime,
        "actual_departure_at": parse_datetime,
    }

    @classmethod
    def rank(cls, status: str) -> int:
        """Position of a status in the lifecycle order."""
        return cls.ORDER.index(TripStatus(status))

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising GateViolation if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise GateViolation(
                TripStatus(from_status).value,
                TripStatus(to_status).value,
                "transition not allowed",
            )

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def can_modify_costs(cls, status: str) -> bool:
        return status in cls.COSTS_MUTABLE

    @classmethod
    def can_edit_fields(cls, status: str) -> bool:
        return status in cls.FIELDS_EDITABLE

    @classmethod
    def can_add_additional_costs(cls, status: str) -> bool:
        return status in cls.ADDITIONAL_COSTS_ALLOWED

    @staticmethod
    def unresolved_flag_count(costs: Iterable[CostEntry]) -> int:
        """Count flagged entries whose investigation is not resolved."""
        return sum(1 for cost in costs if cost.is_unresolved)

    @classmethod
    def can_complete(cls, trip: Trip) -> bool:
        return trip.status == TripStatus.ACTIVE and cls.unresolved_flag_count(trip.costs) == 0

    @classmethod
    def validate_trip_for_transition(cls, trip: Trip, to_status: str) -> list[str]:
        """Validate a trip for a specific transition, returning any errors.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []
        from_status = trip.status

        if not cls.can_transition(from_status, to_status):
            errors.append(
                f"Cannot transition from '{from_status.value}' to '{TripStatus(to_status).value}'"
            )
            return errors

        if to_status == TripStatus.COMPLETED:
            unresolved = cls.unresolved_flag_count(trip.costs)
            if unresolved:
                errors.append(f"{unresolved} flagged cost(s) have unresolved investigations")

        elif to_status == TripStatus.PAID:
            if trip.payment_amount is None or trip.payment_amount <= 0:
                errors.append("Payment amount must be recorded")
            if trip.payment_status != PaymentStatus.PAID:
                errors.append("Payment is not reconciled in full")

        return errors

    # ===== Transitions =====

    @classmethod
    def complete(
        cls,
        trip: Trip,
        actor: str,
        recorder: AuditRecorder,
        reason: str = "",
        now: datetime | None = None,
    ) -> EditRecord:
        """Move an active trip to completed.

        Raises:
            GateViolation: If the trip is not active or has unresolved flags
        """
        errors = cls.validate_trip_for_transition(trip, TripStatus.COMPLETED)
        if errors:
            blocking = cls.unresolved_flag_count(trip.costs) if trip.status == TripStatus.ACTIVE else 0
            raise GateViolation(
                trip.status.value,
                TripStatus.COMPLETED.value,
                "; ".join(errors),
                blocking_count=blocking or None,
            )

        now = now or _utcnow()
        record = audit_trip_change(
            recorder,
            trip,
            "status",
            trip.status,
            TripStatus.COMPLETED,
            ChangeType.COMPLETION,
            actor,
            reason=reason or "Trip completed",
        )
        trip.status = TripStatus.COMPLETED
        trip.completed_at = now
        trip.completed_by = actor
        logger.info("Trip %s completed by %s", trip.trip_id, actor)
        return record

    @classmethod
    def apply_auto_completion(
        cls,
        trip: Trip,
        reason: str,
        actor: str,
        recorder: AuditRecorder,
        at: datetime | None = None,
    ) -> EditRecord:
        """Accept a completion decided by an external investigation resolver.

        The resolver's reason is trusted; the flag-count gate is not applied
        a second time.
        """
        if trip.status != TripStatus.ACTIVE:
            raise GateViolation(
                trip.status.value,
                TripStatus.COMPLETED.value,
                f"trip is {trip.status.value}, expected active",
            )
        if not reason or not reason.strip():
            raise ValidationError.single("reason", "Auto-completion reason is required")

        at = at or _utcnow()
        record = audit_trip_change(
            recorder,
            trip,
            "status",
            trip.status,
            TripStatus.COMPLETED,
            ChangeType.AUTO_COMPLETION,
            actor,
            reason=reason.strip(),
        )
        trip.status = TripStatus.COMPLETED
        trip.auto_completed_at = at
        trip.auto_completed_reason = reason.strip()
        trip.completed_at = at
        trip.completed_by = actor
        logger.info("Trip %s auto-completed: %s", trip.trip_id, reason)
        return record

    @classmethod
    def mark_invoiced(
        cls,
        trip: Trip,
        approval: InvoiceApproval,
        actor: str,
        recorder: AuditRecorder,
    ) -> EditRecord:
        """Apply an approved invoice submission (completed → invoiced)."""
        if not isinstance(approval, InvoiceApproval) or approval.trip_id != trip.trip_id:
            raise GateViolation(
                trip.status.value,
                TripStatus.INVOICED.value,
                "invoice submission has not been approved for this trip",
            )
        cls.validate_transition(trip.status, TripStatus.INVOICED)

        record = audit_trip_change(
            recorder,
            trip,
            "status",
            trip.status,
            TripStatus.INVOICED,
            ChangeType.INVOICE,
            actor,
            reason=f"Invoice {approval.values.get('invoice_number')} submitted",
        )
        for name, value in approval.values.items():
            setattr(trip, name, value)
        trip.status = TripStatus.INVOICED
        logger.info("Trip %s invoiced by %s", trip.trip_id, actor)
        return record

    @classmethod
    def record_payment(
        cls,
        trip: Trip,
        payment_amount: Any,
        payment_status: str,
        actor: str,
        recorder: AuditRecorder,
        received_date: date | str | None = None,
        payment_method: str | None = None,
        bank_reference: str | None = None,
    ) -> EditRecord:
        """Record a payment on an invoiced trip.

        A full payment advances the trip to paid; a partial payment keeps it
        invoiced until reconciled.
        """
        if trip.status != TripStatus.INVOICED:
            raise GateViolation(
                trip.status.value,
                TripStatus.PAID.value,
                f"payments can only be recorded on invoiced trips (current: {trip.status.value})",
            )

        errors: list[FieldError] = []
        try:
            status = PaymentStatus(payment_status)
        except ValueError:
            status = None
        if status not in (PaymentStatus.PAID, PaymentStatus.PARTIAL):
            errors.append(FieldError("payment_status", "Payment status must be 'paid' or 'partial'"))

        amount = None
        try:
            amount = parse_decimal(payment_amount)
        except ArithmeticError:
            amount = None
        if amount is not None and amount.is_finite():
            amount = round_money(amount)
        if amount is None or not amount.is_finite() or amount <= 0:
            errors.append(
                FieldError("payment_amount", "Payment amount is required and must be greater than 0")
            )
            amount = None
        elif amount > trip.base_revenue:
            errors.append(FieldError("payment_amount", "Payment amount cannot exceed invoice amount"))

        try:
            received = parse_date(received_date) or _utcnow().date()
        except ValueError:
            received = None
            errors.append(FieldError("payment_received_date", "Must be an ISO date"))

        if errors:
            raise ValidationError(errors)

        reason = f"Payment of {amount} {trip.revenue_currency.value} recorded"
        if status == PaymentStatus.PAID:
            gate_errors = cls.validate_trip_for_transition(
                replace(trip, payment_amount=amount, payment_status=status), TripStatus.PAID
            )
            if gate_errors:
                raise GateViolation(
                    trip.status.value, TripStatus.PAID.value, "; ".join(gate_errors)
                )
            record = audit_trip_change(
                recorder,
                trip,
                "status",
                trip.status,
                TripStatus.PAID,
                ChangeType.PAYMENT,
                actor,
                reason=reason,
            )
            trip.status = TripStatus.PAID
        else:
            record = audit_trip_change(
                recorder,
                trip,
                "payment_status",
                trip.payment_status,
                status,
                ChangeType.PAYMENT,
                actor,
                reason=reason,
            )

        trip.payment_status = status
        trip.payment_amount = amount
        trip.payment_received_date = received
        trip.payment_method = payment_method
        trip.bank_reference = bank_reference
        return record

    # ===== Field edits =====

    @classmethod
    def update_fields(
        cls,
        trip: Trip,
        changes: dict[str, Any],
        reason: str,
        actor: str,
        recorder: AuditRecorder,
    ) -> list[EditRecord]:
        """Apply field edits, one audit record per changed field.

        Raises:
            GateViolation: If the trip is past the editable statuses
            ValidationError: On a missing reason or bad values
        """
        if not cls.can_edit_fields(trip.status):
            raise GateViolation(
                trip.status.value,
                trip.status.value,
                f"trip fields cannot be edited once {trip.status.value}",
            )

        errors: list[FieldError] = []
        if not reason or not reason.strip():
            errors.append(FieldError("reason", "An edit reason is required"))

        parsed: dict[str, Any] = {}
        for name, raw in changes.items():
            if name == "status":
                errors.append(
                    FieldError("status", "Status changes go through lifecycle transitions")
                )
                continue
            parser = cls.EDITABLE_FIELDS.get(name)
            if parser is None:
                errors.append(FieldError(name, "Field cannot be edited"))
                continue
            try:
                parsed[name] = parser(raw)
            except (ValueError, ArithmeticError) as exc:
                errors.append(FieldError(name, f"Invalid value: {exc}"))

        start = parsed.get("start_date", trip.start_date)
        end = parsed.get("end_date", trip.end_date)
        if ("start_date" in parsed or "end_date" in parsed) and start and end and end < start:
            errors.append(FieldError("end_date", "End date must not be before start date"))

        if errors:
            raise ValidationError(errors)

        records: list[EditRecord] = []
        for name, value in parsed.items():
            old = getattr(trip, name)
            if old == value:
                continue
            records.append(
                audit_trip_change(
                    recorder,
                    trip,
                    name,
                    old,
                    value,
                    ChangeType.UPDATE,
                    actor,
                    reason=reason.strip(),
                )
            )
            setattr(trip, name, value)
        return records

    # ===== History =====

    @staticmethod
    def status_history(trip: Trip) -> list[TripStatus]:
        """Reconstruct the sequence of statuses from the edit history."""
        history: list[TripStatus] = []
        for record in trip.edit_history:
            if record.field_changed == "status":
                history.append(TripStatus(record.new_value))
        return history

    @classmethod
    def is_monotonic(cls, history: list[TripStatus]) -> bool:
        ranks = [cls.rank(status) for status in history]
        return all(a <= b for a, b in zip(ranks, ranks[1:]))

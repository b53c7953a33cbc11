"""Trip creation, satellite records and soft deletion."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Callable

from trip_engine.costing.types import (
    AdditionalCost,
    AdditionalCostType,
    Attachment,
    ChangeType,
    ClientType,
    ContactMethod,
    Currency,
    DelayReason,
    DelaySeverity,
    DelayType,
    FollowUpOutcome,
    FollowUpPriority,
    FollowUpRecord,
    FollowUpStatus,
    Trip,
    TripDeletionRecord,
    TripStatus,
    parse_date,
    parse_datetime,
    round_money,
)
from trip_engine.errors import FieldError, GateViolation, ValidationError
from trip_engine.services.audit import audit_trip_change
from trip_engine.services.state_machine import TripStateMachine

if TYPE_CHECKING:
    from trip_engine.services.audit import AuditRecorder


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Fields:
    """Collects parse failures for one record so they are reported together."""

    def __init__(self, data: dict[str, Any]):
        self.data = data
        self.errors: list[FieldError] = []

    def text(self, name: str, required: bool = True) -> str | None:
        value = self.data.get(name)
        text = str(value).strip() if value is not None else ""
        if not text:
            if required:
                self.errors.append(FieldError(name, f"{name} is required"))
            return None
        return text

    def choice(self, name: str, enum: Callable[[str], Any], default: Any = None) -> Any:
        value = self.data.get(name)
        if value in (None, ""):
            if default is None:
                self.errors.append(FieldError(name, f"{name} is required"))
            return default
        try:
            return enum(str(value).strip())
        except ValueError:
            self.errors.append(FieldError(name, f"Unsupported value '{value}'"))
            return default

    def amount(
        self, name: str, required: bool = True, positive: bool = False, money: bool = False
    ) -> Decimal | None:
        value = self.data.get(name)
        if value in (None, ""):
            if required:
                self.errors.append(FieldError(name, f"{name} is required"))
            return None
        try:
            parsed = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            self.errors.append(FieldError(name, "Must be a valid number"))
            return None
        if money and parsed.is_finite():
            parsed = round_money(parsed)
        if not parsed.is_finite() or parsed < 0 or (positive and parsed == 0):
            bound = "greater than 0" if positive else "0 or more"
            self.errors.append(FieldError(name, f"Must be {bound}"))
            return None
        return parsed

    def when(self, name: str, parser: Callable[[Any], Any], required: bool = True) -> Any:
        value = self.data.get(name)
        if value in (None, ""):
            if required:
                self.errors.append(FieldError(name, f"{name} is required"))
            return None
        try:
            return parser(value)
        except ValueError:
            self.errors.append(FieldError(name, "Must be an ISO date"))
            return None

    def raise_for_errors(self) -> None:
        if self.errors:
            raise ValidationError(self.errors)


def create_trip(data: dict[str, Any], actor: str, recorder: AuditRecorder) -> Trip:
    """Create a new active trip from caller input."""
    f = _Fields(data)
    fleet_number = f.text("fleet_number")
    route = f.text("route")
    driver_name = f.text("driver_name")
    client_name = f.text("client_name")
    start = f.when("start_date", parse_datetime)
    end = f.when("end_date", parse_datetime)
    revenue = f.amount("base_revenue", money=True)
    distance = f.amount("distance_km", required=False)
    currency = f.choice("revenue_currency", lambda v: Currency(v.upper()))
    client_type = f.choice("client_type", lambda v: ClientType(v.lower()), ClientType.EXTERNAL)
    timeline = {
        name: f.when(name, parse_datetime, required=False)
        for name in TripStateMachine.EDITABLE_FIELDS
        if name.startswith(("planned_", "actual_"))
    }
    if start and end and end < start:
        f.errors.append(FieldError("end_date", "End date must not be before start date"))
    f.raise_for_errors()

    trip = Trip(
        fleet_number=fleet_number,
        route=route,
        driver_name=driver_name,
        client_name=client_name,
        client_type=client_type,
        description=f.text("description", required=False),
        start_date=start,
        end_date=end,
        base_revenue=revenue,
        revenue_currency=currency,
        distance_km=distance or Decimal("0"),
        booking_source=f.text("booking_source", required=False) or "manual",
        created_by=actor,
    )
    for name, value in timeline.items():
        setattr(trip, name, value)

    audit_trip_change(
        recorder, trip, "status", None, trip.status, ChangeType.CREATION, actor, reason="Trip created"
    )
    return trip


def add_additional_cost(
    trip: Trip,
    data: dict[str, Any],
    actor: str,
    recorder: AuditRecorder,
    supporting_documents: list[Attachment] | None = None,
    now: datetime | None = None,
) -> AdditionalCost:
    """Append an additional cost to a completed (or later) trip."""
    if not TripStateMachine.can_add_additional_costs(trip.status):
        raise GateViolation(
            trip.status.value,
            trip.status.value,
            "additional costs can only be added once a trip is completed",
        )
    f = _Fields(data)
    cost_type = f.choice("cost_type", AdditionalCostType)
    description = f.text("description")
    amount = f.amount("amount", positive=True, money=True)
    currency = f.choice("currency", lambda v: Currency(v.upper()), trip.revenue_currency)
    entry_date = f.when("date", parse_date, required=False)
    f.raise_for_errors()

    now = now or _utcnow()
    record = AdditionalCost(
        trip_id=trip.trip_id,
        cost_type=cost_type,
        description=description,
        amount=amount,
        currency=currency,
        date=entry_date or now.date(),
        added_by=actor,
        added_at=now,
        supporting_documents=tuple(supporting_documents or ()),
        notes=f.text("notes", required=False),
    )
    audit_trip_change(
        recorder,
        trip,
        "additional_costs",
        None,
        f"{cost_type.value}: {amount} {currency.value}",
        ChangeType.ADDITIONAL_COST,
        actor,
        reason=description,
    )
    trip.additional_costs.append(record)
    return record


def add_delay_reason(
    trip: Trip,
    data: dict[str, Any],
    actor: str,
    recorder: AuditRecorder,
    now: datetime | None = None,
) -> DelayReason:
    f = _Fields(data)
    delay_type = f.choice("delay_type", DelayType)
    description = f.text("description")
    hours = f.amount("delay_duration_hours")
    severity = f.choice("severity", DelaySeverity)
    f.raise_for_errors()

    record = DelayReason(
        trip_id=trip.trip_id,
        delay_type=delay_type,
        description=description,
        delay_duration_hours=hours,
        severity=severity,
        reported_by=actor,
        reported_at=now or _utcnow(),
    )
    audit_trip_change(
        recorder,
        trip,
        "delay_reasons",
        None,
        f"{delay_type.value} ({severity.value}, {hours}h)",
        ChangeType.DELAY_REASON,
        actor,
        reason=description,
    )
    trip.delay_reasons.append(record)
    return record


def add_follow_up(
    trip: Trip,
    data: dict[str, Any],
    actor: str,
    recorder: AuditRecorder,
) -> FollowUpRecord:
    """Log a payment follow-up contact on an invoiced trip."""
    if trip.status != TripStatus.INVOICED:
        raise GateViolation(
            trip.status.value,
            trip.status.value,
            "payment follow-ups are only recorded on invoiced trips",
        )
    f = _Fields(data)
    follow_up_date = f.when("follow_up_date", parse_date)
    contact_method = f.choice("contact_method", ContactMethod)
    summary = f.text("response_summary")
    status = f.choice("status", FollowUpStatus, FollowUpStatus.PENDING)
    priority = f.choice("priority", FollowUpPriority, FollowUpPriority.MEDIUM)
    outcome = f.choice("outcome", FollowUpOutcome)
    next_date = f.when("next_follow_up_date", parse_date, required=False)
    if follow_up_date and next_date and next_date < follow_up_date:
        f.errors.append(FieldError("next_follow_up_date", "Next follow-up cannot be earlier"))
    f.raise_for_errors()

    record = FollowUpRecord(
        trip_id=trip.trip_id,
        follow_up_date=follow_up_date,
        contact_method=contact_method,
        responsible_staff=f.text("responsible_staff", required=False) or actor,
        response_summary=summary,
        status=status,
        priority=priority,
        outcome=outcome,
        next_follow_up_date=next_date,
    )
    audit_trip_change(
        recorder,
        trip,
        "last_follow_up_date",
        trip.last_follow_up_date,
        follow_up_date,
        ChangeType.FOLLOW_UP,
        actor,
        reason=f"{contact_method.value}: {outcome.value}",
    )
    trip.follow_up_history.append(record)
    trip.last_follow_up_date = follow_up_date
    return record


def build_deletion_record(
    trip: Trip,
    actor: str,
    reason: str,
    recorder: AuditRecorder,
    now: datetime | None = None,
) -> TripDeletionRecord:
    """Snapshot a trip and mark it deleted. Trips are never hard-deleted."""
    if trip.is_deleted:
        raise ValidationError.single("trip_id", "Trip is already deleted")
    if not reason or not reason.strip():
        raise ValidationError.single("reason", "A deletion reason is required")

    record = TripDeletionRecord(
        trip_id=trip.trip_id,
        deleted_by=actor,
        deleted_at=now or _utcnow(),
        reason=reason.strip(),
        trip_data=json.dumps(trip.to_document(), sort_keys=True),
        total_revenue=trip.base_revenue,
        total_costs=trip.total_costs(),
        cost_entries_count=len(trip.costs),
        flagged_items_count=sum(1 for c in trip.costs if c.is_flagged),
    )
    audit_trip_change(
        recorder,
        trip,
        "deleted",
        False,
        True,
        ChangeType.DELETION,
        actor,
        reason=record.reason,
    )
    trip.deletion_record = record
    return record

"""Type definitions for trips, cost entries and audit records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import uuid4


class TripStatus(str, Enum):
    """Canonical trip status values, in lifecycle order."""

    ACTIVE = "active"
    COMPLETED = "completed"
    INVOICED = "invoiced"
    PAID = "paid"


class Currency(str, Enum):
    """Opaque currency tags. Amounts are never converted."""

    USD = "USD"
    ZAR = "ZAR"


class InvestigationStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"


class SystemCostType(str, Enum):
    PER_KM = "per-km"
    PER_DAY = "per-day"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class ClientType(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"


class AuditEntity(str, Enum):
    TRIP = "trip"
    COST = "cost"


class ChangeType(str, Enum):
    """Audit change-type tags for trip and cost records."""

    CREATION = "creation"
    UPDATE = "update"
    STATUS_CHANGE = "status_change"
    COMPLETION = "completion"
    AUTO_COMPLETION = "auto_completion"
    INVOICE = "invoice"
    PAYMENT = "payment"
    ADDITIONAL_COST = "additional_cost"
    DELAY_REASON = "delay_reason"
    FOLLOW_UP = "follow_up"
    DELETION = "deletion"
    FLAG_STATUS = "flag_status"
    INVESTIGATION = "investigation"
    SYSTEM_GENERATION = "system_generation"
    REMOVAL = "removal"


class AdditionalCostType(str, Enum):
    DEMURRAGE = "demurrage"
    CLEARING_FEES = "clearing_fees"
    TOLL_CHARGES = "toll_charges"
    DETENTION = "detention"
    ESCORT_FEES = "escort_fees"
    STORAGE = "storage"
    OTHER = "other"


class DelayType(str, Enum):
    BORDER_DELAYS = "border_delays"
    BREAKDOWN = "breakdown"
    CUSTOMER_NOT_READY = "customer_not_ready"
    PAPERWORK_ISSUES = "paperwork_issues"
    WEATHER_CONDITIONS = "weather_conditions"
    TRAFFIC = "traffic"
    OTHER = "other"


class DelaySeverity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    CRITICAL = "critical"


class ContactMethod(str, Enum):
    CALL = "call"
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    IN_PERSON = "in_person"
    SMS = "sms"


class FollowUpStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    ESCALATED = "escalated"


class FollowUpPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class FollowUpOutcome(str, Enum):
    NO_RESPONSE = "no_response"
    PROMISED_PAYMENT = "promised_payment"
    DISPUTE = "dispute"
    PAYMENT_RECEIVED = "payment_received"
    PARTIAL_PAYMENT = "partial_payment"


def new_id(prefix: str) -> str:
    """Generate a prefixed opaque identifier."""
    return f"{prefix}-{uuid4().hex[:16]}"


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO datetime string (or pass through datetimes/dates).

    The result is always UTC-aware: naive values and bare dates are taken
    as UTC, offset values are converted.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_date(value: Any) -> date | None:
    """Parse an ISO date string (datetimes are truncated to their date)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value)
    if "T" in text:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    return date.fromisoformat(text)


def parse_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


CENTS = Decimal("0.01")


def round_money(amount: Decimal) -> Decimal:
    """Round a money amount half-up to cents."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def _money(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


# ===== Attachments & cost entries =====


@dataclass
class Attachment:
    """Reference to a stored file. The engine never reads file contents."""

    filename: str
    file_url: str
    file_type: str = "application/octet-stream"
    file_size: int | None = None
    uploaded_at: datetime | None = None
    attachment_id: str = field(default_factory=lambda: new_id("att"))

    def to_document(self) -> dict[str, Any]:
        return {
            "attachment_id": self.attachment_id,
            "filename": self.filename,
            "file_url": self.file_url,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "uploaded_at": _iso(self.uploaded_at),
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> Attachment:
        return cls(
            attachment_id=data.get("attachment_id") or new_id("att"),
            filename=data["filename"],
            file_url=data.get("file_url", ""),
            file_type=data.get("file_type") or "application/octet-stream",
            file_size=data.get("file_size"),
            uploaded_at=parse_datetime(data.get("uploaded_at")),
        )


@dataclass
class CostEntryDraft:
    """A manually proposed cost entry, as received from the caller.

    Values are kept loosely typed (amount may be a string) because
    normalizing them is the validator's job.
    """

    category: str = ""
    sub_category: str = ""
    amount: Any = None
    currency: str | None = None
    reference_number: str = ""
    date: Any = None
    notes: str | None = None
    attachments: list[Attachment] = field(default_factory=list)
    no_document_reason: str | None = None
    flag_requested: bool = False
    flag_reason: str | None = None


@dataclass
class CostEntry:
    """One monetary line item attributed to a trip."""

    trip_id: str
    category: str
    sub_category: str
    amount: Decimal
    currency: Currency
    reference_number: str
    date: date
    notes: str | None = None
    attachments: list[Attachment] = field(default_factory=list)
    is_flagged: bool = False
    flag_reason: str | None = None
    no_document_reason: str | None = None
    investigation_status: InvestigationStatus | None = None
    investigation_notes: str | None = None
    flagged_at: datetime | None = None
    flagged_by: str | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    is_system_generated: bool = False
    system_cost_type: SystemCostType | None = None
    calculation_details: str | None = None
    edit_history: list[EditRecord] = field(default_factory=list)
    cost_id: str = field(default_factory=lambda: new_id("cost"))

    @property
    def is_unresolved(self) -> bool:
        """Flagged and not yet resolved."""
        return self.is_flagged and self.investigation_status != InvestigationStatus.RESOLVED

    @property
    def system_key(self) -> tuple[str, str, str] | None:
        """Upsert key for system-generated entries."""
        if not self.is_system_generated or self.system_cost_type is None:
            return None
        return (self.trip_id, self.system_cost_type.value, self.sub_category)

    def to_document(self) -> dict[str, Any]:
        return {
            "cost_id": self.cost_id,
            "trip_id": self.trip_id,
            "category": self.category,
            "sub_category": self.sub_category,
            "amount": _money(self.amount),
            "currency": self.currency.value,
            "reference_number": self.reference_number,
            "date": _iso(self.date),
            "notes": self.notes,
            "attachments": [a.to_document() for a in self.attachments],
            "is_flagged": self.is_flagged,
            "flag_reason": self.flag_reason,
            "no_document_reason": self.no_document_reason,
            "investigation_status": (
                self.investigation_status.value if self.investigation_status else None
            ),
            "investigation_notes": self.investigation_notes,
            "flagged_at": _iso(self.flagged_at),
            "flagged_by": self.flagged_by,
            "resolved_at": _iso(self.resolved_at),
            "resolved_by": self.resolved_by,
            "is_system_generated": self.is_system_generated,
            "system_cost_type": self.system_cost_type.value if self.system_cost_type else None,
            "calculation_details": self.calculation_details,
            "edit_history": [r.to_document() for r in self.edit_history],
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> CostEntry:
        status = data.get("investigation_status")
        cost_type = data.get("system_cost_type")
        return cls(
            cost_id=data["cost_id"],
            trip_id=data["trip_id"],
            category=data["category"],
            sub_category=data["sub_category"],
            amount=Decimal(str(data["amount"])),
            currency=Currency(data["currency"]),
            reference_number=data["reference_number"],
            date=parse_date(data["date"]),
            notes=data.get("notes"),
            attachments=[Attachment.from_document(a) for a in data.get("attachments", [])],
            is_flagged=bool(data.get("is_flagged", False)),
            flag_reason=data.get("flag_reason"),
            no_document_reason=data.get("no_document_reason"),
            investigation_status=InvestigationStatus(status) if status else None,
            investigation_notes=data.get("investigation_notes"),
            flagged_at=parse_datetime(data.get("flagged_at")),
            flagged_by=data.get("flagged_by"),
            resolved_at=parse_datetime(data.get("resolved_at")),
            resolved_by=data.get("resolved_by"),
            is_system_generated=bool(data.get("is_system_generated", False)),
            system_cost_type=SystemCostType(cost_type) if cost_type else None,
            calculation_details=data.get("calculation_details"),
            edit_history=[EditRecord.from_document(r) for r in data.get("edit_history", [])],
        )


# ===== Audit =====


@dataclass(frozen=True)
class EditRecord:
    """Immutable audit entry for one field mutation of a trip or cost."""

    entity_type: AuditEntity
    entity_id: str
    trip_id: str
    field_changed: str
    old_value: str
    new_value: str
    change_type: ChangeType
    edited_by: str
    edited_at: datetime
    reason: str = ""
    record_id: str = field(default_factory=lambda: new_id("edit"))

    def to_document(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "trip_id": self.trip_id,
            "field_changed": self.field_changed,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "change_type": self.change_type.value,
            "edited_by": self.edited_by,
            "edited_at": _iso(self.edited_at),
            "reason": self.reason,
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> EditRecord:
        return cls(
            record_id=data["record_id"],
            entity_type=AuditEntity(data["entity_type"]),
            entity_id=data["entity_id"],
            trip_id=data["trip_id"],
            field_changed=data["field_changed"],
            old_value=data["old_value"],
            new_value=data["new_value"],
            change_type=ChangeType(data["change_type"]),
            edited_by=data["edited_by"],
            edited_at=parse_datetime(data["edited_at"]),
            reason=data.get("reason", ""),
        )


# ===== Satellite records =====


@dataclass(frozen=True)
class AdditionalCost:
    """Extra charge appended after completion (demurrage, tolls, ...)."""

    trip_id: str
    cost_type: AdditionalCostType
    description: str
    amount: Decimal
    currency: Currency
    date: date
    added_by: str
    added_at: datetime
    supporting_documents: tuple[Attachment, ...] = ()
    notes: str | None = None
    additional_cost_id: str = field(default_factory=lambda: new_id("addcost"))

    def to_document(self) -> dict[str, Any]:
        return {
            "additional_cost_id": self.additional_cost_id,
            "trip_id": self.trip_id,
            "cost_type": self.cost_type.value,
            "description": self.description,
            "amount": _money(self.amount),
            "currency": self.currency.value,
            "date": _iso(self.date),
            "added_by": self.added_by,
            "added_at": _iso(self.added_at),
            "supporting_documents": [a.to_document() for a in self.supporting_documents],
            "notes": self.notes,
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> AdditionalCost:
        return cls(
            additional_cost_id=data["additional_cost_id"],
            trip_id=data["trip_id"],
            cost_type=AdditionalCostType(data["cost_type"]),
            description=data["description"],
            amount=Decimal(str(data["amount"])),
            currency=Currency(data["currency"]),
            date=parse_date(data["date"]),
            added_by=data["added_by"],
            added_at=parse_datetime(data["added_at"]),
            supporting_documents=tuple(
                Attachment.from_document(a) for a in data.get("supporting_documents", [])
            ),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class DelayReason:
    trip_id: str
    delay_type: DelayType
    description: str
    delay_duration_hours: Decimal
    severity: DelaySeverity
    reported_by: str
    reported_at: datetime
    delay_reason_id: str = field(default_factory=lambda: new_id("delay"))

    def to_document(self) -> dict[str, Any]:
        return {
            "delay_reason_id": self.delay_reason_id,
            "trip_id": self.trip_id,
            "delay_type": self.delay_type.value,
            "description": self.description,
            "delay_duration_hours": _money(self.delay_duration_hours),
            "severity": self.severity.value,
            "reported_by": self.reported_by,
            "reported_at": _iso(self.reported_at),
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> DelayReason:
        return cls(
            delay_reason_id=data["delay_reason_id"],
            trip_id=data["trip_id"],
            delay_type=DelayType(data["delay_type"]),
            description=data["description"],
            delay_duration_hours=Decimal(str(data["delay_duration_hours"])),
            severity=DelaySeverity(data["severity"]),
            reported_by=data["reported_by"],
            reported_at=parse_datetime(data["reported_at"]),
        )


@dataclass(frozen=True)
class FollowUpRecord:
    """A payment follow-up contact on an invoiced trip."""

    trip_id: str
    follow_up_date: date
    contact_method: ContactMethod
    responsible_staff: str
    response_summary: str
    status: FollowUpStatus
    priority: FollowUpPriority
    outcome: FollowUpOutcome
    next_follow_up_date: date | None = None
    follow_up_id: str = field(default_factory=lambda: new_id("followup"))

    def to_document(self) -> dict[str, Any]:
        return {
            "follow_up_id": self.follow_up_id,
            "trip_id": self.trip_id,
            "follow_up_date": _iso(self.follow_up_date),
            "contact_method": self.contact_method.value,
            "responsible_staff": self.responsible_staff,
            "response_summary": self.response_summary,
            "status": self.status.value,
            "priority": self.priority.value,
            "outcome": self.outcome.value,
            "next_follow_up_date": _iso(self.next_follow_up_date),
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> FollowUpRecord:
        return cls(
            follow_up_id=data["follow_up_id"],
            trip_id=data["trip_id"],
            follow_up_date=parse_date(data["follow_up_date"]),
            contact_method=ContactMethod(data["contact_method"]),
            responsible_staff=data["responsible_staff"],
            response_summary=data["response_summary"],
            status=FollowUpStatus(data["status"]),
            priority=FollowUpPriority(data["priority"]),
            outcome=FollowUpOutcome(data["outcome"]),
            next_follow_up_date=parse_date(data.get("next_follow_up_date")),
        )


@dataclass(frozen=True)
class TripDeletionRecord:
    """Snapshot taken when a trip is deleted."""

    trip_id: str
    deleted_by: str
    deleted_at: datetime
    reason: str
    trip_data: str
    total_revenue: Decimal
    total_costs: Decimal
    cost_entries_count: int
    flagged_items_count: int
    deletion_id: str = field(default_factory=lambda: new_id("del"))

    def to_document(self) -> dict[str, Any]:
        return {
            "deletion_id": self.deletion_id,
            "trip_id": self.trip_id,
            "deleted_by": self.deleted_by,
            "deleted_at": _iso(self.deleted_at),
            "reason": self.reason,
            "trip_data": self.trip_data,
            "total_revenue": _money(self.total_revenue),
            "total_costs": _money(self.total_costs),
            "cost_entries_count": self.cost_entries_count,
            "flagged_items_count": self.flagged_items_count,
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> TripDeletionRecord:
        return cls(
            deletion_id=data["deletion_id"],
            trip_id=data["trip_id"],
            deleted_by=data["deleted_by"],
            deleted_at=parse_datetime(data["deleted_at"]),
            reason=data["reason"],
            trip_data=data["trip_data"],
            total_revenue=Decimal(str(data["total_revenue"])),
            total_costs=Decimal(str(data["total_costs"])),
            cost_entries_count=int(data["cost_entries_count"]),
            flagged_items_count=int(data["flagged_items_count"]),
        )


# ===== Trip =====

# Timeline fields in planned/actual/final triples
TIMELINE_POINTS = ("arrival", "offload", "departure")


@dataclass
class Trip:
    """One scheduled transport job: the aggregate root for costs and audit."""

    fleet_number: str
    route: str
    driver_name: str
    client_name: str
    start_date: datetime
    end_date: datetime
    base_revenue: Decimal
    revenue_currency: Currency
    distance_km: Decimal = Decimal("0")
    client_type: ClientType = ClientType.EXTERNAL
    description: str | None = None
    status: TripStatus = TripStatus.ACTIVE
    costs: list[CostEntry] = field(default_factory=list)
    additional_costs: list[AdditionalCost] = field(default_factory=list)
    delay_reasons: list[DelayReason] = field(default_factory=list)
    follow_up_history: list[FollowUpRecord] = field(default_factory=list)
    edit_history: list[EditRecord] = field(default_factory=list)

    # Planned vs actual vs final (invoiced) timeline
    planned_arrival_at: datetime | None = None
    planned_offload_at: datetime | None = None
    planned_departure_at: datetime | None = None
    actual_arrival_at: datetime | None = None
    actual_offload_at: datetime | None = None
    actual_departure_at: datetime | None = None
    final_arrival_at: datetime | None = None
    final_offload_at: datetime | None = None
    final_departure_at: datetime | None = None
    timeline_validated: bool = False
    timeline_validated_by: str | None = None
    timeline_validated_at: datetime | None = None

    # Completion
    completed_at: datetime | None = None
    completed_by: str | None = None
    auto_completed_at: datetime | None = None
    auto_completed_reason: str | None = None

    # Invoicing & payment
    invoice_number: str | None = None
    invoice_date: date | None = None
    invoice_due_date: date | None = None
    invoice_submitted_at: datetime | None = None
    invoice_submitted_by: str | None = None
    invoice_validation_notes: str | None = None
    proof_of_delivery: list[Attachment] = field(default_factory=list)
    signed_invoice: list[Attachment] = field(default_factory=list)
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    payment_amount: Decimal | None = None
    payment_received_date: date | None = None
    payment_method: str | None = None
    bank_reference: str | None = None
    last_follow_up_date: date | None = None

    # Import metadata
    booking_source: str = "manual"
    external_status: str | None = None
    imported_at: datetime | None = None

    created_by: str | None = None
    deletion_record: TripDeletionRecord | None = None
    trip_id: str = field(default_factory=lambda: new_id("trip"))

    @property
    def is_deleted(self) -> bool:
        return self.deletion_record is not None

    def find_cost(self, cost_id: str) -> CostEntry | None:
        for cost in self.costs:
            if cost.cost_id == cost_id:
                return cost
        return None

    def total_costs(self) -> Decimal:
        return sum((c.amount for c in self.costs), Decimal("0"))

    def to_document(self) -> dict[str, Any]:
        """Serialize to a JSON-safe document (Decimals as strings)."""
        return {
            "trip_id": self.trip_id,
            "fleet_number": self.fleet_number,
            "route": self.route,
            "driver_name": self.driver_name,
            "client_name": self.client_name,
            "client_type": self.client_type.value,
            "description": self.description,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "distance_km": _money(self.distance_km),
            "base_revenue": _money(self.base_revenue),
            "revenue_currency": self.revenue_currency.value,
            "status": self.status.value,
            "costs": [c.to_document() for c in self.costs],
            "additional_costs": [a.to_document() for a in self.additional_costs],
            "delay_reasons": [d.to_document() for d in self.delay_reasons],
            "follow_up_history": [f.to_document() for f in self.follow_up_history],
            "edit_history": [r.to_document() for r in self.edit_history],
            "planned_arrival_at": _iso(self.planned_arrival_at),
            "planned_offload_at": _iso(self.planned_offload_at),
            "planned_departure_at": _iso(self.planned_departure_at),
            "actual_arrival_at": _iso(self.actual_arrival_at),
            "actual_offload_at": _iso(self.actual_offload_at),
            "actual_departure_at": _iso(self.actual_departure_at),
            "final_arrival_at": _iso(self.final_arrival_at),
            "final_offload_at": _iso(self.final_offload_at),
            "final_departure_at": _iso(self.final_departure_at),
            "timeline_validated": self.timeline_validated,
            "timeline_validated_by": self.timeline_validated_by,
            "timeline_validated_at": _iso(self.timeline_validated_at),
            "completed_at": _iso(self.completed_at),
            "completed_by": self.completed_by,
            "auto_completed_at": _iso(self.auto_completed_at),
            "auto_completed_reason": self.auto_completed_reason,
            "invoice_number": self.invoice_number,
            "invoice_date": _iso(self.invoice_date),
            "invoice_due_date": _iso(self.invoice_due_date),
            "invoice_submitted_at": _iso(self.invoice_submitted_at),
            "invoice_submitted_by": self.invoice_submitted_by,
            "invoice_validation_notes": self.invoice_validation_notes,
            "proof_of_delivery": [a.to_document() for a in self.proof_of_delivery],
            "signed_invoice": [a.to_document() for a in self.signed_invoice],
            "payment_status": self.payment_status.value,
            "payment_amount": _money(self.payment_amount),
            "payment_received_date": _iso(self.payment_received_date),
            "payment_method": self.payment_method,
            "bank_reference": self.bank_reference,
            "last_follow_up_date": _iso(self.last_follow_up_date),
            "booking_source": self.booking_source,
            "external_status": self.external_status,
            "imported_at": _iso(self.imported_at),
            "created_by": self.created_by,
            "deletion_record": (
                self.deletion_record.to_document() if self.deletion_record else None
            ),
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> Trip:
        deletion = data.get("deletion_record")
        return cls(
            trip_id=data["trip_id"],
            fleet_number=data["fleet_number"],
            route=data["route"],
            driver_name=data["driver_name"],
            client_name=data["client_name"],
            client_type=ClientType(data.get("client_type", "external")),
            description=data.get("description"),
            start_date=parse_datetime(data["start_date"]),
            end_date=parse_datetime(data["end_date"]),
            distance_km=parse_decimal(data.get("distance_km")) or Decimal("0"),
            base_revenue=Decimal(str(data["base_revenue"])),
            revenue_currency=Currency(data["revenue_currency"]),
            status=TripStatus(data["status"]),
            costs=[CostEntry.from_document(c) for c in data.get("costs", [])],
            additional_costs=[
                AdditionalCost.from_document(a) for a in data.get("additional_costs", [])
            ],
            delay_reasons=[DelayReason.from_document(d) for d in data.get("delay_reasons", [])],
            follow_up_history=[
                FollowUpRecord.from_document(f) for f in data.get("follow_up_history", [])
            ],
            edit_history=[EditRecord.from_document(r) for r in data.get("edit_history", [])],
            planned_arrival_at=parse_datetime(data.get("planned_arrival_at")),
            planned_offload_at=parse_datetime(data.get("planned_offload_at")),
            planned_departure_at=parse_datetime(data.get("planned_departure_at")),
            actual_arrival_at=parse_datetime(data.get("actual_arrival_at")),
            actual_offload_at=parse_datetime(data.get("actual_offload_at")),
            actual_departure_at=parse_datetime(data.get("actual_departure_at")),
            final_arrival_at=parse_datetime(data.get("final_arrival_at")),
            final_offload_at=parse_datetime(data.get("final_offload_at")),
            final_departure_at=parse_datetime(data.get("final_departure_at")),
            timeline_validated=bool(data.get("timeline_validated", False)),
            timeline_validated_by=data.get("timeline_validated_by"),
            timeline_validated_at=parse_datetime(data.get("timeline_validated_at")),
            completed_at=parse_datetime(data.get("completed_at")),
            completed_by=data.get("completed_by"),
            auto_completed_at=parse_datetime(data.get("auto_completed_at")),
            auto_completed_reason=data.get("auto_completed_reason"),
            invoice_number=data.get("invoice_number"),
            invoice_date=parse_date(data.get("invoice_date")),
            invoice_due_date=parse_date(data.get("invoice_due_date")),
            invoice_submitted_at=parse_datetime(data.get("invoice_submitted_at")),
            invoice_submitted_by=data.get("invoice_submitted_by"),
            invoice_validation_notes=data.get("invoice_validation_notes"),
            proof_of_delivery=[
                Attachment.from_document(a) for a in data.get("proof_of_delivery", [])
            ],
            signed_invoice=[Attachment.from_document(a) for a in data.get("signed_invoice", [])],
            payment_status=PaymentStatus(data.get("payment_status", "unpaid")),
            payment_amount=parse_decimal(data.get("payment_amount")),
            payment_received_date=parse_date(data.get("payment_received_date")),
            payment_method=data.get("payment_method"),
            bank_reference=data.get("bank_reference"),
            last_follow_up_date=parse_date(data.get("last_follow_up_date")),
            booking_source=data.get("booking_source", "manual"),
            external_status=data.get("external_status"),
            imported_at=parse_datetime(data.get("imported_at")),
            created_by=data.get("created_by"),
            deletion_record=TripDeletionRecord.from_document(deletion) if deletion else None,
        )

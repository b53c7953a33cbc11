"""Pydantic schemas for API request/response models.

Request bodies stay loosely typed where the engine validates the values
itself, so every rule failure comes back in one ``errors`` list.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from trip_engine.costing.types import Attachment, CostEntryDraft, EditRecord
from trip_engine.services.trip_store import StoredTrip

Scalar = str | int | float | None


# ============================================================================
# Shared
# ============================================================================


class FieldErrorResponse(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """Error response schema."""

    detail: str
    code: str | None = None
    errors: list[FieldErrorResponse] = Field(default_factory=list)


class AttachmentIn(BaseModel):
    """Reference to an already stored file."""

    filename: str
    file_url: str
    file_type: str = "application/octet-stream"
    file_size: int | None = None
    uploaded_at: datetime | None = None

    def to_attachment(self) -> Attachment:
        return Attachment(
            filename=self.filename,
            file_url=self.file_url,
            file_type=self.file_type,
            file_size=self.file_size,
            uploaded_at=self.uploaded_at,
        )


def to_attachments(items: list[AttachmentIn]) -> list[Attachment]:
    return [item.to_attachment() for item in items]


# ============================================================================
# Trip schemas
# ============================================================================


class TripCreate(BaseModel):
    """Schema for creating a trip. Validation happens in the engine."""

    model_config = ConfigDict(extra="ignore")

    fleet_number: str | None = None
    route: str | None = None
    description: str | None = None
    driver_name: str | None = None
    client_name: str | None = None
    client_type: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    distance_km: Scalar = None
    base_revenue: Scalar = None
    revenue_currency: str | None = None
    booking_source: str | None = None
    planned_arrival_at: str | None = None
    planned_offload_at: str | None = None
    planned_departure_at: str | None = None
    with_system_costs: bool = True


class TripImport(BaseModel):
    """A booking record from an external system."""

    model_config = ConfigDict(extra="allow")

    trip_id: str | None = None
    status: str | None = None
    booking_source: str | None = None


class TripUpdate(BaseModel):
    changes: dict[str, Any]
    reason: str = ""


class TripResponse(BaseModel):
    """A trip document with the version it was read at."""

    trip_id: str
    status: str
    version: int | None = None
    trip: dict[str, Any]

    @classmethod
    def from_stored(cls, stored: StoredTrip) -> "TripResponse":
        return cls(
            trip_id=stored.trip.trip_id,
            status=stored.trip.status.value,
            version=stored.version,
            trip=stored.trip.to_document(),
        )

    @classmethod
    def from_trip(cls, trip) -> "TripResponse":
        return cls(trip_id=trip.trip_id, status=trip.status.value, trip=trip.to_document())


class TripListResponse(BaseModel):
    items: list[TripResponse]
    total: int


class EditRecordResponse(BaseModel):
    record_id: str
    entity_type: str
    entity_id: str
    trip_id: str
    field_changed: str
    old_value: str
    new_value: str
    change_type: str
    edited_by: str
    edited_at: datetime
    reason: str

    @classmethod
    def from_record(cls, record: EditRecord) -> "EditRecordResponse":
        return cls.model_validate(
            {**record.to_document(), "edited_at": record.edited_at}
        )


# ============================================================================
# Cost schemas
# ============================================================================


class CostCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    category: str = ""
    sub_category: str = ""
    amount: Scalar = None
    currency: str | None = None
    reference_number: str = ""
    date: str | None = None
    notes: str | None = None
    attachments: list[AttachmentIn] = Field(default_factory=list)
    no_document_reason: str | None = None
    is_flagged: bool = False
    flag_reason: str | None = None

    def to_draft(self) -> CostEntryDraft:
        return CostEntryDraft(
            category=self.category,
            sub_category=self.sub_category,
            amount=self.amount,
            currency=self.currency,
            reference_number=self.reference_number,
            date=self.date,
            notes=self.notes,
            attachments=to_attachments(self.attachments),
            no_document_reason=self.no_document_reason,
            flag_requested=self.is_flagged,
            flag_reason=self.flag_reason,
        )


class CostUpdate(BaseModel):
    changes: dict[str, Any]
    reason: str = ""


class CostFlagRequest(BaseModel):
    reason: str = ""


class ReasonRequest(BaseModel):
    reason: str = ""


class CostResponse(BaseModel):
    trip_id: str
    cost: dict[str, Any]


class InvestigationAdvance(BaseModel):
    investigation_status: str
    notes: str | None = None
    resolution_comment: str | None = None


class InvestigationResponse(BaseModel):
    trip_id: str
    cost: dict[str, Any]
    unresolved_count: int


class SystemCostRequest(BaseModel):
    mode: str | None = None
    as_of: date | None = None


class SystemCostResponse(BaseModel):
    trip_id: str
    entries: list[dict[str, Any]]
    total: str


# ============================================================================
# Lifecycle schemas
# ============================================================================


class CompleteRequest(BaseModel):
    reason: str = ""


class AutoCompleteRequest(BaseModel):
    reason: str


class InvoiceSubmit(BaseModel):
    invoice_number: str | None = None
    invoice_date: str | None = None
    invoice_due_date: str | None = None
    final_arrival_at: str | None = None
    final_offload_at: str | None = None
    final_departure_at: str | None = None
    proof_of_delivery: list[AttachmentIn] = Field(default_factory=list)
    signed_invoice: list[AttachmentIn] = Field(default_factory=list)
    validation_notes: str | None = None


class PaymentRecord(BaseModel):
    payment_amount: Scalar = None
    payment_status: str = "paid"
    payment_received_date: str | None = None
    payment_method: str | None = None
    bank_reference: str | None = None


class AdditionalCostCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    cost_type: str | None = None
    description: str | None = None
    amount: Scalar = None
    currency: str | None = None
    date: str | None = None
    notes: str | None = None
    supporting_documents: list[AttachmentIn] = Field(default_factory=list)


class DelayReasonCreate(BaseModel):
    delay_type: str | None = None
    description: str | None = None
    delay_duration_hours: Scalar = None
    severity: str | None = None


class FollowUpCreate(BaseModel):
    follow_up_date: str | None = None
    contact_method: str | None = None
    responsible_staff: str | None = None
    response_summary: str | None = None
    status: str | None = None
    priority: str | None = None
    outcome: str | None = None
    next_follow_up_date: str | None = None


class RecordResponse(BaseModel):
    trip_id: str
    record: dict[str, Any]


class DeletionResponse(BaseModel):
    trip_id: str
    deletion_id: str
    deleted_at: datetime
    total_costs: str
    cost_entries_count: int
    flagged_items_count: int

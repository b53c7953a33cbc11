"""Trip API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Query, status

from trip_engine.api.dependencies import Actor, Service
from trip_engine.api.schemas import (
    AdditionalCostCreate,
    AutoCompleteRequest,
    CompleteRequest,
    CostCreate,
    CostFlagRequest,
    CostResponse,
    CostUpdate,
    DelayReasonCreate,
    DeletionResponse,
    EditRecordResponse,
    ErrorResponse,
    FollowUpCreate,
    InvestigationAdvance,
    InvestigationResponse,
    InvoiceSubmit,
    PaymentRecord,
    ReasonRequest,
    RecordResponse,
    SystemCostRequest,
    SystemCostResponse,
    TripCreate,
    TripImport,
    TripListResponse,
    TripResponse,
    TripUpdate,
    to_attachments,
)
from trip_engine.costing.system_costs import SystemCostGenerator
from trip_engine.services.invoice_gate import FinalTimeline

router = APIRouter(prefix="/trips", tags=["trips"])

VALIDATION = {422: {"model": ErrorResponse}}
GATED = {409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}}
NOT_FOUND = {404: {"model": ErrorResponse}}


# ============================================================================
# Trip CRUD
# ============================================================================


@router.post(
    "",
    response_model=TripResponse,
    status_code=status.HTTP_201_CREATED,
    responses=VALIDATION,
)
async def create_trip(service: Service, actor: Actor, payload: TripCreate) -> TripResponse:
    """Create an active trip, with system costs unless disabled."""
    data = payload.model_dump(exclude={"with_system_costs"}, exclude_none=True)
    stored = await service.create_trip(data, actor, with_system_costs=payload.with_system_costs)
    return TripResponse.from_stored(stored)


@router.post(
    "/import",
    response_model=TripResponse,
    status_code=status.HTTP_201_CREATED,
    responses=VALIDATION,
)
async def import_trip(service: Service, actor: Actor, payload: TripImport) -> TripResponse:
    """Import a booking from an external system, normalizing its status."""
    stored = await service.import_trip(payload.model_dump(exclude_none=True), actor)
    return TripResponse.from_stored(stored)


@router.get("", response_model=TripListResponse)
async def list_trips(
    service: Service,
    trip_status: Annotated[str | None, Query(alias="status")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=500)] = 50,
) -> TripListResponse:
    stored = await service.list_trips(
        status=trip_status, limit=page_size, offset=(page - 1) * page_size
    )
    items = [TripResponse.from_stored(s) for s in stored]
    return TripListResponse(items=items, total=len(items))


@router.get("/investigations/summary")
async def investigation_summary(service: Service) -> dict[str, int]:
    """Flagged cost counts per investigation status."""
    return await service.investigation_summary()


@router.get("/{trip_id}", response_model=TripResponse, responses=NOT_FOUND)
async def get_trip(service: Service, trip_id: str) -> TripResponse:
    return TripResponse.from_stored(await service.get_trip(trip_id))


@router.patch("/{trip_id}", response_model=TripResponse, responses={**GATED, **NOT_FOUND})
async def update_trip(
    service: Service, actor: Actor, trip_id: str, payload: TripUpdate
) -> TripResponse:
    """Edit trip fields. A reason is required and every change is audited."""
    trip, _ = await service.update_trip(trip_id, payload.changes, payload.reason, actor)
    return TripResponse.from_trip(trip)


@router.delete("/{trip_id}", response_model=DeletionResponse, responses={**VALIDATION, **NOT_FOUND})
async def delete_trip(
    service: Service, actor: Actor, trip_id: str, payload: ReasonRequest
) -> DeletionResponse:
    """Soft-delete a trip, keeping a snapshot."""
    record = await service.delete_trip(trip_id, payload.reason, actor)
    return DeletionResponse(
        trip_id=record.trip_id,
        deletion_id=record.deletion_id,
        deleted_at=record.deleted_at,
        total_costs=str(record.total_costs),
        cost_entries_count=record.cost_entries_count,
        flagged_items_count=record.flagged_items_count,
    )


@router.get("/{trip_id}/audit", response_model=list[EditRecordResponse], responses=NOT_FOUND)
async def get_audit_trail(service: Service, trip_id: str) -> list[EditRecordResponse]:
    """Stored audit records of the trip and its costs, oldest first."""
    records = await service.audit_trail(trip_id)
    return [EditRecordResponse.from_record(r) for r in records]


# ============================================================================
# Costs
# ============================================================================


@router.post(
    "/{trip_id}/costs",
    response_model=CostResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**GATED, **NOT_FOUND},
)
async def add_cost(
    service: Service, actor: Actor, trip_id: str, payload: CostCreate
) -> CostResponse:
    """Add a manual cost entry. Rule failures come back together."""
    _, entry = await service.add_cost(trip_id, payload.to_draft(), actor)
    return CostResponse(trip_id=trip_id, cost=entry.to_document())


@router.patch(
    "/{trip_id}/costs/{cost_id}",
    response_model=CostResponse,
    responses={**GATED, **NOT_FOUND},
)
async def update_cost(
    service: Service, actor: Actor, trip_id: str, cost_id: str, payload: CostUpdate
) -> CostResponse:
    _, entry = await service.update_cost(trip_id, cost_id, payload.changes, actor, payload.reason)
    return CostResponse(trip_id=trip_id, cost=entry.to_document())


@router.post(
    "/{trip_id}/costs/{cost_id}/flag",
    response_model=CostResponse,
    responses={**GATED, **NOT_FOUND},
)
async def flag_cost(
    service: Service, actor: Actor, trip_id: str, cost_id: str, payload: CostFlagRequest
) -> CostResponse:
    _, entry = await service.flag_cost(trip_id, cost_id, payload.reason, actor)
    return CostResponse(trip_id=trip_id, cost=entry.to_document())


@router.delete(
    "/{trip_id}/costs/{cost_id}",
    response_model=CostResponse,
    responses={**GATED, **NOT_FOUND},
)
async def remove_cost(
    service: Service, actor: Actor, trip_id: str, cost_id: str, payload: ReasonRequest
) -> CostResponse:
    _, entry = await service.remove_cost(trip_id, cost_id, payload.reason, actor)
    return CostResponse(trip_id=trip_id, cost=entry.to_document())


@router.post(
    "/{trip_id}/costs/{cost_id}/investigation",
    response_model=InvestigationResponse,
    responses={**GATED, **NOT_FOUND},
)
async def advance_investigation(
    service: Service,
    actor: Actor,
    trip_id: str,
    cost_id: str,
    payload: InvestigationAdvance,
) -> InvestigationResponse:
    """Move a flagged cost's investigation forward one step."""
    trip, remaining = await service.advance_investigation(
        trip_id,
        cost_id,
        payload.investigation_status,
        actor,
        notes=payload.notes,
        resolution_comment=payload.resolution_comment,
    )
    return InvestigationResponse(
        trip_id=trip_id,
        cost=trip.find_cost(cost_id).to_document(),
        unresolved_count=remaining,
    )


@router.post(
    "/{trip_id}/system-costs",
    response_model=SystemCostResponse,
    responses={**GATED, **NOT_FOUND},
)
async def generate_system_costs(
    service: Service, actor: Actor, trip_id: str, payload: SystemCostRequest
) -> SystemCostResponse:
    """(Re)generate per-km and per-day system costs."""
    _, entries = await service.generate_system_costs(
        trip_id, actor, mode=payload.mode, as_of=payload.as_of
    )
    return SystemCostResponse(
        trip_id=trip_id,
        entries=[e.to_document() for e in entries],
        total=str(SystemCostGenerator.total(entries)),
    )


# ============================================================================
# Lifecycle
# ============================================================================


@router.post("/{trip_id}/complete", response_model=TripResponse, responses={**GATED, **NOT_FOUND})
async def complete_trip(
    service: Service, actor: Actor, trip_id: str, payload: CompleteRequest
) -> TripResponse:
    """Complete an active trip. Blocked while flags are unresolved."""
    trip = await service.complete_trip(trip_id, actor, payload.reason)
    return TripResponse.from_trip(trip)


@router.post(
    "/{trip_id}/auto-complete", response_model=TripResponse, responses={**GATED, **NOT_FOUND}
)
async def auto_complete_trip(
    service: Service, actor: Actor, trip_id: str, payload: AutoCompleteRequest
) -> TripResponse:
    """Accept a completion decided by an external investigation resolver."""
    trip = await service.auto_complete_trip(trip_id, payload.reason, actor)
    return TripResponse.from_trip(trip)


@router.post("/{trip_id}/invoice", response_model=TripResponse, responses={**GATED, **NOT_FOUND})
async def submit_invoice(
    service: Service, actor: Actor, trip_id: str, payload: InvoiceSubmit
) -> TripResponse:
    """Submit the invoice for a completed trip."""
    timeline = FinalTimeline.from_values(
        payload.final_arrival_at, payload.final_offload_at, payload.final_departure_at
    )
    trip = await service.submit_invoice(
        trip_id,
        payload.invoice_number,
        payload.invoice_date,
        payload.invoice_due_date,
        timeline,
        actor,
        proof_of_delivery=to_attachments(payload.proof_of_delivery),
        signed_invoice=to_attachments(payload.signed_invoice),
        validation_notes=payload.validation_notes,
    )
    return TripResponse.from_trip(trip)


@router.post("/{trip_id}/payment", response_model=TripResponse, responses={**GATED, **NOT_FOUND})
async def record_payment(
    service: Service, actor: Actor, trip_id: str, payload: PaymentRecord
) -> TripResponse:
    trip = await service.record_payment(
        trip_id,
        payload.payment_amount,
        payload.payment_status,
        actor,
        received_date=payload.payment_received_date,
        payment_method=payload.payment_method,
        bank_reference=payload.bank_reference,
    )
    return TripResponse.from_trip(trip)


# ============================================================================
# Satellite records
# ============================================================================


@router.post(
    "/{trip_id}/additional-costs",
    response_model=RecordResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**GATED, **NOT_FOUND},
)
async def add_additional_cost(
    service: Service, actor: Actor, trip_id: str, payload: AdditionalCostCreate
) -> RecordResponse:
    _, record = await service.add_additional_cost(
        trip_id,
        payload.model_dump(exclude={"supporting_documents"}, exclude_none=True),
        actor,
        supporting_documents=to_attachments(payload.supporting_documents),
    )
    return RecordResponse(trip_id=trip_id, record=record.to_document())


@router.post(
    "/{trip_id}/delay-reasons",
    response_model=RecordResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**GATED, **NOT_FOUND},
)
async def add_delay_reason(
    service: Service, actor: Actor, trip_id: str, payload: DelayReasonCreate
) -> RecordResponse:
    _, record = await service.add_delay_reason(trip_id, payload.model_dump(exclude_none=True), actor)
    return RecordResponse(trip_id=trip_id, record=record.to_document())


@router.post(
    "/{trip_id}/follow-ups",
    response_model=RecordResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**GATED, **NOT_FOUND},
)
async def add_follow_up(
    service: Service, actor: Actor, trip_id: str, payload: FollowUpCreate
) -> RecordResponse:
    _, record = await service.add_follow_up(trip_id, payload.model_dump(exclude_none=True), actor)
    return RecordResponse(trip_id=trip_id, record=record.to_document())

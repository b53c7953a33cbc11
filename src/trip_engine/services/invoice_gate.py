"""Invoice submission gate.

The only path from ``completed`` to ``invoiced``. Checks that:
- the trip is completed
- invoice number, invoice date and due date are present, due after invoice
- the final timeline is complete and ordered arrival <= offload <= departure
- at least one proof-of-delivery document is attached

Evaluation is separate from submission so callers can preview failures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Any

from trip_engine.costing.types import (
    Attachment,
    PaymentStatus,
    TripStatus,
    parse_date,
    parse_datetime,
)
from trip_engine.errors import FieldError, GateViolation
from trip_engine.services.state_machine import InvoiceApproval, TripStateMachine

if TYPE_CHECKING:
    from trip_engine.costing.types import EditRecord, Trip
    from trip_engine.services.audit import AuditRecorder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FinalTimeline:
    """Reconciled arrival, offload and departure timestamps."""

    arrival_at: datetime | None = None
    offload_at: datetime | None = None
    departure_at: datetime | None = None

    @classmethod
    def from_values(cls, arrival: Any, offload: Any, departure: Any) -> FinalTimeline:
        return cls(
            arrival_at=parse_datetime(arrival),
            offload_at=parse_datetime(offload),
            departure_at=parse_datetime(departure),
        )


@dataclass(frozen=True)
class InvoiceGateResult:
    """Result of an invoice gate evaluation."""

    errors: list[FieldError] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.errors


class InvoiceSubmissionGate:
    """Evaluates and applies invoice submissions."""

    @staticmethod
    def _parse_date(name: str, value: Any, errors: list[FieldError]) -> date | None:
        try:
            return parse_date(value)
        except ValueError:
            errors.append(FieldError(name, "Must be an ISO date"))
            return None

    @classmethod
    def evaluate(
        cls,
        trip: Trip,
        invoice_number: str | None,
        invoice_date: Any,
        due_date: Any,
        final_timeline: FinalTimeline,
        proof_of_delivery: list[Attachment] | None = None,
    ) -> InvoiceGateResult:
        """Collect every reason the submission would be rejected."""
        errors: list[FieldError] = []

        if trip.status != TripStatus.COMPLETED:
            errors.append(
                FieldError("status", f"Trip must be completed to invoice (current: {trip.status.value})")
            )

        if not invoice_number or not str(invoice_number).strip():
            errors.append(FieldError("invoice_number", "Invoice number is required"))

        issued = cls._parse_date("invoice_date", invoice_date, errors)
        due = cls._parse_date("invoice_due_date", due_date, errors)
        if invoice_date in (None, ""):
            errors.append(FieldError("invoice_date", "Invoice date is required"))
        if due_date in (None, ""):
            errors.append(FieldError("invoice_due_date", "Due date is required"))
        if issued and due and due <= issued:
            errors.append(FieldError("invoice_due_date", "Due date must be after invoice date"))

        arrival = final_timeline.arrival_at
        offload = final_timeline.offload_at
        departure = final_timeline.departure_at
        if arrival is None:
            errors.append(FieldError("final_arrival_at", "Final arrival time is required"))
        if offload is None:
            errors.append(FieldError("final_offload_at", "Final offload time is required"))
        if departure is None:
            errors.append(FieldError("final_departure_at", "Final departure time is required"))
        if arrival and offload and offload < arrival:
            errors.append(FieldError("final_offload_at", "Offload cannot be before arrival"))
        if offload and departure and departure < offload:
            errors.append(FieldError("final_departure_at", "Departure cannot be before offload"))

        if not proof_of_delivery:
            errors.append(
                FieldError("proof_of_delivery", "At least one proof of delivery document is required")
            )

        return InvoiceGateResult(errors=errors)

    @classmethod
    def submit(
        cls,
        trip: Trip,
        invoice_number: str | None,
        invoice_date: Any,
        due_date: Any,
        final_timeline: FinalTimeline,
        actor: str,
        recorder: AuditRecorder,
        proof_of_delivery: list[Attachment] | None = None,
        signed_invoice: list[Attachment] | None = None,
        validation_notes: str | None = None,
        now: datetime | None = None,
    ) -> EditRecord:
        """Validate the submission and move the trip to invoiced.

        Raises:
            GateViolation: Carrying every field error when the gate fails
        """
        result = cls.evaluate(
            trip,
            invoice_number,
            invoice_date,
            due_date,
            final_timeline,
            proof_of_delivery=proof_of_delivery,
        )
        if not result.passed:
            logger.info(
                "Invoice submission for trip %s rejected (%d issue(s))",
                trip.trip_id,
                len(result.errors),
            )
            raise GateViolation(
                trip.status.value,
                TripStatus.INVOICED.value,
                "invoice submission failed validation",
                errors=result.errors,
            )

        now = now or datetime.now(timezone.utc)
        approval = InvoiceApproval(
            trip_id=trip.trip_id,
            values={
                "invoice_number": str(invoice_number).strip(),
                "invoice_date": parse_date(invoice_date),
                "invoice_due_date": parse_date(due_date),
                "invoice_submitted_at": now,
                "invoice_submitted_by": actor,
                "invoice_validation_notes": validation_notes,
                "final_arrival_at": final_timeline.arrival_at,
                "final_offload_at": final_timeline.offload_at,
                "final_departure_at": final_timeline.departure_at,
                "timeline_validated": True,
                "timeline_validated_by": actor,
                "timeline_validated_at": now,
                "proof_of_delivery": list(proof_of_delivery or []),
                "signed_invoice": list(signed_invoice or []),
                "payment_status": PaymentStatus.UNPAID,
            },
        )
        return TripStateMachine.mark_invoiced(trip, approval, actor, recorder)

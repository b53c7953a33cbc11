"""Investigation workflow for flagged cost entries."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterable

from trip_engine.costing.types import ChangeType, InvestigationStatus
from trip_engine.errors import GateViolation, ValidationError
from trip_engine.services.audit import audit_cost_change
from trip_engine.services.state_machine import TripStateMachine

if TYPE_CHECKING:
    from trip_engine.costing.types import Trip
    from trip_engine.services.audit import AuditRecorder

logger = logging.getLogger(__name__)


class InvestigationWorkflow:
    """Moves a flagged cost through pending → in-progress → resolved."""

    VALID_TRANSITIONS: dict[str, list[str]] = {
        InvestigationStatus.PENDING: [InvestigationStatus.IN_PROGRESS],
        InvestigationStatus.IN_PROGRESS: [InvestigationStatus.RESOLVED],
        InvestigationStatus.RESOLVED: [],
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        return to_status in cls.VALID_TRANSITIONS.get(from_status, [])

    @classmethod
    def advance(
        cls,
        trip: Trip,
        cost_id: str,
        to_status: str,
        actor: str,
        recorder: AuditRecorder,
        notes: str | None = None,
        resolution_comment: str | None = None,
        now: datetime | None = None,
    ) -> int:
        """Advance the investigation of one flagged cost.

        Returns:
            Number of unresolved flags left on the trip
        """
        if not TripStateMachine.can_modify_costs(trip.status):
            raise GateViolation(
                trip.status.value,
                trip.status.value,
                f"investigations are closed once a trip is {trip.status.value}",
            )

        cost = trip.find_cost(cost_id)
        if cost is None:
            raise ValidationError.single("cost_id", f"Cost {cost_id} not found on trip")
        if not cost.is_flagged:
            raise ValidationError.single("cost_id", "Cost is not flagged")

        try:
            target = InvestigationStatus(to_status)
        except ValueError:
            raise ValidationError.single(
                "investigation_status", f"Unknown investigation status '{to_status}'"
            ) from None

        current = cost.investigation_status or InvestigationStatus.PENDING
        if not cls.can_transition(current, target):
            raise ValidationError.single(
                "investigation_status",
                f"Cannot move investigation from '{current.value}' to '{target.value}'",
            )

        comment = (resolution_comment or "").strip()
        if target == InvestigationStatus.RESOLVED and not comment:
            raise ValidationError.single("resolution_comment", "A resolution comment is required")

        now = now or datetime.now(timezone.utc)
        audit_cost_change(
            recorder,
            cost,
            "investigation_status",
            current,
            target,
            ChangeType.INVESTIGATION,
            actor,
            reason=comment or (notes or "").strip(),
        )
        cost.investigation_status = target

        note = comment if target == InvestigationStatus.RESOLVED else (notes or "").strip()
        if note:
            stamp = f"[{now.isoformat()} {actor}] {note}"
            cost.investigation_notes = (
                f"{cost.investigation_notes}\n{stamp}" if cost.investigation_notes else stamp
            )
        if target == InvestigationStatus.RESOLVED:
            cost.resolved_at = now
            cost.resolved_by = actor

        remaining = TripStateMachine.unresolved_flag_count(trip.costs)
        logger.info(
            "Investigation on cost %s moved to %s (%d unresolved on trip %s)",
            cost_id,
            target.value,
            remaining,
            trip.trip_id,
        )
        return remaining

    @staticmethod
    def summarize(trips: Iterable[Trip]) -> dict[str, int]:
        """Count flagged costs per investigation status across trips."""
        counts = {status.value: 0 for status in InvestigationStatus}
        for trip in trips:
            for cost in trip.costs:
                if cost.is_flagged:
                    status = cost.investigation_status or InvestigationStatus.PENDING
                    counts[status.value] += 1
        return counts

"""Append-only audit recorder for trip and cost mutations."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from trip_engine.costing.types import AuditEntity, ChangeType, EditRecord

if TYPE_CHECKING:
    from trip_engine.costing.types import CostEntry, Trip

UNSET = "(unset)"


def stringify(value: Any) -> str:
    """Render a field value for the audit trail."""
    if value is None or value == "":
        return UNSET
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class AuditRecorder:
    """Collects immutable edit records for one unit of work.

    Records are only ever appended. The trip service drains them and writes
    them in the same transaction as the trip document, so a mutation and its
    audit record are committed together or not at all.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._pending: list[EditRecord] = []

    @property
    def pending(self) -> tuple[EditRecord, ...]:
        return tuple(self._pending)

    def record(
        self,
        entity_type: AuditEntity,
        entity_id: str,
        field: str,
        old_value: Any,
        new_value: Any,
        change_type: ChangeType,
        actor: str,
        trip_id: str | None = None,
        reason: str = "",
    ) -> EditRecord:
        """Append a change record and return it."""
        if not actor:
            raise ValueError("Audit records require an actor")
        if entity_type == AuditEntity.TRIP:
            trip_id = trip_id or entity_id
        elif not trip_id:
            raise ValueError("Cost audit records require the owning trip_id")

        record = EditRecord(
            entity_type=entity_type,
            entity_id=entity_id,
            trip_id=trip_id,
            field_changed=field,
            old_value="" if change_type == ChangeType.CREATION else stringify(old_value),
            new_value=stringify(new_value),
            change_type=change_type,
            edited_by=actor,
            edited_at=self._clock(),
            reason=reason or "",
        )
        self._pending.append(record)
        return record

    def drain(self) -> list[EditRecord]:
        """Hand over pending records and start a fresh batch."""
        records, self._pending = self._pending, []
        return records

    def discard(self) -> None:
        """Drop pending records after a failed unit of work."""
        self._pending = []


def audit_trip_change(
    recorder: AuditRecorder,
    trip: Trip,
    field: str,
    old_value: Any,
    new_value: Any,
    change_type: ChangeType,
    actor: str,
    reason: str = "",
) -> EditRecord:
    """Record a trip change and append it to the trip's edit history."""
    record = recorder.record(
        AuditEntity.TRIP,
        trip.trip_id,
        field,
        old_value,
        new_value,
        change_type,
        actor,
        trip_id=trip.trip_id,
        reason=reason,
    )
    trip.edit_history.append(record)
    return record


def audit_cost_change(
    recorder: AuditRecorder,
    cost: CostEntry,
    field: str,
    old_value: Any,
    new_value: Any,
    change_type: ChangeType,
    actor: str,
    reason: str = "",
) -> EditRecord:
    """Record a cost change and append it to the cost's edit history."""
    record = recorder.record(
        AuditEntity.COST,
        cost.cost_id,
        field,
        old_value,
        new_value,
        change_type,
        actor,
        trip_id=cost.trip_id,
        reason=reason,
    )
    cost.edit_history.append(record)
    return record

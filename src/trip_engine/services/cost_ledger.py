"""Cost mutations on a trip: manual entries, flags and system costs.

Every function here mutates the in-memory trip and records the matching
audit entries. Persisting the result is the trip service's job.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from trip_engine.costing.types import ChangeType, CostEntry, InvestigationStatus
from trip_engine.errors import GateViolation, ValidationError
from trip_engine.services.audit import audit_cost_change
from trip_engine.services.state_machine import TripStateMachine

if TYPE_CHECKING:
    from trip_engine.costing.types import CostEntryDraft, Trip
    from trip_engine.costing.validator import CostValidator
    from trip_engine.services.audit import AuditRecorder

logger = logging.getLogger(__name__)

REGENERATION_MODES = ("replace", "append")

# Fields a regeneration may overwrite on an existing system entry.
SYSTEM_COST_FIELDS = (
    "amount",
    "currency",
    "date",
    "reference_number",
    "notes",
    "calculation_details",
)


def _require_mutable(trip: Trip) -> None:
    if not TripStateMachine.can_modify_costs(trip.status):
        raise GateViolation(
            trip.status.value,
            trip.status.value,
            f"costs cannot be changed once a trip is {trip.status.value}",
        )


def _find(trip: Trip, cost_id: str) -> CostEntry:
    cost = trip.find_cost(cost_id)
    if cost is None:
        raise ValidationError.single("cost_id", f"Cost {cost_id} not found on trip")
    return cost


def _describe(cost: CostEntry) -> str:
    return f"{cost.category} / {cost.sub_category}: {cost.amount} {cost.currency.value}"


def add_cost(
    trip: Trip,
    validator: CostValidator,
    draft: CostEntryDraft,
    actor: str,
    recorder: AuditRecorder,
    attachments_present: bool | None = None,
    now: datetime | None = None,
) -> CostEntry:
    """Validate a manual entry and append it to the trip.

    Raises:
        GateViolation: If the trip is no longer active
        ValidationError: With every rule failure
    """
    _require_mutable(trip)
    result = validator.validate(
        trip.trip_id,
        trip.costs,
        draft,
        attachments_present=attachments_present,
        actor=actor,
        now=now,
    )
    entry = result.raise_for_errors()
    trip.costs.append(entry)
    audit_cost_change(
        recorder,
        entry,
        "cost",
        None,
        _describe(entry),
        ChangeType.CREATION,
        actor,
        reason=entry.flag_reason or "",
    )
    return entry


def update_cost(
    trip: Trip,
    validator: CostValidator,
    cost_id: str,
    changes: dict[str, Any],
    actor: str,
    recorder: AuditRecorder,
    reason: str = "",
    now: datetime | None = None,
) -> CostEntry:
    """Edit a manual entry; the flag may be raised by an edit, never cleared."""
    _require_mutable(trip)
    cost = _find(trip, cost_id)
    normalized, errors = validator.validate_update(trip.costs, cost, changes)
    if errors:
        raise ValidationError(errors)

    for name, value in normalized.items():
        old = getattr(cost, name)
        if old == value:
            continue
        audit_cost_change(recorder, cost, name, old, value, ChangeType.UPDATE, actor, reason=reason)
        setattr(cost, name, value)

    decision = validator.decide_flag(
        cost.category,
        bool(cost.attachments),
        cost.no_document_reason or "",
    )
    if decision.is_flagged and not cost.is_flagged:
        _raise_flag(cost, decision.reason, actor, recorder, now)
    return cost


def _raise_flag(
    cost: CostEntry,
    reason: str,
    actor: str,
    recorder: AuditRecorder,
    now: datetime | None,
) -> None:
    audit_cost_change(
        recorder, cost, "is_flagged", False, True, ChangeType.FLAG_STATUS, actor, reason=reason
    )
    cost.is_flagged = True
    cost.flag_reason = reason
    cost.investigation_status = InvestigationStatus.PENDING
    cost.flagged_at = now or datetime.now(timezone.utc)
    cost.flagged_by = actor
    logger.info("Cost %s on trip %s flagged: %s", cost.cost_id, cost.trip_id, reason)


def flag_cost(
    trip: Trip,
    cost_id: str,
    reason: str,
    actor: str,
    recorder: AuditRecorder,
    now: datetime | None = None,
) -> CostEntry:
    """Manually flag an existing entry for investigation."""
    _require_mutable(trip)
    cost = _find(trip, cost_id)
    if not reason or not reason.strip():
        raise ValidationError.single("flag_reason", "Flag reason is required when manually flagging a cost")
    if cost.is_system_generated:
        raise ValidationError.single("cost_id", "System-generated costs cannot be flagged")
    if cost.is_flagged:
        raise ValidationError.single("cost_id", "Cost is already flagged for investigation")
    _raise_flag(cost, reason.strip(), actor, recorder, now)
    return cost


def remove_cost(
    trip: Trip,
    cost_id: str,
    actor: str,
    recorder: AuditRecorder,
    reason: str = "",
) -> CostEntry:
    """Remove an entry from an active trip. Its audit trail is kept."""
    _require_mutable(trip)
    cost = _find(trip, cost_id)
    if not reason or not reason.strip():
        raise ValidationError.single("reason", "A removal reason is required")
    audit_cost_change(
        recorder, cost, "cost", _describe(cost), None, ChangeType.REMOVAL, actor, reason=reason.strip()
    )
    trip.costs.remove(cost)
    return cost


def apply_system_costs(
    trip: Trip,
    entries: list[CostEntry],
    actor: str,
    recorder: AuditRecorder,
    mode: str = "replace",
) -> list[CostEntry]:
    """Store generated system costs on the trip.

    In ``replace`` mode entries are upserted on
    ``(trip_id, system_cost_type, sub_category)``: an existing entry keeps its
    id; every field that differs is replaced and audited. ``append`` mode
    adds the entries alongside earlier ones.
    """
    if mode not in REGENERATION_MODES:
        raise ValueError(f"Unknown regeneration mode: {mode}")
    _require_mutable(trip)

    existing = {c.system_key: c for c in trip.costs if c.is_system_generated}
    stored: list[CostEntry] = []
    for entry in entries:
        current = existing.get(entry.system_key) if mode == "replace" else None
        if current is None:
            trip.costs.append(entry)
            audit_cost_change(
                recorder,
                entry,
                "amount",
                None,
                entry.amount,
                ChangeType.SYSTEM_GENERATION,
                actor,
                reason=entry.calculation_details or "",
            )
            stored.append(entry)
            continue

        for name in SYSTEM_COST_FIELDS:
            old, new = getattr(current, name), getattr(entry, name)
            if old == new:
                continue
            audit_cost_change(
                recorder,
                current,
                name,
                old,
                new,
                ChangeType.SYSTEM_GENERATION,
                actor,
                reason=entry.calculation_details or "",
            )
            setattr(current, name, new)
        stored.append(current)

    logger.info(
        "Stored %d system cost(s) on trip %s (mode=%s)", len(stored), trip.trip_id, mode
    )
    return stored

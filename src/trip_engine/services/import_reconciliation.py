"""Reconciliation of trips imported from external booking systems.

External systems use their own status vocabulary. It is mapped onto the
four canonical statuses here, at the boundary, and never leaks inward.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from trip_engine.costing.types import (
    ChangeType,
    ClientType,
    Currency,
    Trip,
    TripStatus,
    parse_datetime,
    round_money,
)
from trip_engine.errors import FieldError, ValidationError
from trip_engine.services.audit import audit_trip_change

if TYPE_CHECKING:
    from trip_engine.services.audit import AuditRecorder

logger = logging.getLogger(__name__)

EXTERNAL_STATUS_MAP: dict[str, TripStatus] = {
    "booked": TripStatus.ACTIVE,
    "confirmed": TripStatus.ACTIVE,
    "loaded": TripStatus.ACTIVE,
    "in_transit": TripStatus.ACTIVE,
    "shipped": TripStatus.ACTIVE,
    "active": TripStatus.ACTIVE,
    "delivered": TripStatus.COMPLETED,
    "completed": TripStatus.COMPLETED,
    "invoiced": TripStatus.INVOICED,
    "paid": TripStatus.PAID,
}

REQUIRED_IMPORT_FIELDS = (
    "fleet_number",
    "route",
    "driver_name",
    "client_name",
    "start_date",
    "end_date",
    "base_revenue",
    "revenue_currency",
)


def normalize_status(external: str | None) -> TripStatus:
    """Map an external status onto the canonical lifecycle.

    Raises:
        ValidationError: For values outside the known vocabulary
    """
    key = (external or "").strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return EXTERNAL_STATUS_MAP[key]
    except KeyError:
        raise ValidationError.single("status", f"Unknown external status '{external}'") from None


def _decimal(record: dict[str, Any], name: str, errors: list[FieldError]) -> Decimal | None:
    raw = record.get(name)
    if raw in (None, ""):
        return None
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        errors.append(FieldError(name, "Must be a number"))
        return None
    if not value.is_finite() or value < 0:
        errors.append(FieldError(name, "Must be a number >= 0"))
        return None
    return value


def _datetime(record: dict[str, Any], name: str, errors: list[FieldError]) -> datetime | None:
    try:
        return parse_datetime(record.get(name))
    except ValueError:
        errors.append(FieldError(name, "Must be an ISO datetime"))
        return None


def reconcile_import(
    record: dict[str, Any],
    actor: str,
    recorder: AuditRecorder,
    now: datetime | None = None,
) -> Trip:
    """Build a trip from an imported booking record.

    The raw status is kept in ``external_status``; the trip carries the
    normalized one. A creation audit record is emitted for the trip.
    """
    errors: list[FieldError] = []
    for name in REQUIRED_IMPORT_FIELDS:
        if record.get(name) in (None, ""):
            errors.append(FieldError(name, f"{name} is required"))

    raw_status = record.get("status") or "active"
    status = None
    try:
        status = normalize_status(raw_status)
    except ValidationError as exc:
        errors.extend(exc.errors)

    currency = None
    if record.get("revenue_currency"):
        try:
            currency = Currency(str(record["revenue_currency"]).strip().upper())
        except ValueError:
            errors.append(
                FieldError("revenue_currency", f"Unsupported currency '{record['revenue_currency']}'")
            )

    client_type = ClientType.EXTERNAL
    if record.get("client_type"):
        try:
            client_type = ClientType(str(record["client_type"]).strip().lower())
        except ValueError:
            errors.append(FieldError("client_type", "Must be 'internal' or 'external'"))

    start = _datetime(record, "start_date", errors)
    end = _datetime(record, "end_date", errors)
    if start and end and end < start:
        errors.append(FieldError("end_date", "End date must not be before start date"))
    revenue = _decimal(record, "base_revenue", errors)
    if revenue is not None:
        revenue = round_money(revenue)
    distance = _decimal(record, "distance_km", errors)

    if errors:
        raise ValidationError(errors)

    now = now or datetime.now(timezone.utc)
    trip = Trip(
        fleet_number=str(record["fleet_number"]).strip(),
        route=str(record["route"]).strip(),
        driver_name=str(record["driver_name"]).strip(),
        client_name=str(record["client_name"]).strip(),
        client_type=client_type,
        description=record.get("description"),
        start_date=start,
        end_date=end,
        base_revenue=revenue,
        revenue_currency=currency,
        distance_km=distance or Decimal("0"),
        status=status,
        booking_source=str(record.get("booking_source") or "import"),
        external_status=str(raw_status),
        imported_at=now,
        created_by=actor,
    )
    if record.get("trip_id"):
        trip.trip_id = str(record["trip_id"])
    if status != TripStatus.ACTIVE:
        trip.completed_at = now
        trip.completed_by = actor

    audit_trip_change(
        recorder,
        trip,
        "status",
        None,
        status,
        ChangeType.CREATION,
        actor,
        reason=f"Imported from {trip.booking_source} (external status '{raw_status}')",
    )
    logger.info(
        "Imported trip %s from %s: '%s' -> %s",
        trip.trip_id,
        trip.booking_source,
        raw_status,
        status.value,
    )
    return trip

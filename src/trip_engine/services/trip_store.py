"""Trip persistence with compare-and-set saves."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trip_engine.costing.types import AuditEntity, EditRecord, Trip, TripDeletionRecord
from trip_engine.errors import (
    ConcurrentModificationError,
    PersistenceFailure,
    TripNotFoundError,
    ValidationError,
)
from trip_engine.models import (
    CostEditRecordRow,
    TripDeletionRecordRow,
    TripDocument,
    TripEditRecordRow,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredTrip:
    """A trip together with the version it was read at."""

    trip: Trip
    version: int


class TripStore:
    """Reads and writes trip documents and their audit rows.

    Reads select columns rather than entities so every read reflects the
    committed row, not a cached identity. Writes never commit; the caller
    owns the transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, trip_id: str, include_deleted: bool = False) -> StoredTrip:
        try:
            result = await self.session.execute(
                select(TripDocument.document, TripDocument.version, TripDocument.is_deleted).where(
                    TripDocument.trip_id == trip_id
                )
            )
            row = result.one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Could not load trip {trip_id}") from exc

        if row is None or (row.is_deleted and not include_deleted):
            raise TripNotFoundError(trip_id)
        return StoredTrip(trip=Trip.from_document(row.document), version=row.version)

    async def list_trips(
        self,
        status: str | None = None,
        include_deleted: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list[StoredTrip]:
        query = select(TripDocument.document, TripDocument.version).order_by(
            TripDocument.created_at.desc(), TripDocument.trip_id
        )
        if status:
            query = query.where(TripDocument.status == status)
        if not include_deleted:
            query = query.where(TripDocument.is_deleted.is_(False))
        query = query.limit(limit).offset(offset)

        try:
            result = await self.session.execute(query)
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Could not list trips") from exc
        return [StoredTrip(trip=Trip.from_document(r.document), version=r.version) for r in result]

    async def insert(self, trip: Trip) -> StoredTrip:
        """Insert a new trip at version 1."""
        try:
            existing = await self.session.scalar(
                select(TripDocument.trip_id).where(TripDocument.trip_id == trip.trip_id)
            )
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Could not insert trip {trip.trip_id}") from exc
        if existing is not None:
            raise ValidationError.single("trip_id", f"Trip {trip.trip_id} already exists")

        self.session.add(
            TripDocument(
                trip_id=trip.trip_id,
                status=trip.status.value,
                fleet_number=trip.fleet_number,
                client_name=trip.client_name,
                version=1,
                is_deleted=trip.is_deleted,
                document=trip.to_document(),
            )
        )
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise ValidationError.single("trip_id", f"Trip {trip.trip_id} already exists") from exc
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Could not insert trip {trip.trip_id}") from exc
        return StoredTrip(trip=trip, version=1)

    async def save(self, trip: Trip, expected_version: int) -> int:
        """Write the whole document if nobody else wrote since it was read.

        Returns:
            The new version

        Raises:
            ConcurrentModificationError: If the stored version moved on
        """
        new_version = expected_version + 1
        try:
            result = await self.session.execute(
                update(TripDocument)
                .where(
                    TripDocument.trip_id == trip.trip_id,
                    TripDocument.version == expected_version,
                )
                .values(
                    status=trip.status.value,
                    fleet_number=trip.fleet_number,
                    client_name=trip.client_name,
                    is_deleted=trip.is_deleted,
                    document=trip.to_document(),
                    version=new_version,
                )
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Could not save trip {trip.trip_id}") from exc

        if result.rowcount == 0:
            logger.warning(
                "Version conflict saving trip %s (expected version %d)",
                trip.trip_id,
                expected_version,
            )
            raise ConcurrentModificationError(trip.trip_id, expected_version)
        return new_version

    async def append_audit(self, records: list[EditRecord]) -> None:
        """Insert audit rows. Rows are never updated afterwards."""
        rows: list[TripEditRecordRow | CostEditRecordRow] = []
        for record in records:
            common = {
                "record_id": record.record_id,
                "trip_id": record.trip_id,
                "field_changed": record.field_changed,
                "old_value": record.old_value,
                "new_value": record.new_value,
                "change_type": record.change_type.value,
                "edited_by": record.edited_by,
                "edited_at": record.edited_at,
                "reason": record.reason,
            }
            if record.entity_type == AuditEntity.COST:
                rows.append(CostEditRecordRow(cost_id=record.entity_id, **common))
            else:
                rows.append(TripEditRecordRow(**common))
        self.session.add_all(rows)
        try:
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Could not write audit records") from exc

    async def append_deletion(self, record: TripDeletionRecord) -> None:
        self.session.add(
            TripDeletionRecordRow(
                deletion_id=record.deletion_id,
                trip_id=record.trip_id,
                deleted_by=record.deleted_by,
                deleted_at=record.deleted_at,
                reason=record.reason,
                trip_data=record.trip_data,
                total_revenue=record.total_revenue,
                total_costs=record.total_costs,
                cost_entries_count=record.cost_entries_count,
                flagged_items_count=record.flagged_items_count,
            )
        )
        try:
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Could not write deletion record") from exc

    async def audit_trail(self, trip_id: str) -> list[EditRecord]:
        """All stored audit records of a trip and its costs, oldest first."""
        try:
            trip_rows = await self.session.execute(
                select(TripEditRecordRow).where(TripEditRecordRow.trip_id == trip_id)
            )
            cost_rows = await self.session.execute(
                select(CostEditRecordRow).where(CostEditRecordRow.trip_id == trip_id)
            )
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Could not load audit trail for trip {trip_id}") from exc

        records = [_to_record(row, AuditEntity.TRIP, row.trip_id) for row in trip_rows.scalars()]
        records += [_to_record(row, AuditEntity.COST, row.cost_id) for row in cost_rows.scalars()]
        records.sort(key=lambda r: (r.edited_at, r.record_id))
        return records


def _to_record(
    row: TripEditRecordRow | CostEditRecordRow, entity_type: AuditEntity, entity_id: str
) -> EditRecord:
    return EditRecord.from_document(
        {
            "record_id": row.record_id,
            "entity_type": entity_type.value,
            "entity_id": entity_id,
            "trip_id": row.trip_id,
            "field_changed": row.field_changed,
            "old_value": row.old_value,
            "new_value": row.new_value,
            "change_type": row.change_type,
            "edited_by": row.edited_by,
            "edited_at": row.edited_at,
            "reason": row.reason,
        }
    )

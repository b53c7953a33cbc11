"""Append-only audit tables.

Rows in these tables are written once. Any attempt to update or delete them
through the ORM is refused before it reaches the database.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Integer, Numeric, String, Text, event
from sqlalchemy.orm import Mapped, ORMExecuteState, Session, mapped_column

from trip_engine.errors import PersistenceFailure
from trip_engine.models.base import Base, TimestampMixin


class AppendOnlyViolation(PersistenceFailure):
    """Raised when code tries to modify or delete an audit row."""


class AppendOnlyMixin:
    """Marker for tables that only accept inserts."""


class TripEditRecordRow(Base, TimestampMixin, AppendOnlyMixin):
    """One audited change of a trip field."""

    __tablename__ = "trip_edit_record"

    record_id: Mapped[str] = mapped_column(String, primary_key=True)
    trip_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    field_changed: Mapped[str] = mapped_column(String, nullable=False)
    old_value: Mapped[str] = mapped_column(Text, nullable=False)
    new_value: Mapped[str] = mapped_column(Text, nullable=False)
    change_type: Mapped[str] = mapped_column(String, nullable=False)
    edited_by: Mapped[str] = mapped_column(String, nullable=False)
    edited_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")


class CostEditRecordRow(Base, TimestampMixin, AppendOnlyMixin):
    """One audited change of a cost entry field."""

    __tablename__ = "cost_edit_record"

    record_id: Mapped[str] = mapped_column(String, primary_key=True)
    cost_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    trip_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    field_changed: Mapped[str] = mapped_column(String, nullable=False)
    old_value: Mapped[str] = mapped_column(Text, nullable=False)
    new_value: Mapped[str] = mapped_column(Text, nullable=False)
    change_type: Mapped[str] = mapped_column(String, nullable=False)
    edited_by: Mapped[str] = mapped_column(String, nullable=False)
    edited_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")


class TripDeletionRecordRow(Base, TimestampMixin, AppendOnlyMixin):
    """Snapshot of a trip taken at soft deletion."""

    __tablename__ = "trip_deletion_record"

    deletion_id: Mapped[str] = mapped_column(String, primary_key=True)
    trip_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    deleted_by: Mapped[str] = mapped_column(String, nullable=False)
    deleted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    trip_data: Mapped[str] = mapped_column(Text, nullable=False)
    total_revenue: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_costs: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    cost_entries_count: Mapped[int] = mapped_column(Integer, nullable=False)
    flagged_items_count: Mapped[int] = mapped_column(Integer, nullable=False)


@event.listens_for(Session, "before_flush")
def _refuse_audit_mutation(session: Session, flush_context, instances) -> None:
    for obj in list(session.dirty) + list(session.deleted):
        if isinstance(obj, AppendOnlyMixin) and (
            obj in session.deleted or session.is_modified(obj)
        ):
            raise AppendOnlyViolation(
                f"{type(obj).__tablename__} rows are append-only"
            )


@event.listens_for(Session, "do_orm_execute")
def _refuse_bulk_audit_mutation(state: ORMExecuteState) -> None:
    if not (state.is_update or state.is_delete):
        return
    for mapper in state.all_mappers:
        if issubclass(mapper.class_, AppendOnlyMixin):
            raise AppendOnlyViolation(f"{mapper.local_table.name} rows are append-only")

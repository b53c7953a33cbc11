"""ORM models for trip documents and audit tables."""

from trip_engine.models.audit import (
    AppendOnlyViolation,
    CostEditRecordRow,
    TripDeletionRecordRow,
    TripEditRecordRow,
)
from trip_engine.models.base import Base, TimestampMixin
from trip_engine.models.trip import TripDocument

__all__ = [
    "AppendOnlyViolation",
    "Base",
    "CostEditRecordRow",
    "TimestampMixin",
    "TripDeletionRecordRow",
    "TripDocument",
    "TripEditRecordRow",
]

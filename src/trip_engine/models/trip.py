"""Trip document table."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from trip_engine.models.base import Base, TimestampMixin


class TripDocument(Base, TimestampMixin):
    """A trip stored as one JSON document with embedded costs.

    ``version`` is bumped on every save and guards concurrent writers.
    """

    __tablename__ = "trip"

    trip_id: Mapped[str] = mapped_column(String, primary_key=True)
    status: Mapped[str] = mapped_column(String, nullable=False)
    fleet_number: Mapped[str] = mapped_column(String, nullable=False, index=True)
    client_name: Mapped[str] = mapped_column(String, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    document: Mapped[dict[str, Any]] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'completed', 'invoiced', 'paid')",
            name="trip_status_check",
        ),
        CheckConstraint("version >= 1", name="trip_version_positive"),
    )

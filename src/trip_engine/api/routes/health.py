"""Health check endpoints for the API and the trip store."""

from datetime import datetime, timezone

from fastapi import APIRouter, status
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from trip_engine import __version__
from trip_engine.api.dependencies import DbSession
from trip_engine.config import get_settings
from trip_engine.models import TripDocument

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Trip store health.

    ``trips_by_status`` counts live (not soft-deleted) trips; it is empty
    when the store could not be queried.
    """

    status: str
    timestamp: datetime
    database: str
    version: str
    engine_version: str
    trips_by_status: dict[str, int] = Field(default_factory=dict)


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(db: DbSession) -> HealthResponse:
    """Query the trip table; a failing store reports ``degraded``."""
    counts: dict[str, int] = {}
    try:
        result = await db.execute(
            select(TripDocument.status, func.count())
            .where(TripDocument.is_deleted.is_(False))
            .group_by(TripDocument.status)
        )
        counts = {row[0]: row[1] for row in result}
        db_status = "healthy"
    except SQLAlchemyError:
        db_status = "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
        version=__version__,
        engine_version=get_settings().engine_version,
        trips_by_status=counts,
    )


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}

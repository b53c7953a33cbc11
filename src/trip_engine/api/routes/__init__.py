"""API routes."""

from trip_engine.api.routes.catalog import router as catalog_router
from trip_engine.api.routes.health import router as health_router
from trip_engine.api.routes.trips import router as trips_router

__all__ = ["catalog_router", "health_router", "trips_router"]

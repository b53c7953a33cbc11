"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from trip_engine.config import get_settings
from trip_engine.costing.rates import RateTable
from trip_engine.costing.taxonomy import CostTaxonomy
from trip_engine.database import init_db
from trip_engine.services.trip_service import TripService


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


@lru_cache(maxsize=1)
def get_rate_table() -> RateTable:
    """Rate versions, loaded once per process."""
    settings = get_settings()
    if settings.system_cost_rates_file:
        return RateTable.from_file(settings.system_cost_rates_file)
    return RateTable()


@lru_cache(maxsize=1)
def get_taxonomy() -> CostTaxonomy:
    return CostTaxonomy()


async def get_actor(x_actor: Annotated[str | None, Header()] = None) -> str | None:
    """Acting user from the X-Actor header; the service falls back to DEFAULT_ACTOR."""
    return x_actor.strip() if x_actor else None


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Actor = Annotated[str | None, Depends(get_actor)]
Rates = Annotated[RateTable, Depends(get_rate_table)]
Taxonomy = Annotated[CostTaxonomy, Depends(get_taxonomy)]


async def get_trip_service(db: DbSession, rates: Rates, taxonomy: Taxonomy) -> TripService:
    return TripService(db, taxonomy=taxonomy, rates=rates)


Service = Annotated[TripService, Depends(get_trip_service)]

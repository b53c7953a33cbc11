"""Integration test fixtures backed by a file-based SQLite database."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from trip_engine.api.app import create_app
from trip_engine.api.dependencies import get_db_session, get_trip_service
from trip_engine.config import Settings
from trip_engine.costing.rates import RateTable
from trip_engine.costing.taxonomy import CostTaxonomy
from trip_engine.database import create_schema, get_engine, make_session_factory
from trip_engine.services.trip_service import TripService


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path}/trips.db",
        engine_version="test",
        host="127.0.0.1",
        port=8000,
        debug=False,
        cas_max_attempts=5,
    )


@pytest_asyncio.fixture
async def test_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Engine with a fresh schema per test."""
    engine = get_engine(test_settings.database_url)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(test_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_service(test_settings):
    """Build a service on its own session, as concurrent requests would."""

    def _make(session: AsyncSession) -> TripService:
        return TripService(
            session,
            taxonomy=CostTaxonomy(),
            rates=RateTable(),
            settings=test_settings,
        )

    return _make


@pytest.fixture
def service(db_session, make_service) -> TripService:
    return make_service(db_session)


@pytest_asyncio.fixture
async def client(session_factory, test_settings) -> AsyncGenerator[AsyncClient, None]:
    """API client wired to the test database."""
    app = create_app()

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def _service() -> AsyncGenerator[TripService, None]:
        async with session_factory() as session:
            yield TripService(session, settings=test_settings)

    app.dependency_overrides[get_db_session] = _session
    app.dependency_overrides[get_trip_service] = _service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

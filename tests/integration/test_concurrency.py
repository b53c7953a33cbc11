"""Concurrent writers on the same trip.

Goal: read-decide-write is a single unit, so two requests racing on one
trip can never both pass a check that only one of them should pass.
"""

import asyncio

import pytest

from factories import make_draft, trip_payload
from trip_engine.errors import ValidationError

pytestmark = pytest.mark.asyncio


class TestConcurrentCostEntries:
    async def test_duplicate_reference_race(self, service, session_factory, make_service):
        stored = await service.create_trip(trip_payload(), "ops", with_system_costs=False)
        trip_id = stored.trip.trip_id

        async def add(actor: str):
            async with session_factory() as session:
                return await make_service(session).add_cost(
                    trip_id, make_draft(reference_number="INV-42"), actor
                )

        results = await asyncio.gather(add("clerk-a"), add("clerk-b"), return_exceptions=True)

        failures = [r for r in results if isinstance(r, BaseException)]
        assert len(failures) == 1
        assert isinstance(failures[0], ValidationError)
        assert failures[0].fields() == {"reference_number"}

        loaded = await service.get_trip(trip_id)
        assert [c.reference_number for c in loaded.trip.costs] == ["INV-42"]
        assert loaded.version == 2

    async def test_distinct_references_both_land(self, service, session_factory, make_service):
        stored = await service.create_trip(trip_payload(), "ops", with_system_costs=False)
        trip_id = stored.trip.trip_id

        async def add(reference: str):
            async with session_factory() as session:
                return await make_service(session).add_cost(
                    trip_id, make_draft(reference_number=reference), "clerk"
                )

        await asyncio.gather(add("INV-1"), add("INV-2"))

        loaded = await service.get_trip(trip_id)
        assert sorted(c.reference_number for c in loaded.trip.costs) == ["INV-1", "INV-2"]
        assert loaded.version == 3
        assert len(await service.audit_trail(trip_id)) == 3

    async def test_separate_trips_are_independent(self, service, session_factory, make_service):
        first = await service.create_trip(trip_payload(), "ops", with_system_costs=False)
        second = await service.create_trip(trip_payload(fleet_number="22H"), "ops", with_system_costs=False)

        async def add(trip_id: str):
            async with session_factory() as session:
                return await make_service(session).add_cost(
                    trip_id, make_draft(reference_number="INV-1"), "clerk"
                )

        await asyncio.gather(add(first.trip.trip_id), add(second.trip.trip_id))

        for stored in (first, second):
            loaded = await service.get_trip(stored.trip.trip_id)
            assert len(loaded.trip.costs) == 1

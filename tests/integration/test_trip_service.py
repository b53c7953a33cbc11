"""Trip service units of work against a real database."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from factories import make_attachment, make_draft, trip_payload
from trip_engine.costing.types import ChangeType, InvestigationStatus, TripStatus
from trip_engine.errors import (
    ConcurrentModificationError,
    GateViolation,
    TripNotFoundError,
    ValidationError,
)
from trip_engine.services.invoice_gate import FinalTimeline
from trip_engine.services.state_machine import TripStateMachine
from trip_engine.services.trip_service import TripService
from trip_engine.services.trip_store import TripStore

pytestmark = pytest.mark.asyncio

TIMELINE = FinalTimeline.from_values(
    "2024-06-05T09:00:00+00:00", "2024-06-05T11:00:00+00:00", "2024-06-05T13:00:00+00:00"
)


class TestCreateTrip:
    async def test_create_with_system_costs(self, service: TripService):
        stored = await service.create_trip(trip_payload(), "ops")

        assert stored.version == 1
        assert stored.trip.status == TripStatus.ACTIVE
        assert len(stored.trip.costs) == 10
        assert all(c.is_system_generated for c in stored.trip.costs)

        loaded = await service.get_trip(stored.trip.trip_id)
        assert loaded.trip.total_costs() == Decimal("8141.40")

        trail = await service.audit_trail(stored.trip.trip_id)
        assert [r.change_type for r in trail].count(ChangeType.SYSTEM_GENERATION) == 10
        assert [r.change_type for r in trail].count(ChangeType.CREATION) == 1

    async def test_invalid_trip_is_not_stored(self, service: TripService):
        with pytest.raises(ValidationError):
            await service.create_trip(trip_payload(route=""), "ops")

        assert await service.list_trips() == []

    async def test_default_actor(self, service: TripService):
        stored = await service.create_trip(trip_payload(), None)

        assert stored.trip.created_by == "system"

    async def test_unknown_trip(self, service: TripService):
        with pytest.raises(TripNotFoundError):
            await service.get_trip("trip-missing")


class TestLifecycle:
    """Full run: flagged cost blocks completion until investigated."""

    async def test_active_to_paid(self, service: TripService):
        stored = await service.create_trip(trip_payload(), "ops")
        trip_id = stored.trip.trip_id

        _, cost = await service.add_cost(
            trip_id,
            make_draft(category="Border Costs", sub_category="Gate Pass", reference_number="GP-1"),
            "ops",
        )
        assert cost.is_flagged

        with pytest.raises(GateViolation) as exc_info:
            await service.complete_trip(trip_id, "ops")
        assert exc_info.value.blocking_count == 1
        assert (await service.get_trip(trip_id)).version == 2

        await service.advance_investigation(trip_id, cost.cost_id, "in-progress", "auditor")
        _, remaining = await service.advance_investigation(
            trip_id, cost.cost_id, "resolved", "auditor", resolution_comment="Receipt matches"
        )
        assert remaining == 0

        await service.complete_trip(trip_id, "ops")
        await service.submit_invoice(
            trip_id,
            "INV-2024-001",
            "2024-06-06",
            "2024-07-06",
            TIMELINE,
            "finance",
            proof_of_delivery=[make_attachment("pod.pdf")],
        )
        trip = await service.record_payment(trip_id, "25000.00", "paid", "finance")
        assert trip.status == TripStatus.PAID

        loaded = await service.get_trip(trip_id)
        assert loaded.version == 7
        history = TripStateMachine.status_history(loaded.trip)
        assert history == [
            TripStatus.ACTIVE,
            TripStatus.COMPLETED,
            TripStatus.INVOICED,
            TripStatus.PAID,
        ]
        assert loaded.trip.find_cost(cost.cost_id).investigation_status == InvestigationStatus.RESOLVED

        trail = await service.audit_trail(trip_id)
        assert len(trail) == 17

    async def test_costs_frozen_after_completion(self, service: TripService):
        stored = await service.create_trip(trip_payload(), "ops", with_system_costs=False)
        trip_id = stored.trip.trip_id
        await service.complete_trip(trip_id, "ops")

        with pytest.raises(GateViolation):
            await service.add_cost(trip_id, make_draft(), "ops")

        _, extra = await service.add_additional_cost(
            trip_id,
            {"cost_type": "demurrage", "description": "Held at Chirundu", "amount": "800"},
            "ops",
        )
        loaded = await service.get_trip(trip_id)
        assert loaded.trip.costs == []
        assert [a.additional_cost_id for a in loaded.trip.additional_costs] == [
            extra.additional_cost_id
        ]

    async def test_invoice_gate_errors_are_reported_together(self, service: TripService):
        stored = await service.create_trip(trip_payload(), "ops", with_system_costs=False)
        trip_id = stored.trip.trip_id
        await service.complete_trip(trip_id, "ops")

        with pytest.raises(GateViolation) as exc_info:
            await service.submit_invoice(trip_id, "", None, None, FinalTimeline(), "finance")

        assert len(exc_info.value.errors) == 7
        assert (await service.get_trip(trip_id)).trip.status == TripStatus.COMPLETED

    async def test_auto_completion(self, service: TripService):
        stored = await service.create_trip(trip_payload(), "ops", with_system_costs=False)

        trip = await service.auto_complete_trip(
            stored.trip.trip_id, "All flagged items resolved", "resolver"
        )

        assert trip.status == TripStatus.COMPLETED
        assert trip.auto_completed_reason == "All flagged items resolved"


class TestMutations:
    async def test_failed_mutation_leaves_state_unchanged(self, service: TripService):
        stored = await service.create_trip(trip_payload(), "ops", with_system_costs=False)
        trip_id = stored.trip.trip_id
        await service.add_cost(trip_id, make_draft(reference_number="INV-9"), "ops")
        before = await service.get_trip(trip_id)
        trail_before = await service.audit_trail(trip_id)

        with pytest.raises(ValidationError) as exc_info:
            await service.add_cost(trip_id, make_draft(reference_number="inv-9"), "ops")

        assert exc_info.value.fields() == {"reference_number"}
        after = await service.get_trip(trip_id)
        assert after.version == before.version
        assert len(after.trip.costs) == 1
        assert len(await service.audit_trail(trip_id)) == len(trail_before)

    async def test_update_trip_audits_each_field(self, service: TripService):
        stored = await service.create_trip(trip_payload(), "ops", with_system_costs=False)
        trip_id = stored.trip.trip_id

        _, records = await service.update_trip(
            trip_id, {"route": "Harare - Durban", "distance_km": "1650"}, "Re-routed", "ops"
        )

        assert {r.field_changed for r in records} == {"route", "distance_km"}
        trail = await service.audit_trail(trip_id)
        assert [r.reason for r in trail if r.change_type == ChangeType.UPDATE] == [
            "Re-routed",
            "Re-routed",
        ]

    async def test_regeneration_replaces_system_costs(self, service: TripService):
        stored = await service.create_trip(trip_payload(), "ops")
        trip_id = stored.trip.trip_id
        ids = sorted(c.cost_id for c in stored.trip.costs)

        await service.update_trip(trip_id, {"distance_km": "600"}, "Odometer", "ops")
        trip, entries = await service.generate_system_costs(trip_id, "ops")

        assert len(entries) == 10
        assert sorted(c.cost_id for c in trip.costs) == ids
        assert trip.total_costs() == Decimal("8141.40") + Decimal("2.69") * 100

    async def test_regeneration_on_another_day_is_audited(self, service: TripService):
        stored = await service.create_trip(trip_payload(), "ops")
        trip_id = stored.trip.trip_id

        trip, _ = await service.generate_system_costs(trip_id, "ops", as_of=date(2030, 1, 1))

        trail = await service.audit_trail(trip_id)
        date_records = [
            r
            for r in trail
            if r.change_type == ChangeType.SYSTEM_GENERATION and r.field_changed == "date"
        ]
        assert len(date_records) == 10
        assert {r.new_value for r in date_records} == {"2030-01-01"}
        assert all(c.date == date(2030, 1, 1) for c in trip.costs)

    async def test_payment_follow_up_and_delay(self, service: TripService):
        stored = await service.create_trip(trip_payload(), "ops", with_system_costs=False)
        trip_id = stored.trip.trip_id
        await service.add_delay_reason(
            trip_id,
            {
                "delay_type": "border_delays",
                "description": "Queue",
                "delay_duration_hours": "6",
                "severity": "moderate",
            },
            "ops",
        )
        await service.complete_trip(trip_id, "ops")
        await service.submit_invoice(
            trip_id, "INV-7", "2024-06-06", "2024-07-06", TIMELINE, "finance",
            proof_of_delivery=[make_attachment("pod.pdf")],
        )
        await service.add_follow_up(
            trip_id,
            {
                "follow_up_date": "2024-07-10",
                "contact_method": "email",
                "response_summary": "Paying half now",
                "outcome": "partial_payment",
            },
            "finance",
        )
        trip = await service.record_payment(trip_id, "12500", "partial", "finance")

        assert trip.status == TripStatus.INVOICED
        assert len(trip.delay_reasons) == 1
        assert len(trip.follow_up_history) == 1

    async def test_import_trip(self, service: TripService):
        record = trip_payload(trip_id="EXT-1", status="Delivered", booking_source="tms")

        stored = await service.import_trip(record, "sync")

        assert stored.trip.status == TripStatus.COMPLETED
        assert stored.trip.external_status == "Delivered"
        with pytest.raises(ValidationError) as exc_info:
            await service.import_trip(record, "sync")
        assert exc_info.value.fields() == {"trip_id"}

    async def test_soft_delete(self, service: TripService):
        stored = await service.create_trip(trip_payload(), "ops")
        trip_id = stored.trip.trip_id

        record = await service.delete_trip(trip_id, "Duplicate booking", "admin")

        assert record.cost_entries_count == 10
        with pytest.raises(TripNotFoundError):
            await service.get_trip(trip_id)
        deleted = await service.get_trip(trip_id, include_deleted=True)
        assert deleted.trip.is_deleted
        assert await service.list_trips() == []
        trail = await service.audit_trail(trip_id)
        assert trail[-1].change_type == ChangeType.DELETION


class TestCompareAndSet:
    async def test_stale_version_is_rejected(self, service: TripService, db_session: AsyncSession):
        stored = await service.create_trip(trip_payload(), "ops", with_system_costs=False)
        store = TripStore(db_session)

        assert await store.save(stored.trip, stored.version) == 2
        with pytest.raises(ConcurrentModificationError):
            await store.save(stored.trip, stored.version)
        await db_session.rollback()

    async def test_conflict_is_retried(self, service: TripService, monkeypatch):
        stored = await service.create_trip(trip_payload(), "ops", with_system_costs=False)
        trip_id = stored.trip.trip_id
        real_save = service.store.save
        calls = []

        async def flaky_save(trip, expected_version):
            calls.append(expected_version)
            if len(calls) == 1:
                raise ConcurrentModificationError(trip.trip_id, expected_version)
            return await real_save(trip, expected_version)

        monkeypatch.setattr(service.store, "save", flaky_save)
        _, entry = await service.add_cost(trip_id, make_draft(), "ops")

        assert calls == [1, 1]
        loaded = await service.get_trip(trip_id)
        assert [c.cost_id for c in loaded.trip.costs] == [entry.cost_id]
        assert len(await service.audit_trail(trip_id)) == 2

    async def test_retries_are_bounded(self, service: TripService, monkeypatch):
        stored = await service.create_trip(trip_payload(), "ops", with_system_costs=False)
        attempts = []

        async def always_stale(trip, expected_version):
            attempts.append(expected_version)
            raise ConcurrentModificationError(trip.trip_id, expected_version)

        monkeypatch.setattr(service.store, "save", always_stale)
        with pytest.raises(ConcurrentModificationError):
            await service.add_cost(stored.trip.trip_id, make_draft(), "ops")

        assert len(attempts) == service.settings.cas_max_attempts

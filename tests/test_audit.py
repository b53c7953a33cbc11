"""Tests for the audit recorder."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from factories import FIXED_NOW, make_cost
from trip_engine.costing.types import AuditEntity, ChangeType, TripStatus
from trip_engine.services.audit import (
    UNSET,
    AuditRecorder,
    audit_cost_change,
    audit_trip_change,
    stringify,
)


class TestStringify:
    def test_values(self):
        assert stringify(None) == UNSET
        assert stringify("") == UNSET
        assert stringify(TripStatus.PAID) == "paid"
        assert stringify(Decimal("12.50")) == "12.50"
        assert stringify(True) == "true"
        assert stringify(date(2024, 6, 1)) == "2024-06-01"
        assert stringify(datetime(2024, 6, 1, 8, tzinfo=timezone.utc)) == "2024-06-01T08:00:00+00:00"


class TestAuditRecorder:
    def test_records_are_stamped_by_clock(self, recorder):
        record = recorder.record(
            AuditEntity.TRIP, "trip-1", "route", "A", "B", ChangeType.UPDATE, "ops", reason="fix"
        )

        assert record.edited_at == FIXED_NOW
        assert record.trip_id == "trip-1"
        assert record.edited_by == "ops"
        assert record.reason == "fix"

    def test_creation_has_empty_old_value(self, recorder):
        record = recorder.record(
            AuditEntity.TRIP, "trip-1", "status", "active", "active", ChangeType.CREATION, "ops"
        )

        assert record.old_value == ""

    def test_actor_required(self, recorder):
        with pytest.raises(ValueError):
            recorder.record(AuditEntity.TRIP, "trip-1", "route", "A", "B", ChangeType.UPDATE, "")

    def test_cost_records_need_trip(self, recorder):
        with pytest.raises(ValueError):
            recorder.record(AuditEntity.COST, "cost-1", "amount", 1, 2, ChangeType.UPDATE, "ops")

    def test_drain_and_discard(self):
        recorder = AuditRecorder()
        recorder.record(AuditEntity.TRIP, "t", "route", "A", "B", ChangeType.UPDATE, "ops")

        drained = recorder.drain()
        assert len(drained) == 1
        assert recorder.pending == ()

        recorder.record(AuditEntity.TRIP, "t", "route", "B", "C", ChangeType.UPDATE, "ops")
        recorder.discard()
        assert recorder.pending == ()


class TestHelpers:
    def test_trip_change_appends_to_history(self, trip, recorder):
        record = audit_trip_change(
            recorder, trip, "route", trip.route, "X", ChangeType.UPDATE, "ops"
        )

        assert trip.edit_history == [record]
        assert record.entity_type == AuditEntity.TRIP

    def test_cost_change_appends_to_history(self, recorder):
        cost = make_cost()

        record = audit_cost_change(
            recorder, cost, "amount", cost.amount, Decimal("1"), ChangeType.UPDATE, "ops"
        )

        assert cost.edit_history == [record]
        assert record.entity_id == cost.cost_id
        assert record.trip_id == "trip-1"
        assert (record.old_value, record.new_value) == ("100.00", "1")

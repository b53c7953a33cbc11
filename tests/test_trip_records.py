"""Tests for trip creation, satellite records and soft deletion."""

import json
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from factories import make_attachment, make_flagged_cost, make_trip
from trip_engine.costing.types import (
    AdditionalCostType,
    ChangeType,
    Currency,
    FollowUpPriority,
    FollowUpStatus,
    TripStatus,
)
from trip_engine.errors import GateViolation, ValidationError
from trip_engine.services import trip_records

NOW = datetime(2024, 6, 12, 9, 0, tzinfo=timezone.utc)


def trip_input(**overrides):
    values = {
        "fleet_number": "21H",
        "route": "Harare - Johannesburg",
        "driver_name": "T. Moyo",
        "client_name": "Acme Foods",
        "start_date": "2024-06-01T08:00:00Z",
        "end_date": "2024-06-05T17:00:00Z",
        "base_revenue": "25000",
        "revenue_currency": "zar",
        "distance_km": "500",
    }
    values.update(overrides)
    return values


class TestCreateTrip:
    def test_creates_active_trip(self, recorder):
        trip = trip_records.create_trip(
            trip_input(planned_arrival_at="2024-06-05T08:00:00Z"), "ops", recorder
        )

        assert trip.status == TripStatus.ACTIVE
        assert trip.revenue_currency == Currency.ZAR
        assert trip.base_revenue == Decimal("25000")
        assert trip.created_by == "ops"
        assert trip.booking_source == "manual"
        assert trip.planned_arrival_at == datetime(2024, 6, 5, 8, tzinfo=timezone.utc)
        (record,) = recorder.pending
        assert record.change_type == ChangeType.CREATION
        assert record.new_value == "active"

    def test_mixed_offsets_are_normalized_to_utc(self, recorder):
        trip = trip_records.create_trip(
            trip_input(start_date="2024-06-01", end_date="2024-06-05T17:00:00+02:00"),
            "ops",
            recorder,
        )

        assert trip.start_date == datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert trip.end_date == datetime(2024, 6, 5, 15, tzinfo=timezone.utc)

    def test_end_before_start_across_offsets(self, recorder):
        with pytest.raises(ValidationError) as exc_info:
            trip_records.create_trip(
                trip_input(start_date="2024-06-05T10:00:00", end_date="2024-06-05T11:00:00+02:00"),
                "ops",
                recorder,
            )

        assert exc_info.value.fields() == {"end_date"}

    def test_revenue_rounded_to_cents(self, recorder):
        trip = trip_records.create_trip(trip_input(base_revenue="25000.005"), "ops", recorder)

        assert str(trip.base_revenue) == "25000.01"

    def test_collects_every_error(self, recorder):
        with pytest.raises(ValidationError) as exc_info:
            trip_records.create_trip(
                trip_input(
                    route=" ",
                    base_revenue="-1",
                    revenue_currency="GBP",
                    planned_offload_at="tomorrow",
                ),
                "ops",
                recorder,
            )

        assert exc_info.value.fields() == {
            "route",
            "base_revenue",
            "revenue_currency",
            "planned_offload_at",
        }

    def test_end_before_start(self, recorder):
        with pytest.raises(ValidationError) as exc_info:
            trip_records.create_trip(
                trip_input(end_date="2024-05-31T00:00:00Z"), "ops", recorder
            )

        assert exc_info.value.fields() == {"end_date"}


class TestAdditionalCosts:
    def test_requires_completed_trip(self, trip, recorder):
        with pytest.raises(GateViolation):
            trip_records.add_additional_cost(
                trip, {"cost_type": "demurrage", "description": "x", "amount": "10"}, "ops", recorder
            )

    def test_added_after_completion(self, completed_trip, recorder):
        record = trip_records.add_additional_cost(
            completed_trip,
            {"cost_type": "demurrage", "description": "Two days at Chirundu", "amount": "800"},
            "ops",
            recorder,
            supporting_documents=[make_attachment("demurrage.pdf")],
            now=NOW,
        )

        assert record.cost_type == AdditionalCostType.DEMURRAGE
        assert record.currency == Currency.ZAR
        assert record.date == date(2024, 6, 12)
        assert completed_trip.additional_costs == [record]
        assert recorder.pending[-1].change_type == ChangeType.ADDITIONAL_COST
        # additional costs are not part of the cost collection
        assert completed_trip.costs == []

    def test_amount_must_be_positive(self, completed_trip, recorder):
        with pytest.raises(ValidationError) as exc_info:
            trip_records.add_additional_cost(
                completed_trip,
                {"cost_type": "storage", "description": "Yard", "amount": "0"},
                "ops",
                recorder,
            )

        assert exc_info.value.fields() == {"amount"}


class TestDelayReasons:
    def test_recorded_in_any_status(self, recorder):
        trip = make_trip(status=TripStatus.PAID)

        record = trip_records.add_delay_reason(
            trip,
            {
                "delay_type": "border_delays",
                "description": "Queue at Beitbridge",
                "delay_duration_hours": "14.5",
                "severity": "major",
            },
            "ops",
            recorder,
        )

        assert record.delay_duration_hours == Decimal("14.5")
        assert trip.delay_reasons == [record]

    def test_unknown_type(self, trip, recorder):
        with pytest.raises(ValidationError) as exc_info:
            trip_records.add_delay_reason(
                trip,
                {"delay_type": "aliens", "description": "?", "delay_duration_hours": 1, "severity": "minor"},
                "ops",
                recorder,
            )

        assert exc_info.value.fields() == {"delay_type"}


class TestFollowUps:
    def test_only_on_invoiced_trips(self, completed_trip, recorder):
        with pytest.raises(GateViolation):
            trip_records.add_follow_up(completed_trip, {}, "finance", recorder)

    def test_records_follow_up(self, recorder):
        trip = make_trip(status=TripStatus.INVOICED)

        record = trip_records.add_follow_up(
            trip,
            {
                "follow_up_date": "2024-07-10",
                "contact_method": "call",
                "response_summary": "Payment run on Friday",
                "outcome": "promised_payment",
                "next_follow_up_date": "2024-07-15",
            },
            "finance",
            recorder,
        )

        assert record.status == FollowUpStatus.PENDING
        assert record.priority == FollowUpPriority.MEDIUM
        assert record.responsible_staff == "finance"
        assert trip.last_follow_up_date == date(2024, 7, 10)
        assert recorder.pending[-1].change_type == ChangeType.FOLLOW_UP

    def test_next_date_not_earlier(self, recorder):
        trip = make_trip(status=TripStatus.INVOICED)

        with pytest.raises(ValidationError) as exc_info:
            trip_records.add_follow_up(
                trip,
                {
                    "follow_up_date": "2024-07-10",
                    "contact_method": "email",
                    "response_summary": "No answer",
                    "outcome": "no_response",
                    "next_follow_up_date": "2024-07-01",
                },
                "finance",
                recorder,
            )

        assert exc_info.value.fields() == {"next_follow_up_date"}


class TestDeletion:
    def test_snapshot_and_counts(self, recorder):
        trip = make_trip(costs=[make_flagged_cost()])

        record = trip_records.build_deletion_record(trip, "admin", "Duplicate booking", recorder, now=NOW)

        assert trip.is_deleted
        assert record.total_revenue == Decimal("25000.00")
        assert record.total_costs == Decimal("100.00")
        assert record.cost_entries_count == 1
        assert record.flagged_items_count == 1
        assert json.loads(record.trip_data)["trip_id"] == "trip-1"
        assert recorder.pending[-1].change_type == ChangeType.DELETION

    def test_reason_required(self, trip, recorder):
        with pytest.raises(ValidationError):
            trip_records.build_deletion_record(trip, "admin", "", recorder)

        assert not trip.is_deleted

    def test_cannot_delete_twice(self, trip, recorder):
        trip_records.build_deletion_record(trip, "admin", "Duplicate", recorder)

        with pytest.raises(ValidationError):
            trip_records.build_deletion_record(trip, "admin", "Again", recorder)

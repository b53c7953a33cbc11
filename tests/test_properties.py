"""Property-based tests for validation, lifecycle and system costs."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from factories import make_attachment, make_cost, make_draft, make_flagged_cost, make_trip
from trip_engine.costing.rates import RateTable
from trip_engine.costing.system_costs import SystemCostGenerator
from trip_engine.costing.taxonomy import CostTaxonomy
from trip_engine.costing.types import Currency, InvestigationStatus, TripStatus
from trip_engine.costing.validator import CostValidator
from trip_engine.errors import GateViolation, ValidationError
from trip_engine.services import cost_ledger
from trip_engine.services.audit import AuditRecorder
from trip_engine.services.invoice_gate import FinalTimeline, InvoiceSubmissionGate
from trip_engine.services.state_machine import TripStateMachine

TAXONOMY = CostTaxonomy()
VALIDATOR = CostValidator(TAXONOMY)
RATES = RateTable()

manual_pairs = st.sampled_from(
    [(cat, sub) for cat, subs in TAXONOMY.manual_categories().items() for sub in subs]
)
amounts = st.decimals(
    min_value=Decimal("0.01"), max_value=Decimal("1000000"), places=2, allow_nan=False
)
investigation = st.sampled_from([None, *InvestigationStatus])


@st.composite
def drafts(draw):
    category, sub_category = draw(manual_pairs)
    has_attachment = draw(st.booleans())
    return make_draft(
        category=category,
        sub_category=sub_category,
        amount=str(draw(amounts)),
        currency=draw(st.sampled_from(["USD", "ZAR"])),
        attachments=[make_attachment()] if has_attachment else [],
        no_document_reason=None if has_attachment else draw(st.sampled_from(["", "Receipt lost"])),
    )


@given(drafts())
def test_flagged_entries_always_carry_a_reason(draft):
    result = VALIDATOR.validate("trip-1", [], draft)

    if result.ok:
        entry = result.entry
        assert entry.is_flagged == bool(entry.flag_reason)
        if entry.is_flagged:
            assert entry.investigation_status == InvestigationStatus.PENDING
        if TAXONOMY.is_high_risk(entry.category):
            assert entry.is_flagged
    else:
        assert result.entry is None


@given(manual_pairs.filter(lambda pair: pair[0] == "Border Costs"), amounts)
def test_border_costs_need_documentation_and_get_flagged(pair, amount):
    category, sub_category = pair

    undocumented = VALIDATOR.validate(
        "trip-1",
        [],
        make_draft(category=category, sub_category=sub_category, amount=str(amount), attachments=[]),
    )
    documented = VALIDATOR.validate(
        "trip-1",
        [],
        make_draft(category=category, sub_category=sub_category, amount=str(amount)),
    )

    assert [e.field for e in undocumented.errors] == ["attachments"]
    assert documented.raise_for_errors().is_flagged


@given(st.lists(investigation, max_size=8))
def test_can_complete_iff_no_unresolved_flags(statuses):
    costs = [
        make_cost(reference_number=f"R{i}")
        if status is None
        else make_flagged_cost(reference_number=f"R{i}", status=status)
        for i, status in enumerate(statuses)
    ]
    trip = make_trip(costs=costs)
    unresolved = TripStateMachine.unresolved_flag_count(costs)

    assert TripStateMachine.can_complete(trip) == (unresolved == 0)
    if unresolved:
        try:
            TripStateMachine.complete(trip, "ops", AuditRecorder())
        except GateViolation as exc:
            assert exc.blocking_count == unresolved
        else:
            raise AssertionError("completion should have been blocked")


ACTIONS = ["complete", "invoice", "pay", "partial", "edit"]


@settings(max_examples=50)
@given(st.lists(st.sampled_from(ACTIONS), max_size=10))
def test_status_history_is_monotonic(actions):
    trip = make_trip()
    recorder = AuditRecorder()
    pod = [make_attachment("pod.pdf")]
    timeline = FinalTimeline.from_values(
        "2024-06-05T09:00:00Z", "2024-06-05T10:00:00Z", "2024-06-05T11:00:00Z"
    )

    for action in actions:
        try:
            if action == "complete":
                TripStateMachine.complete(trip, "ops", recorder)
            elif action == "invoice":
                InvoiceSubmissionGate.submit(
                    trip, "INV-1", "2024-06-06", "2024-07-06", timeline, "ops", recorder,
                    proof_of_delivery=pod,
                )
            elif action == "pay":
                TripStateMachine.record_payment(trip, "25000", "paid", "ops", recorder)
            elif action == "partial":
                TripStateMachine.record_payment(trip, "100", "partial", "ops", recorder)
            else:
                TripStateMachine.update_fields(trip, {"route": "Beira - Harare"}, "fix", "ops", recorder)
        except (GateViolation, ValidationError):
            pass

    history = TripStateMachine.status_history(trip)
    assert TripStateMachine.is_monotonic(history)
    assert trip.status == (history[-1] if history else TripStatus.ACTIVE)


@given(
    days=st.integers(min_value=0, max_value=60),
    extra_hours=st.integers(min_value=0, max_value=23),
    distance=st.integers(min_value=0, max_value=5000),
    currency=st.sampled_from(["USD", "ZAR"]),
)
def test_system_costs_are_traceable(days, extra_hours, distance, currency):
    start = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)
    trip = make_trip(
        start_date=start,
        end_date=start + timedelta(days=days, hours=extra_hours),
        distance_km=Decimal(distance),
        revenue_currency=Currency(currency),
    )
    rates = RATES.resolve(currency, date(2024, 6, 1))

    entries = SystemCostGenerator.generate(trip, rates, entry_date=date(2024, 6, 1))
    duration = SystemCostGenerator.duration_days(trip.start_date, trip.end_date)

    assert len(entries) == 10
    assert duration >= 1
    assert all(e.is_system_generated and not e.is_flagged for e in entries)
    assert all(e.calculation_details for e in entries)
    assert SystemCostGenerator.total(entries) == SystemCostGenerator.expected_total(
        rates, duration, Decimal(distance)
    )


@given(
    route=st.text(min_size=1, max_size=20).filter(lambda s: s.strip()),
    distance=st.integers(min_value=0, max_value=5000),
    description=st.one_of(st.none(), st.text(max_size=20)),
)
def test_one_audit_record_per_changed_field(route, distance, description):
    trip = make_trip()
    recorder = AuditRecorder()
    changes = {"route": route, "distance_km": distance, "description": description}

    expected = 0
    if route.strip() != trip.route:
        expected += 1
    if Decimal(distance) != trip.distance_km:
        expected += 1
    if ((description or "").strip() or None) != trip.description:
        expected += 1

    records = TripStateMachine.update_fields(trip, changes, "bulk edit", "ops", recorder)

    assert len(records) == expected
    assert len(recorder.pending) == expected
    assert len({r.field_changed for r in records}) == expected


@settings(max_examples=50)
@given(
    first_distance=st.integers(min_value=0, max_value=3000),
    second_distance=st.integers(min_value=0, max_value=3000),
    extra_days=st.integers(min_value=0, max_value=10),
    day_shift=st.integers(min_value=0, max_value=30),
)
def test_system_cost_upsert_audits_every_changed_field(
    first_distance, second_distance, extra_days, day_shift
):
    trip = make_trip(distance_km=Decimal(first_distance))
    recorder = AuditRecorder()
    rates = RATES.resolve("ZAR", date(2024, 6, 1))
    first = SystemCostGenerator.generate(trip, rates, entry_date=date(2024, 6, 1))
    cost_ledger.apply_system_costs(trip, first, "system", recorder)
    recorder.drain()
    before = {
        c.cost_id: {name: getattr(c, name) for name in cost_ledger.SYSTEM_COST_FIELDS}
        for c in trip.costs
    }

    trip.distance_km = Decimal(second_distance)
    trip.end_date = trip.end_date + timedelta(days=extra_days)
    regenerated = SystemCostGenerator.generate(
        trip, rates, entry_date=date(2024, 6, 1) + timedelta(days=day_shift)
    )
    cost_ledger.apply_system_costs(trip, regenerated, "system", recorder)

    changed = {
        (cost.cost_id, name)
        for cost in trip.costs
        for name in cost_ledger.SYSTEM_COST_FIELDS
        if getattr(cost, name) != before[cost.cost_id][name]
    }
    records = recorder.pending
    assert len(trip.costs) == 10
    assert len(records) == len(changed)
    assert {(r.entity_id, r.field_changed) for r in records} == changed

"""Pytest fixtures for trip engine tests."""

from __future__ import annotations

from datetime import datetime
from itertools import count

import pytest

from factories import FIXED_NOW, make_trip
from trip_engine.costing.taxonomy import CostTaxonomy
from trip_engine.costing.types import Trip, TripStatus
from trip_engine.costing.validator import CostValidator
from trip_engine.services.audit import AuditRecorder


@pytest.fixture
def clock():
    """Deterministic clock advancing one second per call."""
    ticks = count()

    def _now() -> datetime:
        return FIXED_NOW.replace(second=next(ticks) % 60)

    return _now


@pytest.fixture
def recorder(clock) -> AuditRecorder:
    return AuditRecorder(clock=clock)


@pytest.fixture
def taxonomy() -> CostTaxonomy:
    return CostTaxonomy()


@pytest.fixture
def validator(taxonomy) -> CostValidator:
    return CostValidator(taxonomy)


@pytest.fixture
def trip() -> Trip:
    return make_trip()


@pytest.fixture
def completed_trip() -> Trip:
    return make_trip(status=TripStatus.COMPLETED)

"""Error taxonomy for the trip engine.

- ValidationError: user-correctable input problems, reported all at once
- GateViolation: a lifecycle transition blocked by an invariant
- PersistenceFailure: the store rejected a write
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation failure."""

    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class TripEngineError(Exception):
    """Base class for all engine errors."""


class ValidationError(TripEngineError):
    """Raised when proposed input fails validation.

    Carries every failure found so the caller can present them together.
    """

    def __init__(self, errors: Iterable[FieldError]):
        self.errors = list(errors)
        if not self.errors:
            raise ValueError("ValidationError requires at least one FieldError")
        summary = "; ".join(f"{e.field}: {e.message}" for e in self.errors)
        super().__init__(f"Validation failed: {summary}")

    @classmethod
    def single(cls, field: str, message: str) -> ValidationError:
        return cls([FieldError(field, message)])

    def fields(self) -> set[str]:
        return {e.field for e in self.errors}


class GateViolation(TripEngineError):
    """Raised when a status transition is blocked."""

    def __init__(
        self,
        from_status: str,
        to_status: str,
        reason: str,
        blocking_count: int | None = None,
        errors: Iterable[FieldError] = (),
    ):
        self.from_status = str(from_status)
        self.to_status = str(to_status)
        self.reason = reason
        self.blocking_count = blocking_count
        self.errors = list(errors)
        super().__init__(
            f"Transition from '{self.from_status}' to '{self.to_status}' blocked: {reason}"
        )


class PersistenceFailure(TripEngineError):
    """Raised when the persistence collaborator rejects a write."""


class ConcurrentModificationError(PersistenceFailure):
    """Raised when a trip changed since it was read."""

    def __init__(self, trip_id: str, expected_version: int):
        self.trip_id = trip_id
        self.expected_version = expected_version
        super().__init__(
            f"Trip {trip_id} was modified concurrently (expected version {expected_version})"
        )


class TripNotFoundError(TripEngineError):
    """Raised when a trip does not exist or was deleted."""

    def __init__(self, trip_id: str):
        self.trip_id = trip_id
        super().__init__(f"Trip {trip_id} not found")

"""Trip service - orchestrates trip operations as units of work.

Each operation reads the trip, decides with the pure domain components,
then writes the document (compare-and-set on its version) together with the
audit records in one transaction. A version conflict rolls back and the
whole read-decide-write is retried against the fresh state.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trip_engine.config import Settings, get_settings
from trip_engine.costing.rates import RateNotFoundError, RateTable
from trip_engine.costing.system_costs import SystemCostGenerator
from trip_engine.costing.taxonomy import CostTaxonomy
from trip_engine.costing.types import (
    AdditionalCost,
    Attachment,
    CostEntry,
    CostEntryDraft,
    DelayReason,
    EditRecord,
    FollowUpRecord,
    Trip,
    TripDeletionRecord,
)
from trip_engine.costing.validator import CostValidator
from trip_engine.errors import ConcurrentModificationError, PersistenceFailure, ValidationError
from trip_engine.services import cost_ledger, trip_records
from trip_engine.services.audit import AuditRecorder
from trip_engine.services.import_reconciliation import reconcile_import
from trip_engine.services.invoice_gate import FinalTimeline, InvoiceSubmissionGate
from trip_engine.services.investigations import InvestigationWorkflow
from trip_engine.services.state_machine import TripStateMachine
from trip_engine.services.trip_store import StoredTrip, TripStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TripService:
    """Service for managing the trip lifecycle.

    Operations:
    - create_trip / import_trip: insert a new trip (optionally with system costs)
    - update_trip: audited field edits
    - add_cost / update_cost / flag_cost / remove_cost: manual cost entries
    - advance_investigation: work a flagged cost towards resolution
    - generate_system_costs: per-km and per-day overheads
    - complete_trip / auto_complete_trip / submit_invoice / record_payment
    - add_additional_cost / add_delay_reason / add_follow_up
    - delete_trip: soft delete with a snapshot
    """

    def __init__(
        self,
        session: AsyncSession,
        taxonomy: CostTaxonomy | None = None,
        rates: RateTable | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.session = session
        self.store = TripStore(session)
        self.settings = settings or get_settings()
        self.taxonomy = taxonomy or CostTaxonomy()
        self.validator = CostValidator(self.taxonomy)
        self.rates = rates or self._load_rates(self.settings)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    @staticmethod
    def _load_rates(settings: Settings) -> RateTable:
        if settings.system_cost_rates_file:
            return RateTable.from_file(settings.system_cost_rates_file)
        return RateTable()

    def _actor(self, actor: str | None) -> str:
        return (actor or "").strip() or self.settings.default_actor

    # ===== Unit of work =====

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceFailure("Could not commit transaction") from exc

    async def _mutate(
        self,
        trip_id: str,
        decide: Callable[[Trip, AuditRecorder], T],
        on_saved: Callable[[T], Awaitable[None]] | None = None,
    ) -> tuple[Trip, T]:
        """Run read-decide-write for one trip, retrying on version conflicts."""
        attempts = self.settings.cas_max_attempts
        for attempt in range(1, attempts + 1):
            recorder = AuditRecorder(self.clock)
            try:
                stored = await self.store.get(trip_id)
                result = decide(stored.trip, recorder)
                await self.store.save(stored.trip, stored.version)
                await self.store.append_audit(recorder.drain())
                if on_saved is not None:
                    await on_saved(result)
                await self._commit()
                return stored.trip, result
            except ConcurrentModificationError:
                recorder.discard()
                await self.session.rollback()
                if attempt == attempts:
                    raise
                logger.info(
                    "Retrying trip %s after version conflict (attempt %d/%d)",
                    trip_id,
                    attempt + 1,
                    attempts,
                )
            except Exception:
                recorder.discard()
                await self.session.rollback()
                raise
        raise ConcurrentModificationError(trip_id, -1)

    async def _insert(self, trip: Trip, recorder: AuditRecorder) -> StoredTrip:
        try:
            stored = await self.store.insert(trip)
            await self.store.append_audit(recorder.drain())
            await self._commit()
        except Exception:
            recorder.discard()
            await self.session.rollback()
            raise
        return stored

    # ===== Reads =====

    async def get_trip(self, trip_id: str, include_deleted: bool = False) -> StoredTrip:
        return await self.store.get(trip_id, include_deleted=include_deleted)

    async def list_trips(
        self, status: str | None = None, limit: int = 100, offset: int = 0
    ) -> list[StoredTrip]:
        return await self.store.list_trips(status=status, limit=limit, offset=offset)

    async def audit_trail(self, trip_id: str) -> list[EditRecord]:
        await self.store.get(trip_id, include_deleted=True)
        return await self.store.audit_trail(trip_id)

    async def investigation_summary(self) -> dict[str, int]:
        stored = await self.store.list_trips(limit=10_000)
        return InvestigationWorkflow.summarize(s.trip for s in stored)

    # ===== Creation =====

    def _system_costs_for(self, trip: Trip, as_of: date | None = None) -> list[CostEntry]:
        as_of = as_of or self.clock().date()
        try:
            rates = self.rates.resolve(trip.revenue_currency, as_of)
        except RateNotFoundError as exc:
            raise ValidationError.single("revenue_currency", str(exc)) from exc
        return SystemCostGenerator.generate(trip, rates, entry_date=as_of)

    async def create_trip(
        self,
        data: dict[str, Any],
        actor: str | None = None,
        with_system_costs: bool = True,
    ) -> StoredTrip:
        actor = self._actor(actor)
        recorder = AuditRecorder(self.clock)
        trip = trip_records.create_trip(data, actor, recorder)
        if with_system_costs:
            cost_ledger.apply_system_costs(trip, self._system_costs_for(trip), actor, recorder)
        stored = await self._insert(trip, recorder)
        logger.info("Created trip %s (%s) by %s", trip.trip_id, trip.fleet_number, actor)
        return stored

    async def import_trip(self, record: dict[str, Any], actor: str | None = None) -> StoredTrip:
        """Insert a trip from an external booking system."""
        actor = self._actor(actor)
        recorder = AuditRecorder(self.clock)
        trip = reconcile_import(record, actor, recorder, now=self.clock())
        return await self._insert(trip, recorder)

    # ===== Trip fields =====

    async def update_trip(
        self, trip_id: str, changes: dict[str, Any], reason: str, actor: str | None = None
    ) -> tuple[Trip, list[EditRecord]]:
        actor = self._actor(actor)
        return await self._mutate(
            trip_id,
            lambda trip, rec: TripStateMachine.update_fields(trip, changes, reason, actor, rec),
        )

    # ===== Costs =====

    async def add_cost(
        self,
        trip_id: str,
        draft: CostEntryDraft,
        actor: str | None = None,
        attachments_present: bool | None = None,
    ) -> tuple[Trip, CostEntry]:
        actor = self._actor(actor)
        trip, entry = await self._mutate(
            trip_id,
            lambda trip, rec: cost_ledger.add_cost(
                trip,
                self.validator,
                draft,
                actor,
                rec,
                attachments_present=attachments_present,
                now=self.clock(),
            ),
        )
        return trip, entry

    async def update_cost(
        self,
        trip_id: str,
        cost_id: str,
        changes: dict[str, Any],
        actor: str | None = None,
        reason: str = "",
    ) -> tuple[Trip, CostEntry]:
        actor = self._actor(actor)
        return await self._mutate(
            trip_id,
            lambda trip, rec: cost_ledger.update_cost(
                trip, self.validator, cost_id, changes, actor, rec, reason=reason, now=self.clock()
            ),
        )

    async def flag_cost(
        self, trip_id: str, cost_id: str, reason: str, actor: str | None = None
    ) -> tuple[Trip, CostEntry]:
        actor = self._actor(actor)
        return await self._mutate(
            trip_id,
            lambda trip, rec: cost_ledger.flag_cost(trip, cost_id, reason, actor, rec, now=self.clock()),
        )

    async def remove_cost(
        self, trip_id: str, cost_id: str, reason: str, actor: str | None = None
    ) -> tuple[Trip, CostEntry]:
        actor = self._actor(actor)
        return await self._mutate(
            trip_id,
            lambda trip, rec: cost_ledger.remove_cost(trip, cost_id, actor, rec, reason=reason),
        )

    async def advance_investigation(
        self,
        trip_id: str,
        cost_id: str,
        to_status: str,
        actor: str | None = None,
        notes: str | None = None,
        resolution_comment: str | None = None,
    ) -> tuple[Trip, int]:
        """Advance an investigation; returns the trip and its unresolved count."""
        actor = self._actor(actor)
        return await self._mutate(
            trip_id,
            lambda trip, rec: InvestigationWorkflow.advance(
                trip,
                cost_id,
                to_status,
                actor,
                rec,
                notes=notes,
                resolution_comment=resolution_comment,
                now=self.clock(),
            ),
        )

    async def generate_system_costs(
        self,
        trip_id: str,
        actor: str | None = None,
        mode: str | None = None,
        as_of: date | None = None,
    ) -> tuple[Trip, list[CostEntry]]:
        actor = self._actor(actor)
        mode = mode or self.settings.system_cost_regeneration
        return await self._mutate(
            trip_id,
            lambda trip, rec: cost_ledger.apply_system_costs(
                trip, self._system_costs_for(trip, as_of), actor, rec, mode=mode
            ),
        )

    # ===== Lifecycle =====

    async def complete_trip(
        self, trip_id: str, actor: str | None = None, reason: str = ""
    ) -> Trip:
        actor = self._actor(actor)
        trip, _ = await self._mutate(
            trip_id,
            lambda trip, rec: TripStateMachine.complete(trip, actor, rec, reason=reason, now=self.clock()),
        )
        return trip

    async def auto_complete_trip(
        self, trip_id: str, reason: str, actor: str | None = None
    ) -> Trip:
        actor = self._actor(actor)
        trip, _ = await self._mutate(
            trip_id,
            lambda trip, rec: TripStateMachine.apply_auto_completion(
                trip, reason, actor, rec, at=self.clock()
            ),
        )
        return trip

    async def submit_invoice(
        self,
        trip_id: str,
        invoice_number: str | None,
        invoice_date: Any,
        due_date: Any,
        final_timeline: FinalTimeline,
        actor: str | None = None,
        proof_of_delivery: list[Attachment] | None = None,
        signed_invoice: list[Attachment] | None = None,
        validation_notes: str | None = None,
    ) -> Trip:
        actor = self._actor(actor)
        trip, _ = await self._mutate(
            trip_id,
            lambda trip, rec: InvoiceSubmissionGate.submit(
                trip,
                invoice_number,
                invoice_date,
                due_date,
                final_timeline,
                actor,
                rec,
                proof_of_delivery=proof_of_delivery,
                signed_invoice=signed_invoice,
                validation_notes=validation_notes,
                now=self.clock(),
            ),
        )
        return trip

    async def record_payment(
        self,
        trip_id: str,
        payment_amount: Any,
        payment_status: str,
        actor: str | None = None,
        received_date: Any = None,
        payment_method: str | None = None,
        bank_reference: str | None = None,
    ) -> Trip:
        actor = self._actor(actor)
        trip, _ = await self._mutate(
            trip_id,
            lambda trip, rec: TripStateMachine.record_payment(
                trip,
                payment_amount,
                payment_status,
                actor,
                rec,
                received_date=received_date,
                payment_method=payment_method,
                bank_reference=bank_reference,
            ),
        )
        return trip

    # ===== Satellite records =====

    async def add_additional_cost(
        self,
        trip_id: str,
        data: dict[str, Any],
        actor: str | None = None,
        supporting_documents: list[Attachment] | None = None,
    ) -> tuple[Trip, AdditionalCost]:
        actor = self._actor(actor)
        return await self._mutate(
            trip_id,
            lambda trip, rec: trip_records.add_additional_cost(
                trip, data, actor, rec, supporting_documents=supporting_documents, now=self.clock()
            ),
        )

    async def add_delay_reason(
        self, trip_id: str, data: dict[str, Any], actor: str | None = None
    ) -> tuple[Trip, DelayReason]:
        actor = self._actor(actor)
        return await self._mutate(
            trip_id,
            lambda trip, rec: trip_records.add_delay_reason(trip, data, actor, rec, now=self.clock()),
        )

    async def add_follow_up(
        self, trip_id: str, data: dict[str, Any], actor: str | None = None
    ) -> tuple[Trip, FollowUpRecord]:
        actor = self._actor(actor)
        return await self._mutate(
            trip_id,
            lambda trip, rec: trip_records.add_follow_up(trip, data, actor, rec),
        )

    async def delete_trip(
        self, trip_id: str, reason: str, actor: str | None = None
    ) -> TripDeletionRecord:
        """Soft-delete a trip, keeping a snapshot in the deletion table."""
        actor = self._actor(actor)
        _, record = await self._mutate(
            trip_id,
            lambda trip, rec: trip_records.build_deletion_record(
                trip, actor, reason, rec, now=self.clock()
            ),
            on_saved=self.store.append_deletion,
        )
        logger.info("Trip %s deleted by %s", trip_id, actor)
        return record

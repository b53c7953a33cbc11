"""Trip lifecycle services."""

from trip_engine.services.audit import AuditRecorder
from trip_engine.services.import_reconciliation import normalize_status, reconcile_import
from trip_engine.services.invoice_gate import FinalTimeline, InvoiceSubmissionGate
from trip_engine.services.investigations import InvestigationWorkflow
from trip_engine.services.state_machine import InvoiceApproval, TripStateMachine
from trip_engine.services.trip_service import TripService
from trip_engine.services.trip_store import StoredTrip, TripStore

__all__ = [
    "AuditRecorder",
    "FinalTimeline",
    "InvestigationWorkflow",
    "InvoiceApproval",
    "InvoiceSubmissionGate",
    "StoredTrip",
    "TripService",
    "TripStateMachine",
    "TripStore",
    "normalize_status",
    "reconcile_import",
]

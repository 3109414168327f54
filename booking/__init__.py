"""Slot-booking workflow for the partner scheduling application."""

from .models import BookingOutcome, BookingRequest, BookingState, OutcomeStatus
from .service import BookingInProgress, BookingRunner, BookingService
from .snapshots import SnapshotStore
from .workflow import WorkflowOrchestrator

__all__ = [
    "BookingInProgress",
    "BookingOutcome",
    "BookingRequest",
    "BookingRunner",
    "BookingService",
    "BookingState",
    "OutcomeStatus",
    "SnapshotStore",
    "WorkflowOrchestrator",
]

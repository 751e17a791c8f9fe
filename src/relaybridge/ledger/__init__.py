"""Ledger module for bridge job persistence."""

from relaybridge.ledger.database import close_db, init_db
from relaybridge.ledger.models import (
    BridgeJob,
    BridgeJobEvent,
    JobStatus,
)
from relaybridge.ledger.repository import (
    FieldOverwriteError,
    ImmutableFieldError,
    InvalidTransitionError,
    JobNotFoundError,
    JobRepository,
    JobUpdateError,
)
from relaybridge.ledger.store import JobStore

__all__ = [
    # Models
    "BridgeJob",
    "BridgeJobEvent",
    # Enums
    "JobStatus",
    # Database
    "close_db",
    "init_db",
    "JobRepository",
    "JobStore",
    # Errors
    "JobNotFoundError",
    "JobUpdateError",
    "InvalidTransitionError",
    "FieldOverwriteError",
    "ImmutableFieldError",
]

"""Domain models for procsync."""

from procsync.models.sync import (
    OperationError,
    ServiceResponse,
    SyncAction,
    SyncOutcome,
    SyncResult,
    SyncSummary,
)
from procsync.models.version import ProcedureSummary, VersionRecord

__all__ = [
    "OperationError",
    "ProcedureSummary",
    "ServiceResponse",
    "SyncAction",
    "SyncOutcome",
    "SyncResult",
    "SyncSummary",
    "VersionRecord",
]

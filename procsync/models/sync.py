"""Result models returned by the sync engine and the service layer."""

from __future__ import annotations

from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from procsync.errors import ErrorKind

T = TypeVar("T")


class SyncAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class SyncResult(BaseModel):
    """Outcome of synchronizing a single procedure."""

    procedure: str = Field(..., min_length=1)
    action: SyncAction
    version: int | None = Field(
        default=None,
        description="Version appended (changed) or latest recorded version (unchanged).",
    )
    changed: bool
    fingerprint: str = Field(..., description="SHA-256 of the local canonical definition.")


class OperationError(BaseModel):
    """Structured failure: an error kind plus a human-readable message."""

    kind: ErrorKind
    message: str


class SyncOutcome(BaseModel):
    """Per-file entry of a bulk sync run."""

    procedure: str | None = Field(default=None, description="Extracted name, if any.")
    file: str = Field(..., description="Artifact file name relative to the procedures directory.")
    result: SyncResult | None = None
    error: OperationError | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def changed(self) -> bool | None:
        return self.result.changed if self.result is not None else None


class SyncSummary(BaseModel):
    """Counts over a list of bulk outcomes."""

    total: int = 0
    changed: int = 0
    unchanged: int = 0
    failed: int = 0

    @classmethod
    def from_outcomes(cls, outcomes: list[SyncOutcome]) -> SyncSummary:
        summary = cls(total=len(outcomes))
        for outcome in outcomes:
            if outcome.error is not None:
                summary.failed += 1
            elif outcome.changed:
                summary.changed += 1
            else:
                summary.unchanged += 1
        return summary


class ServiceResponse(BaseModel, Generic[T]):
    """Envelope returned by every :class:`~procsync.service.ProcedureService` operation."""

    success: bool
    data: T | None = None
    error: OperationError | None = None

"""Error taxonomy for the synchronization engine.

Every failure that can cross the service boundary is a :class:`SyncError`
carrying a machine-readable :class:`ErrorKind` and a human-readable message.
Callers translate them into :class:`~procsync.models.sync.OperationError`
via :meth:`SyncError.to_operation_error` so that tracebacks never leak out.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from procsync.models.sync import OperationError


class ErrorKind(str, Enum):
    ARTIFACT_READ = "ArtifactReadError"
    NAME_EXTRACTION = "NameExtractionError"
    CATALOG_QUERY = "CatalogQueryError"
    DDL_APPLY = "DdlApplyError"
    LEDGER_WRITE = "LedgerWriteError"
    LEDGER_READ = "LedgerReadError"
    INVALID_REFERENCE = "InvalidArtifactReference"
    INTERNAL = "InternalError"


class SyncError(Exception):
    """Base class for all structured synchronization failures."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, *, procedure: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.procedure = procedure

    def to_operation_error(self) -> OperationError:
        from procsync.models.sync import OperationError

        return OperationError(kind=self.kind, message=self.message)


class ArtifactReadError(SyncError):
    """The artifact file is missing or cannot be decoded."""

    kind = ErrorKind.ARTIFACT_READ


class NameExtractionError(SyncError):
    """The artifact matches neither the DROP nor the CREATE naming pattern."""

    kind = ErrorKind.NAME_EXTRACTION


class CatalogQueryError(SyncError):
    """Reading the live database catalog failed."""

    kind = ErrorKind.CATALOG_QUERY


class DdlApplyError(SyncError):
    """The live database rejected (or timed out on) the DROP+CREATE batch."""

    kind = ErrorKind.DDL_APPLY


class LedgerReadError(SyncError):
    """Reading version history from the ledger failed."""

    kind = ErrorKind.LEDGER_READ


class LedgerWriteError(SyncError):
    """Appending a version failed.

    When raised by the sync engine the DDL has already been applied, so the
    live procedure is ahead of the ledger.
    """

    kind = ErrorKind.LEDGER_WRITE


class InvalidArtifactReference(SyncError):
    """An artifact reference resolves outside the procedures directory."""

    kind = ErrorKind.INVALID_REFERENCE

"""Service layer for procedure synchronization.

Every public operation returns a :class:`ServiceResponse`; structured
:class:`SyncError` failures become ``OperationError`` entries and anything
unexpected is reported as ``InternalError`` with its message only.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TypeVar

from procsync.catalog.base import CatalogInterface
from procsync.catalog.mysql_catalog import MySQLCatalog
from procsync.config import Settings
from procsync.errors import CatalogQueryError, ErrorKind, InvalidArtifactReference, SyncError
from procsync.models.sync import OperationError, ServiceResponse, SyncOutcome, SyncResult
from procsync.models.version import ProcedureSummary, VersionRecord
from procsync.parser.artifact import routine_name
from procsync.state.database import dispose_engine, get_engine
from procsync.state.store import VersionStore
from procsync.sync.bulk import sync_all
from procsync.sync.engine import SyncEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProcedureService:
    """Queries and sync commands over one procedures directory.

    Parameters
    ----------
    engine:
        Sync engine used for every sync operation.
    store:
        Version ledger, read directly by the list queries.
    catalog:
        Live-database catalog, used to annotate listings with existence.
    procedures_dir:
        Directory that every artifact reference must resolve into.
    concurrency:
        Bound on simultaneous files during :meth:`sync_all`.
    """

    def __init__(
        self,
        engine: SyncEngine,
        store: VersionStore,
        catalog: CatalogInterface,
        procedures_dir: Path,
        *,
        concurrency: int = 4,
    ) -> None:
        self._engine = engine
        self._store = store
        self._catalog = catalog
        self._procedures_dir = procedures_dir
        self._concurrency = concurrency

    @property
    def engine(self) -> SyncEngine:
        return self._engine

    @property
    def procedures_dir(self) -> Path:
        return self._procedures_dir

    async def _respond(self, operation: Awaitable[T], description: str) -> ServiceResponse[T]:
        try:
            data = await operation
        except SyncError as exc:
            logger.warning("%s failed: %s", description, exc.message)
            return ServiceResponse(success=False, error=exc.to_operation_error())
        except Exception as exc:
            logger.error("Unexpected error while %s: %s", description, exc, exc_info=True)
            return ServiceResponse(
                success=False,
                error=OperationError(kind=ErrorKind.INTERNAL, message=str(exc)),
            )
        return ServiceResponse(success=True, data=data)

    # -- Queries -------------------------------------------------------------

    async def _list_procedures(self) -> list[ProcedureSummary]:
        latest = await self._store.all_latest()
        try:
            live: set[str] | None = await self._catalog.list_procedures()
        except CatalogQueryError as exc:
            logger.warning("Cannot read live catalog, existence unknown: %s", exc.message)
            live = None

        return [
            ProcedureSummary(
                procedure_name=name,
                latest_version=record.version,
                definition_hash=record.definition_hash,
                updated_at=record.updated_at,
                exists_in_database=(routine_name(name) in live) if live is not None else None,
            )
            for name, record in sorted(latest.items())
        ]

    async def list_procedures(self) -> ServiceResponse[list[ProcedureSummary]]:
        """Latest recorded version of every procedure, by name."""
        return await self._respond(self._list_procedures(), "listing procedures")

    async def list_versions(self, procedure_name: str) -> ServiceResponse[list[VersionRecord]]:
        """Full history of *procedure_name*, newest first."""
        return await self._respond(
            self._store.history(procedure_name),
            f"listing versions of {procedure_name}",
        )

    # -- Commands ------------------------------------------------------------

    def resolve_artifact(self, artifact_ref: str | Path) -> Path:
        """Resolve *artifact_ref* against the procedures directory.

        Raises
        ------
        InvalidArtifactReference
            If the reference resolves outside the procedures directory.
        """
        root = self._procedures_dir.resolve()
        candidate = (root / artifact_ref).resolve()
        if not candidate.is_relative_to(root):
            raise InvalidArtifactReference(
                f"Artifact reference {str(artifact_ref)!r} is outside {self._procedures_dir}"
            )
        return candidate

    async def _sync_one(self, procedure_name: str, artifact_ref: str | Path) -> SyncResult:
        path = self.resolve_artifact(artifact_ref)
        return await self._engine.sync_procedure(procedure_name, path)

    async def sync_one(self, procedure_name: str, artifact_ref: str | Path) -> ServiceResponse[SyncResult]:
        """Synchronize *procedure_name* from an artifact inside the procedures directory."""
        return await self._respond(
            self._sync_one(procedure_name, artifact_ref),
            f"syncing {procedure_name}",
        )

    async def sync_all(self) -> ServiceResponse[list[SyncOutcome]]:
        """Synchronize every artifact; per-file failures stay inside the outcomes."""
        return await self._respond(
            sync_all(self._engine, self._procedures_dir, concurrency=self._concurrency),
            "syncing all procedures",
        )


@asynccontextmanager
async def build_service(
    settings: Settings,
    *,
    procedures_dir: Path | None = None,
) -> AsyncIterator[ProcedureService]:
    """Wire engines, catalog, ledger and sync engine from *settings*.

    Engines are disposed on exit.  *procedures_dir* overrides
    ``settings.procedures_dir``.
    """
    procedures_dir = procedures_dir or settings.procedures_dir

    database_engine = get_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    if settings.ledger_is_shared():
        ledger_engine = database_engine
    else:
        ledger_engine = get_engine(
            settings.effective_ledger_url(),
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )

    catalog = MySQLCatalog(database_engine, timeout_seconds=settings.query_timeout_seconds)
    store = VersionStore(
        ledger_engine,
        timeout_seconds=settings.query_timeout_seconds,
        append_attempts=settings.ledger_append_attempts,
    )
    engine = SyncEngine(catalog, store, strategy=settings.sync_strategy)

    try:
        yield ProcedureService(
            engine,
            store,
            catalog,
            procedures_dir,
            concurrency=settings.sync_concurrency,
        )
    finally:
        if ledger_engine is not database_engine:
            await dispose_engine(ledger_engine)
        await dispose_engine(database_engine)

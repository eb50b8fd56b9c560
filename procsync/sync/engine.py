"""Synchronization engine: decide, apply, record.

For one ``(procedure_name, artifact_path)`` pair the engine

1. reads the artifact and fingerprints its canonical definition,
2. asks the catalog whether the procedure exists,
3. decides whether anything changed (see :func:`decide_change`),
4. on change applies the artifact to the live database and *then* appends a
   version to the ledger.

The ledger is never written before the DDL succeeded, so it never claims a
version that was not applied.  The reverse gap (applied, then the append
fails) is reported as :class:`LedgerWriteError` and is not reconciled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from procsync.catalog.base import CatalogInterface
from procsync.config import SyncStrategy
from procsync.errors import CatalogQueryError, LedgerWriteError
from procsync.models.sync import SyncAction, SyncResult
from procsync.parser.artifact import read_artifact
from procsync.parser.normalizer import definition_fingerprint
from procsync.state.store import VersionStore
from procsync.sync.locks import NameLocks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeDecision:
    changed: bool
    reason: str


def decide_change(
    strategy: SyncStrategy,
    local_hash: str,
    latest_hash: str | None,
    exists: bool | None,
    server_hash: str | None,
    *,
    routine_hash: str | None = None,
) -> ChangeDecision:
    """Decide whether a procedure must be (re)applied.

    A procedure is unchanged only when the latest recorded version carries
    exactly *local_hash*.  Under :attr:`SyncStrategy.SERVER` the live
    definition must match as well.  Every unknown (no history, catalog
    unreachable, body hidden by the server) resolves to ``changed``.

    Parameters
    ----------
    strategy:
        Which sources must agree with the local artifact.
    local_hash:
        Fingerprint of the local canonical definition.
    latest_hash:
        Fingerprint recorded by the latest ledger version, ``None`` if the
        procedure was never synced.
    exists:
        Whether the live catalog lists the procedure; ``None`` if unknown.
    server_hash:
        Fingerprint of the live definition; ``None`` if absent or unreadable.
    routine_hash:
        Fingerprint of the local ``BEGIN ... END`` span, compared with
        *server_hash*.  Defaults to *local_hash*.
    """
    if latest_hash is None:
        return ChangeDecision(True, "no recorded version")
    if latest_hash != local_hash:
        return ChangeDecision(True, "local artifact differs from the latest recorded version")
    if strategy is SyncStrategy.LEDGER:
        return ChangeDecision(False, "local artifact matches the latest recorded version")

    if exists is None:
        return ChangeDecision(True, "live catalog unavailable")
    if not exists:
        return ChangeDecision(True, "procedure not found in database")
    if server_hash is None:
        return ChangeDecision(True, "database definition unavailable")
    if server_hash != (routine_hash or local_hash):
        return ChangeDecision(True, "database definition differs from local artifact")
    return ChangeDecision(False, "database and ledger match local artifact")


class SyncEngine:
    """Keeps live procedures and the version ledger in step with artifacts.

    Parameters
    ----------
    catalog:
        Live-database catalog (existence, definitions, DDL).
    store:
        Version ledger.
    strategy:
        Decision policy, see :func:`decide_change`.
    """

    def __init__(
        self,
        catalog: CatalogInterface,
        store: VersionStore,
        *,
        strategy: SyncStrategy = SyncStrategy.SERVER,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self._strategy = strategy
        self._locks = NameLocks()

    @property
    def strategy(self) -> SyncStrategy:
        return self._strategy

    async def sync_procedure(self, procedure_name: str, artifact_path: Path) -> SyncResult:
        """Synchronize *procedure_name* from the artifact at *artifact_path*.

        Concurrent calls for the same name run one after another.

        Raises
        ------
        ArtifactReadError
            The artifact could not be read; nothing was changed.
        LedgerReadError
            The latest version could not be read; nothing was changed.
        DdlApplyError
            The database rejected the DDL; no version was recorded.
        LedgerWriteError
            The DDL was applied but the version could not be recorded.
        """
        async with self._locks.hold(procedure_name):
            return await self._sync_locked(procedure_name, artifact_path)

    async def _lookup_exists(self, name: str) -> bool | None:
        try:
            return await self._catalog.procedure_exists(name)
        except CatalogQueryError as exc:
            logger.warning("Existence check failed for %s, assuming changed: %s", name, exc.message)
            return None

    async def _server_hash(self, name: str) -> str | None:
        try:
            definition = await self._catalog.get_definition(name)
        except CatalogQueryError as exc:
            logger.warning("Definition lookup failed for %s, assuming changed: %s", name, exc.message)
            return None
        if definition is None:
            logger.debug("Server does not expose a definition for %s", name)
            return None
        return definition_fingerprint(definition)

    async def _sync_locked(self, name: str, artifact_path: Path) -> SyncResult:
        artifact = read_artifact(artifact_path)
        local_definition = artifact.definition
        local_hash = artifact.fingerprint

        exists = await self._lookup_exists(name)
        latest = await self._store.latest(name)
        latest_hash = latest.definition_hash if latest is not None else None

        server_hash: str | None = None
        if (
            self._strategy is SyncStrategy.SERVER
            and exists
            and latest_hash == local_hash
        ):
            server_hash = await self._server_hash(name)

        decision = decide_change(
            self._strategy,
            local_hash,
            latest_hash,
            exists,
            server_hash,
            routine_hash=artifact.routine_fingerprint,
        )

        if not decision.changed:
            version = latest.version if latest is not None else None
            logger.info(
                "Procedure unchanged: %s (version %s)",
                name,
                version,
                extra={"procedure": name, "action": SyncAction.UNCHANGED.value, "version": version},
            )
            return SyncResult(
                procedure=name,
                action=SyncAction.UNCHANGED,
                version=version,
                changed=False,
                fingerprint=local_hash,
            )

        if exists is None:
            existed = latest is not None
        else:
            existed = exists
        action = SyncAction.UPDATED if existed else SyncAction.CREATED
        logger.info(
            "%s procedure %s (%s)",
            "Updating" if existed else "Creating",
            name,
            decision.reason,
            extra={"procedure": name, "file": artifact_path.name},
        )

        await self._catalog.apply_artifact(artifact.raw_sql)

        try:
            version = await self._store.append(name, local_definition, local_hash)
        except LedgerWriteError as exc:
            logger.error(
                "Procedure %s was applied but not versioned: %s",
                name,
                exc.message,
                extra={"procedure": name},
            )
            raise LedgerWriteError(
                f"Procedure {name} was applied to the database but not versioned: {exc.message}",
                procedure=name,
            ) from exc

        logger.info(
            "Procedure synced: %s (version %d)",
            name,
            version,
            extra={"procedure": name, "action": action.value, "version": version},
        )
        return SyncResult(
            procedure=name,
            action=action,
            version=version,
            changed=True,
            fingerprint=local_hash,
        )

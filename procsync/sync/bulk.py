"""Bulk synchronization of every artifact in a directory.

Each file is handled independently: a file whose name cannot be extracted,
or whose sync fails, yields an outcome carrying the error while the rest of
the batch carries on.  Outcomes follow filesystem listing order, which is not
sorted.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from procsync.errors import ArtifactReadError, ErrorKind, SyncError
from procsync.models.sync import OperationError, SyncOutcome, SyncSummary
from procsync.parser.artifact import is_artifact_name, read_artifact
from procsync.sync.engine import SyncEngine

logger = logging.getLogger(__name__)


def list_artifacts(directory: Path) -> list[Path]:
    """Return the ``.sql`` files directly inside *directory*, in listing order.

    Raises
    ------
    ArtifactReadError
        If *directory* cannot be listed.
    """
    try:
        with os.scandir(directory) as entries:
            return [Path(entry.path) for entry in entries if entry.is_file() and is_artifact_name(entry.name)]
    except OSError as exc:
        raise ArtifactReadError(f"Cannot list procedures directory {directory}: {exc}") from exc


async def sync_file(engine: SyncEngine, path: Path) -> SyncOutcome:
    """Extract the procedure name from *path* and synchronize it.

    Never raises for per-file failures; they are returned in the outcome.
    """
    name: str | None = None
    try:
        name = read_artifact(path).require_name()
        result = await engine.sync_procedure(name, path)
    except SyncError as exc:
        logger.warning("Sync failed for %s: %s", path.name, exc.message, extra={"file": path.name})
        return SyncOutcome(procedure=name, file=path.name, error=exc.to_operation_error())
    except Exception as exc:
        logger.error("Unexpected error syncing %s: %s", path.name, exc, exc_info=True)
        return SyncOutcome(
            procedure=name,
            file=path.name,
            error=OperationError(kind=ErrorKind.INTERNAL, message=str(exc)),
        )
    return SyncOutcome(procedure=name, file=path.name, result=result)


async def sync_all(
    engine: SyncEngine,
    directory: Path,
    *,
    concurrency: int = 4,
) -> list[SyncOutcome]:
    """Synchronize every artifact in *directory*.

    Parameters
    ----------
    engine:
        The sync engine to drive.
    directory:
        Directory holding the ``.sql`` artifacts (not searched recursively).
    concurrency:
        Maximum number of files synchronized at the same time.  Syncs of the
        same procedure name are still serialised by the engine.

    Returns
    -------
    list[SyncOutcome]
        One outcome per artifact, in listing order.
    """
    paths = list_artifacts(directory)
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _bounded(path: Path) -> SyncOutcome:
        async with semaphore:
            return await sync_file(engine, path)

    outcomes = list(await asyncio.gather(*(_bounded(path) for path in paths)))

    summary = SyncSummary.from_outcomes(outcomes)
    logger.info(
        "Sync complete: %d changed, %d unchanged, %d failed",
        summary.changed,
        summary.unchanged,
        summary.failed,
    )
    return outcomes

"""Version store: the ledger operations the sync engine depends on.

Wraps :class:`ProcedureVersionRepository` with session management, a
per-call timeout, and translation of database failures into
:class:`LedgerReadError` / :class:`LedgerWriteError`.

Version allocation is read-max-then-insert inside one transaction.  The sync
engine serialises calls per procedure name; the unique constraint on
``(procedure_name, version)`` catches writers outside this process, in which
case the allocation is retried with a fresh read.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from procsync.errors import LedgerReadError, LedgerWriteError
from procsync.models.version import VersionRecord
from procsync.state.database import get_session
from procsync.state.repository import ProcedureVersionRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


class VersionStore:
    """Append-only procedure version history backed by an async engine.

    Parameters
    ----------
    engine:
        Engine for the database holding the ``procedure_versions`` table.
    timeout_seconds:
        Upper bound for every individual ledger call.
    append_attempts:
        How many times :meth:`append` re-reads and retries after a
        ``(procedure_name, version)`` conflict before giving up.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        timeout_seconds: float = 30.0,
        append_attempts: int = 3,
    ) -> None:
        self._engine = engine
        self._timeout = timeout_seconds
        self._append_attempts = max(1, append_attempts)

    async def _read(
        self,
        operation: Callable[[ProcedureVersionRepository], Awaitable[T]],
        description: str,
    ) -> T:
        async def _run() -> T:
            async with get_session(self._engine) as session:
                return await operation(ProcedureVersionRepository(session))

        try:
            return await asyncio.wait_for(_run(), timeout=self._timeout)
        except TimeoutError as exc:
            raise LedgerReadError(f"Timed out after {self._timeout:g}s while {description}") from exc
        except SQLAlchemyError as exc:
            raise LedgerReadError(f"Ledger query failed while {description}: {exc}") from exc

    async def latest(self, procedure_name: str) -> VersionRecord | None:
        """Return the latest version of *procedure_name*, or ``None`` if never synced."""

        async def _op(repo: ProcedureVersionRepository) -> VersionRecord | None:
            row = await repo.get_latest(procedure_name)
            return VersionRecord.model_validate(row) if row is not None else None

        return await self._read(_op, f"reading latest version of {procedure_name}")

    async def history(self, procedure_name: str) -> list[VersionRecord]:
        """Return every recorded version of *procedure_name*, newest first."""

        async def _op(repo: ProcedureVersionRepository) -> list[VersionRecord]:
            return [VersionRecord.model_validate(row) for row in await repo.list_history(procedure_name)]

        return await self._read(_op, f"reading history of {procedure_name}")

    async def all_latest(self) -> dict[str, VersionRecord]:
        """Return the latest version of every procedure, keyed by name."""

        async def _op(repo: ProcedureVersionRepository) -> dict[str, VersionRecord]:
            rows = await repo.list_latest()
            return {row.procedure_name: VersionRecord.model_validate(row) for row in rows}

        return await self._read(_op, "listing latest versions")

    async def _append_once(self, procedure_name: str, definition_text: str, definition_hash: str) -> int:
        async with get_session(self._engine) as session:
            repo = ProcedureVersionRepository(session)
            version = await repo.next_version(procedure_name)
            await repo.append(procedure_name, version, definition_hash, definition_text)
        return version

    async def append(self, procedure_name: str, definition_text: str, definition_hash: str) -> int:
        """Record a new version of *procedure_name* and return its version number.

        Raises
        ------
        LedgerWriteError
            On timeout, on any database error, or when every attempt lost the
            version-number race to another writer.
        """
        last_conflict: IntegrityError | None = None
        for attempt in range(1, self._append_attempts + 1):
            try:
                return await asyncio.wait_for(
                    self._append_once(procedure_name, definition_text, definition_hash),
                    timeout=self._timeout,
                )
            except IntegrityError as exc:
                last_conflict = exc
                logger.warning(
                    "Version conflict appending %s (attempt %d/%d)",
                    procedure_name,
                    attempt,
                    self._append_attempts,
                )
            except TimeoutError as exc:
                raise LedgerWriteError(
                    f"Timed out after {self._timeout:g}s appending a version of {procedure_name}",
                    procedure=procedure_name,
                ) from exc
            except SQLAlchemyError as exc:
                raise LedgerWriteError(
                    f"Ledger write failed for {procedure_name}: {exc}",
                    procedure=procedure_name,
                ) from exc

        raise LedgerWriteError(
            f"Could not allocate a version for {procedure_name} after "
            f"{self._append_attempts} attempts: {last_conflict}",
            procedure=procedure_name,
        )

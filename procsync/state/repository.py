"""Repository providing access to the ``procedure_versions`` ledger.

The repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  Writes call ``session.flush()`` so
that generated defaults are populated and constraint violations surface
immediately; the caller is responsible for calling ``session.commit()`` (or
relying on the ``get_session`` context manager).
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from procsync.state.tables import ProcedureVersionTable

logger = logging.getLogger(__name__)


class ProcedureVersionRepository:
    """Append-only operations for the ``procedure_versions`` table.

    There is deliberately no update or delete method.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_latest(self, procedure_name: str) -> ProcedureVersionTable | None:
        """Return the highest-version row for *procedure_name*, or ``None``."""
        stmt = (
            select(ProcedureVersionTable)
            .where(ProcedureVersionTable.procedure_name == procedure_name)
            .order_by(ProcedureVersionTable.version.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def next_version(self, procedure_name: str) -> int:
        """Return ``max(version) + 1`` for *procedure_name*, or ``1`` when none exist."""
        stmt = select(func.max(ProcedureVersionTable.version)).where(
            ProcedureVersionTable.procedure_name == procedure_name
        )
        result = await self._session.execute(stmt)
        current = result.scalar_one_or_none()
        return (current or 0) + 1

    async def append(
        self,
        procedure_name: str,
        version: int,
        definition_hash: str,
        definition_text: str,
    ) -> ProcedureVersionTable:
        """Insert a new version row and return the persisted row.

        Raises ``sqlalchemy.exc.IntegrityError`` on flush when
        ``(procedure_name, version)`` already exists.
        """
        row = ProcedureVersionTable(
            procedure_name=procedure_name,
            version=version,
            definition_hash=definition_hash,
            definition_text=definition_text,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def list_history(self, procedure_name: str) -> list[ProcedureVersionTable]:
        """Return every version of *procedure_name*, newest first."""
        stmt = (
            select(ProcedureVersionTable)
            .where(ProcedureVersionTable.procedure_name == procedure_name)
            .order_by(ProcedureVersionTable.version.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_latest(self) -> list[ProcedureVersionTable]:
        """Return the latest row of every procedure, ordered by name."""
        latest = (
            select(
                ProcedureVersionTable.procedure_name.label("procedure_name"),
                func.max(ProcedureVersionTable.version).label("max_version"),
            )
            .group_by(ProcedureVersionTable.procedure_name)
            .subquery()
        )
        stmt = (
            select(ProcedureVersionTable)
            .join(
                latest,
                (ProcedureVersionTable.procedure_name == latest.c.procedure_name)
                & (ProcedureVersionTable.version == latest.c.max_version),
            )
            .order_by(ProcedureVersionTable.procedure_name)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

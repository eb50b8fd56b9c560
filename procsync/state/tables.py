"""SQLAlchemy 2.0 ORM table definitions for the procedure version ledger.

Uses the ``Mapped`` / ``mapped_column`` declaration style.  The ``Base``
declarative base is exported for the bootstrap initializer and the
repository layer.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Shared declarative base for all procsync tables."""


# ---------------------------------------------------------------------------
# Procedure versions
# ---------------------------------------------------------------------------


class ProcedureVersionTable(Base):
    """Append-only ledger of applied procedure definitions.

    For a fixed ``procedure_name`` the ``version`` column forms a dense
    sequence 1..N.  Rows are never updated or deleted.
    """

    __tablename__ = "procedure_versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    procedure_name: Mapped[str] = mapped_column(String(255), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    definition_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    definition_text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("procedure_name", "version", name="uq_procedure_versions_name_version"),
        Index("ix_procedure_versions_name", "procedure_name"),
    )

"""Version ledger models.

A ``VersionRecord`` is the in-memory mirror of one ``procedure_versions``
row.  Records are immutable: the ledger only ever appends, so nothing in the
engine needs to mutate one after it has been read.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class VersionRecord(BaseModel):
    """Immutable record of one applied procedure definition."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    procedure_name: str = Field(
        ...,
        min_length=1,
        description="Procedure name as extracted from the artifact.",
    )
    version: int = Field(
        ...,
        ge=1,
        description="Dense, strictly increasing version number per procedure (starts at 1).",
    )
    definition_hash: str = Field(
        ...,
        min_length=64,
        max_length=64,
        description="SHA-256 hex digest of the canonical definition.",
    )
    definition_text: str = Field(
        ...,
        description="Extracted procedure definition as it was applied.",
    )
    created_at: datetime | None = Field(default=None, description="Row creation timestamp.")
    updated_at: datetime | None = Field(default=None, description="Row update timestamp.")


class ProcedureSummary(BaseModel):
    """Latest ledger state of a procedure plus its presence in the live database."""

    procedure_name: str = Field(..., min_length=1)
    latest_version: int = Field(..., ge=1)
    definition_hash: str = Field(...)
    updated_at: datetime | None = Field(default=None)
    exists_in_database: bool | None = Field(
        default=None,
        description="Whether the live catalog lists the procedure; None when the catalog was unreachable.",
    )

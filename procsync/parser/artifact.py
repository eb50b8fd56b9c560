"""Load procedure artifacts from disk and extract their name and body.

An artifact is a UTF-8 ``.sql`` file holding a ``DROP PROCEDURE IF EXISTS``
statement followed by ``CREATE PROCEDURE name(params) BEGIN ... END``.
Extraction is pattern based.  A body that does not match the
``CREATE ... BEGIN ... END`` shape is not an error: the DROP-stripped text is
used verbatim instead.

Typical usage::

    artifact = read_artifact(Path("procedures/calc_total.sql"))
    artifact.name, artifact.fingerprint
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from procsync.errors import ArtifactReadError, NameExtractionError
from procsync.parser.normalizer import definition_fingerprint

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIX = ".sql"

_DROP_NAME_RE = re.compile(r"DROP\s+PROCEDURE\s+IF\s+EXISTS\s+([^\s;]+)", re.IGNORECASE)
_CREATE_NAME_RE = re.compile(r"CREATE\s+PROCEDURE\s+([^\s(]+)", re.IGNORECASE)
_DROP_STATEMENT_RE = re.compile(r"DROP\s+PROCEDURE\s+IF\s+EXISTS\s+[^;]+;?", re.IGNORECASE)
# Greedy body match: runs to the last END so nested blocks stay inside.
_CREATE_BODY_RE = re.compile(
    r"CREATE\s+PROCEDURE\s+[^(]+\([^)]*\)\s*(BEGIN.*END)",
    re.IGNORECASE | re.DOTALL,
)
_ROUTINE_BODY_RE = re.compile(r"\bBEGIN\b.*\bEND\b", re.IGNORECASE | re.DOTALL)


def _unquote_identifier(token: str) -> str:
    parts = [part.strip().strip("`\"") for part in token.split(".")]
    return ".".join(part for part in parts if part)


def routine_name(name: str) -> str:
    """Return *name* without its schema qualifier (``mydb.calc_total`` -> ``calc_total``)."""
    return name.rsplit(".", 1)[-1]


def extract_procedure_name(sql: str) -> str | None:
    """Return the procedure name declared by *sql*, or ``None``.

    The ``DROP PROCEDURE IF EXISTS`` clause takes precedence over the
    ``CREATE PROCEDURE`` clause.  Identifier quotes are removed.
    """
    for pattern in (_DROP_NAME_RE, _CREATE_NAME_RE):
        match = pattern.search(sql)
        if match:
            name = _unquote_identifier(match.group(1))
            if name:
                return name
    return None


def require_procedure_name(sql: str, source: str) -> str:
    """Like :func:`extract_procedure_name` but raise when nothing matches.

    Raises
    ------
    NameExtractionError
        If neither naming pattern matches.  *source* names the artifact in
        the error message.
    """
    name = extract_procedure_name(sql)
    if name is None:
        raise NameExtractionError(f"Could not extract procedure name from {source}")
    return name


def extract_procedure_definition(sql: str) -> str:
    """Return the ``BEGIN ... END`` body of *sql* with its DROP statement removed.

    Falls back to the DROP-stripped text when the CREATE pattern does not
    match (unusual parameter lists, missing BEGIN/END).
    """
    cleaned = _DROP_STATEMENT_RE.sub("", sql).strip()
    match = _CREATE_BODY_RE.search(cleaned)
    if match:
        return match.group(1)
    logger.debug("CREATE PROCEDURE body not matched; using statement text verbatim")
    return cleaned


def extract_routine_body(sql: str) -> str:
    """Return the ``BEGIN ... END`` span the database reports for *sql*.

    Same as :func:`extract_procedure_definition` when the CREATE pattern
    matches.  For fallback text (parameter lists with parentheses such as
    ``VARCHAR(255)``) the first ``BEGIN`` through the last ``END`` is taken,
    since ``ROUTINE_DEFINITION`` holds only that span.
    """
    definition = extract_procedure_definition(sql)
    match = _ROUTINE_BODY_RE.search(definition)
    return match.group(0) if match else definition


class ProcedureArtifact(BaseModel):
    """A procedure source file read from disk."""

    model_config = ConfigDict(frozen=True)

    path: Path = Field(..., description="Location the artifact was read from.")
    raw_sql: str = Field(..., description="File content exactly as read.")

    @property
    def name(self) -> str | None:
        return extract_procedure_name(self.raw_sql)

    @property
    def definition(self) -> str:
        return extract_procedure_definition(self.raw_sql)

    @property
    def fingerprint(self) -> str:
        return definition_fingerprint(self.definition)

    @property
    def routine_fingerprint(self) -> str:
        """Fingerprint comparable with the live ``ROUTINE_DEFINITION``."""
        return definition_fingerprint(extract_routine_body(self.raw_sql))

    def require_name(self) -> str:
        return require_procedure_name(self.raw_sql, self.path.name)


def is_artifact_name(filename: str) -> bool:
    return filename.endswith(ARTIFACT_SUFFIX)


def read_artifact(path: Path) -> ProcedureArtifact:
    """Read *path* as UTF-8 and wrap it in a :class:`ProcedureArtifact`.

    Raises
    ------
    ArtifactReadError
        If the file is missing, unreadable, or not valid UTF-8.
    """
    try:
        raw_sql = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ArtifactReadError(f"Cannot read artifact {path}: {exc}") from exc
    return ProcedureArtifact(path=path, raw_sql=raw_sql)

"""Artifact parsing, SQL canonicalisation and fingerprinting."""

from procsync.parser.artifact import (
    ARTIFACT_SUFFIX,
    ProcedureArtifact,
    extract_procedure_definition,
    extract_procedure_name,
    extract_routine_body,
    is_artifact_name,
    read_artifact,
    require_procedure_name,
    routine_name,
)
from procsync.parser.normalizer import (
    compute_fingerprint,
    definition_fingerprint,
    normalize_sql,
)

__all__ = [
    "ARTIFACT_SUFFIX",
    "ProcedureArtifact",
    "compute_fingerprint",
    "definition_fingerprint",
    "extract_procedure_definition",
    "extract_procedure_name",
    "extract_routine_body",
    "is_artifact_name",
    "normalize_sql",
    "read_artifact",
    "require_procedure_name",
    "routine_name",
]

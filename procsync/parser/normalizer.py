"""SQL canonicalisation and deterministic hashing for procedure definitions.

Procedure bodies are compared as opaque text, never parsed.  The canonical
form exists only so that cosmetic edits do not register as changes.

**Canonicalisation rules**:
1. Strip ``--`` line comments and ``/* */`` block comments, scanning left to
   right so that a marker inside one comment never starts another.
2. Normalise every whitespace run to a single space; strip leading/trailing.
3. Lowercase everything.

Comment stripping repeats until the text stops changing, which keeps
``normalize_sql`` idempotent even for input such as ``-/**/-``.
"""

from __future__ import annotations

import hashlib
import logging
import re

logger = logging.getLogger(__name__)

# One alternation so comments are consumed in order of appearance.
_COMMENT_RE = re.compile(r"--[^\n]*|/\*.*?\*/", re.DOTALL)
_MULTI_SPACE_RE = re.compile(r"\s+")


def _strip_comments(sql: str) -> str:
    previous = None
    while previous != sql:
        previous = sql
        sql = _COMMENT_RE.sub("", sql)
    return sql


def normalize_sql(sql: str) -> str:
    """Return the canonical, comment- and formatting-insensitive form of *sql*.

    Parameters
    ----------
    sql:
        Raw SQL text (typically an extracted ``BEGIN ... END`` body).

    Returns
    -------
    str
        Lowercased text with comments removed and whitespace collapsed.
        Empty input (or comment-only input) yields ``""``.
    """
    cleaned = _strip_comments(sql)
    cleaned = _MULTI_SPACE_RE.sub(" ", cleaned)
    return cleaned.strip().lower()


def compute_fingerprint(canonical_sql: str) -> str:
    """Return the SHA-256 hex digest of already-canonical SQL.

    Returns
    -------
    str
        A 64-character lowercase hexadecimal SHA-256 digest.
    """
    return hashlib.sha256(canonical_sql.encode("utf-8")).hexdigest()


def definition_fingerprint(definition: str) -> str:
    """Normalise *definition* and return its fingerprint."""
    return compute_fingerprint(normalize_sql(definition))

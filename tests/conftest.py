"""Shared fixtures for procsync tests.

The ledger runs on a file-backed SQLite database under ``tmp_path`` (one
connection per session, like the server backends).  The live database is
replaced by :class:`FakeCatalog`, an in-memory implementation of
``CatalogInterface`` whose failures can be switched on per test.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

import pytest
import pytest_asyncio

from procsync.errors import CatalogQueryError, DdlApplyError
from procsync.parser.artifact import extract_procedure_name, routine_name
from procsync.state.database import create_ledger_tables, dispose_engine, get_engine
from procsync.state.store import VersionStore
from procsync.sync.engine import SyncEngine

CALC_TOTAL_V1 = """\
DROP PROCEDURE IF EXISTS calc_total;
CREATE PROCEDURE calc_total(IN order_id INT)
BEGIN
    SELECT SUM(amount) FROM order_lines WHERE order_lines.order_id = order_id;
END
"""

CALC_TOTAL_V2 = """\
DROP PROCEDURE IF EXISTS calc_total;
CREATE PROCEDURE calc_total(IN order_id INT)
BEGIN
    SELECT SUM(amount * quantity) FROM order_lines WHERE order_lines.order_id = order_id;
END
"""


def make_artifact(name: str, statement: str = "SELECT 1;") -> str:
    """Return a well-formed artifact for *name* whose body runs *statement*."""
    return f"DROP PROCEDURE IF EXISTS {name};\nCREATE PROCEDURE {name}()\nBEGIN\n    {statement}\nEND\n"


FIND_USER = """\
DROP PROCEDURE IF EXISTS find_user;
CREATE PROCEDURE find_user(IN p_email VARCHAR(255))
BEGIN
    SELECT id FROM users WHERE email = p_email;
END
"""


# ---------------------------------------------------------------------------
# Fake live database
# ---------------------------------------------------------------------------

_SERVER_BODY_RE = re.compile(r"\bBEGIN\b.*\bEND\b", re.IGNORECASE | re.DOTALL)


class FakeCatalog:
    """In-memory live database.

    ``procedures`` maps routine name (no schema qualifier) to the definition
    the server would report (``None`` mimics a server that hides the body).
    """

    def __init__(self) -> None:
        self.procedures: dict[str, str | None] = {}
        self.applied: list[str] = []
        self.fail_queries = False
        self.fail_apply = False

    def _check(self) -> None:
        if self.fail_queries:
            raise CatalogQueryError("catalog unavailable")

    async def procedure_exists(self, name: str) -> bool:
        self._check()
        return routine_name(name) in self.procedures

    async def get_definition(self, name: str) -> str | None:
        self._check()
        return self.procedures.get(routine_name(name))

    async def list_procedures(self) -> set[str]:
        self._check()
        return set(self.procedures)

    async def apply_artifact(self, raw_sql: str) -> None:
        if self.fail_apply:
            raise DdlApplyError("You have an error in your SQL syntax")
        name = extract_procedure_name(raw_sql)
        assert name is not None
        # ROUTINE_DEFINITION keeps only the BEGIN ... END span.
        body = _SERVER_BODY_RE.search(raw_sql)
        self.procedures[routine_name(name)] = body.group(0) if body else None
        self.applied.append(name)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def procedures_dir(tmp_path: Path) -> Path:
    path = tmp_path / "procedures"
    path.mkdir()
    return path


@pytest_asyncio.fixture
async def ledger_engine(tmp_path: Path):
    """Async engine for a fresh ledger with the ``procedure_versions`` table."""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await create_ledger_tables(engine)
    yield engine
    await dispose_engine(engine)


@pytest.fixture
def store(ledger_engine) -> VersionStore:
    return VersionStore(ledger_engine, timeout_seconds=5.0)


@pytest.fixture
def sync_engine(catalog: FakeCatalog, store: VersionStore) -> SyncEngine:
    return SyncEngine(catalog, store)


@pytest.fixture
def restore_logging():
    """Put the root logger back the way it was after configure_logging()."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)

"""Version ledger persistence layer."""

from procsync.state.database import (
    create_ledger_tables,
    dispose_engine,
    get_engine,
    get_session,
)
from procsync.state.repository import ProcedureVersionRepository
from procsync.state.store import VersionStore

__all__ = [
    "ProcedureVersionRepository",
    "VersionStore",
    "create_ledger_tables",
    "dispose_engine",
    "get_engine",
    "get_session",
]

"""Procedure synchronization engine and bulk driver."""

from procsync.sync.bulk import list_artifacts, sync_all, sync_file
from procsync.sync.engine import ChangeDecision, SyncEngine, decide_change
from procsync.sync.locks import NameLocks

__all__ = [
    "ChangeDecision",
    "NameLocks",
    "SyncEngine",
    "decide_change",
    "list_artifacts",
    "sync_all",
    "sync_file",
]

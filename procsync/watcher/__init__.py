"""Filesystem change watcher for procedure artifacts."""

from procsync.watcher.file_watcher import ProcedureWatcher, WatchEvent

__all__ = [
    "ProcedureWatcher",
    "WatchEvent",
]

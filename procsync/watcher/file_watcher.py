"""Watch the procedures directory and sync artifacts as they change.

``watchdog`` delivers filesystem events on its observer thread; the handler
only forwards ``(event, filename)`` pairs onto the asyncio loop with
``call_soon_threadsafe``, so all debounce state is owned by the loop thread.

Per file name the watcher is either idle or has exactly one pending debounce
timer:

* ``modified``: cancel the pending timer (if any) and arm a new one.
* ``created`` / ``moved``: after a short grace delay, arm the debounce timer
  if the file exists; otherwise do nothing.
* ``deleted``: never triggers a sync.

When a timer fires the file is read at that moment, so a burst of writes
collapses into one sync of the final content.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from procsync.errors import ArtifactReadError, SyncError
from procsync.models.sync import SyncResult
from procsync.parser.artifact import is_artifact_name, read_artifact

logger = logging.getLogger(__name__)

SyncCallback = Callable[[str, Path], Awaitable[SyncResult]]


class WatchEvent(str, Enum):
    MODIFIED = "modified"
    CREATED = "created"
    MOVED = "moved"
    DELETED = "deleted"


class _ForwardingHandler(FileSystemEventHandler):
    """Forward watchdog events to the event loop as ``(WatchEvent, filename)``."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        callback: Callable[[WatchEvent, str], None],
    ) -> None:
        self._loop = loop
        self._callback = callback

    def _forward(self, kind: WatchEvent, path: str | bytes, is_directory: bool) -> None:
        if is_directory:
            return
        name = Path(path.decode() if isinstance(path, bytes) else path).name
        try:
            self._loop.call_soon_threadsafe(self._callback, kind, name)
        except RuntimeError:
            # Loop already closed during shutdown.
            logger.debug("Dropping %s event for %s: event loop closed", kind.value, name)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._forward(WatchEvent.MODIFIED, event.src_path, event.is_directory)

    def on_created(self, event: FileSystemEvent) -> None:
        self._forward(WatchEvent.CREATED, event.src_path, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        # The destination is the name that may now hold an artifact.
        self._forward(WatchEvent.MOVED, event.dest_path, event.is_directory)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._forward(WatchEvent.DELETED, event.src_path, event.is_directory)


class ProcedureWatcher:
    """Debounced filesystem watcher that feeds changed artifacts to a sync callback.

    Parameters
    ----------
    directory:
        Directory holding the ``.sql`` artifacts (watched non-recursively).
    on_change:
        Coroutine function called as ``on_change(procedure_name, path)``;
        normally :meth:`SyncEngine.sync_procedure`.
    debounce_seconds:
        Quiet period after the last modification before syncing.
    grace_seconds:
        Delay before checking whether a created/moved file still exists.
    observer_factory:
        Zero-argument callable returning a watchdog observer.
    """

    def __init__(
        self,
        directory: Path,
        on_change: SyncCallback,
        *,
        debounce_seconds: float = 0.5,
        grace_seconds: float = 0.1,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        self._directory = directory
        self._on_change = on_change
        self._debounce = debounce_seconds
        self._grace = grace_seconds
        self._observer_factory = observer_factory

        self._loop: asyncio.AbstractEventLoop | None = None
        self._observer: Any = None
        self._running = False
        self._pending: dict[str, asyncio.TimerHandle] = {}
        self._grace_timers: dict[str, asyncio.TimerHandle] = {}
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending(self) -> frozenset[str]:
        """File names with an armed debounce timer."""
        return frozenset(self._pending)

    # -- Lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Begin observing the directory.

        Raises
        ------
        ArtifactReadError
            If the directory does not exist.
        """
        if self._running:
            logger.warning("ProcedureWatcher already running; ignoring start()")
            return
        if not self._directory.is_dir():
            raise ArtifactReadError(f"Procedures directory not found: {self._directory}")

        self._loop = asyncio.get_running_loop()
        observer = self._observer_factory()
        observer.schedule(
            _ForwardingHandler(self._loop, self.notify),
            str(self._directory),
            recursive=False,
        )
        observer.start()
        self._observer = observer
        self._running = True
        logger.info("Watching procedures directory: %s", self._directory)

    async def stop(self) -> None:
        """Cancel pending timers, close the observer, and wait for in-flight syncs."""
        if not self._running:
            return
        self._running = False

        for handle in (*self._pending.values(), *self._grace_timers.values()):
            handle.cancel()
        self._pending.clear()
        self._grace_timers.clear()

        if self._observer is not None:
            self._observer.stop()
            await asyncio.to_thread(self._observer.join)
            self._observer = None

        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        logger.info("File watcher stopped")

    async def __aenter__(self) -> ProcedureWatcher:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # -- Event handling (event-loop thread only) -----------------------------

    def notify(self, event: WatchEvent, filename: str) -> None:
        """Handle one filesystem event for *filename* (a bare file name)."""
        if not self._running or not is_artifact_name(filename):
            return

        if event is WatchEvent.MODIFIED:
            self._arm(filename)
        elif event in (WatchEvent.CREATED, WatchEvent.MOVED):
            previous = self._grace_timers.pop(filename, None)
            if previous is not None:
                previous.cancel()
            self._grace_timers[filename] = self._get_loop().call_later(
                self._grace, self._after_grace, filename
            )
        else:
            logger.info("File removed: %s (no action taken)", filename)

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise RuntimeError("ProcedureWatcher.start() has not been called")
        return self._loop

    def _after_grace(self, filename: str) -> None:
        self._grace_timers.pop(filename, None)
        if (self._directory / filename).exists():
            self._arm(filename)
        else:
            logger.info("File removed: %s (no action taken)", filename)

    def _arm(self, filename: str) -> None:
        previous = self._pending.pop(filename, None)
        if previous is not None:
            previous.cancel()
        self._pending[filename] = self._get_loop().call_later(self._debounce, self._fire, filename)

    def _fire(self, filename: str) -> None:
        self._pending.pop(filename, None)
        task = self._get_loop().create_task(self._sync_file(filename))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _sync_file(self, filename: str) -> None:
        path = self._directory / filename
        try:
            artifact = read_artifact(path)
            name = artifact.name
            if name is None:
                logger.warning("Could not extract procedure name from %s", filename, extra={"file": filename})
                return
            logger.info(
                "Detected change in %s, syncing procedure: %s",
                filename,
                name,
                extra={"file": filename, "procedure": name},
            )
            result = await self._on_change(name, path)
        except SyncError as exc:
            logger.error("Error syncing %s: %s", filename, exc.message, extra={"file": filename})
            return
        except Exception as exc:
            logger.error("Unexpected error syncing %s: %s", filename, exc, exc_info=True)
            return

        if result.changed:
            logger.info("Auto-synced: %s (%s)", result.procedure, result.action.value)
        else:
            logger.info("Auto-checked: %s (unchanged)", result.procedure)

"""Tests for procsync.watcher.file_watcher.

Filesystem events are injected through ``ProcedureWatcher.notify`` (and, for
the watchdog handler, through synthetic watchdog events), and the observer is
a mock, so timing depends only on the debounce and grace delays.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from conftest import make_artifact
from watchdog.events import DirModifiedEvent, FileCreatedEvent, FileModifiedEvent, FileMovedEvent

from procsync.errors import ArtifactReadError, DdlApplyError
from procsync.models.sync import SyncAction, SyncResult
from procsync.watcher.file_watcher import ProcedureWatcher, WatchEvent, _ForwardingHandler

_DEBOUNCE = 0.05
_GRACE = 0.02
_SETTLE = 0.2


class _Recorder:
    """on_change callback that records the artifact content seen at call time."""

    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[tuple[str, str]] = []
        self.error = error

    async def __call__(self, name: str, path: Path) -> SyncResult:
        self.calls.append((name, path.read_text()))
        if self.error is not None:
            raise self.error
        return SyncResult(
            procedure=name,
            action=SyncAction.CREATED,
            version=len(self.calls),
            changed=True,
            fingerprint="0" * 64,
        )


def _watcher(directory: Path, recorder: _Recorder) -> ProcedureWatcher:
    return ProcedureWatcher(
        directory,
        recorder,
        debounce_seconds=_DEBOUNCE,
        grace_seconds=_GRACE,
        observer_factory=MagicMock,
    )


# ---------------------------------------------------------------------------
# Debounce
# ---------------------------------------------------------------------------


class TestDebounce:
    @pytest.mark.asyncio
    async def test_rapid_modifications_collapse_to_one_sync(self, procedures_dir: Path) -> None:
        recorder = _Recorder()
        path = procedures_dir / "calc_total.sql"

        async with _watcher(procedures_dir, recorder) as watcher:
            for n in (1, 2, 3):
                path.write_text(make_artifact("calc_total", f"SELECT {n};"))
                watcher.notify(WatchEvent.MODIFIED, "calc_total.sql")
                await asyncio.sleep(_DEBOUNCE / 5)
            assert watcher.pending == frozenset({"calc_total.sql"})

            await asyncio.sleep(_SETTLE)

        assert len(recorder.calls) == 1
        name, content = recorder.calls[0]
        assert name == "calc_total"
        assert "SELECT 3;" in content

    @pytest.mark.asyncio
    async def test_separate_files_sync_independently(self, procedures_dir: Path) -> None:
        recorder = _Recorder()
        (procedures_dir / "a.sql").write_text(make_artifact("a"))
        (procedures_dir / "b.sql").write_text(make_artifact("b"))

        async with _watcher(procedures_dir, recorder) as watcher:
            watcher.notify(WatchEvent.MODIFIED, "a.sql")
            watcher.notify(WatchEvent.MODIFIED, "b.sql")
            await asyncio.sleep(_SETTLE)

        assert sorted(name for name, _ in recorder.calls) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_non_sql_files_are_ignored(self, procedures_dir: Path) -> None:
        recorder = _Recorder()
        (procedures_dir / "notes.txt").write_text("hello")

        async with _watcher(procedures_dir, recorder) as watcher:
            watcher.notify(WatchEvent.MODIFIED, "notes.txt")
            assert watcher.pending == frozenset()
            await asyncio.sleep(_SETTLE)

        assert recorder.calls == []


# ---------------------------------------------------------------------------
# Create / rename / delete
# ---------------------------------------------------------------------------


class TestCreateAndDelete:
    @pytest.mark.asyncio
    async def test_created_file_is_synced_after_grace(self, procedures_dir: Path) -> None:
        recorder = _Recorder()
        (procedures_dir / "new_proc.sql").write_text(make_artifact("new_proc"))

        async with _watcher(procedures_dir, recorder) as watcher:
            watcher.notify(WatchEvent.CREATED, "new_proc.sql")
            await asyncio.sleep(_SETTLE)

        assert [name for name, _ in recorder.calls] == ["new_proc"]

    @pytest.mark.asyncio
    async def test_file_gone_before_grace_is_not_synced(self, procedures_dir: Path) -> None:
        recorder = _Recorder()

        async with _watcher(procedures_dir, recorder) as watcher:
            watcher.notify(WatchEvent.MOVED, "vanished.sql")
            await asyncio.sleep(_SETTLE)

        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_deletion_never_syncs(self, procedures_dir: Path, caplog: pytest.LogCaptureFixture) -> None:
        recorder = _Recorder()

        with caplog.at_level(logging.INFO, logger="procsync.watcher.file_watcher"):
            async with _watcher(procedures_dir, recorder) as watcher:
                watcher.notify(WatchEvent.DELETED, "calc_total.sql")
                assert watcher.pending == frozenset()
                await asyncio.sleep(_SETTLE)

        assert recorder.calls == []
        assert "no action taken" in caplog.text


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_unnamed_artifact_is_dropped_with_warning(
        self, procedures_dir: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        recorder = _Recorder()
        (procedures_dir / "scratch.sql").write_text("SELECT 1;")

        with caplog.at_level(logging.WARNING, logger="procsync.watcher.file_watcher"):
            async with _watcher(procedures_dir, recorder) as watcher:
                watcher.notify(WatchEvent.MODIFIED, "scratch.sql")
                await asyncio.sleep(_SETTLE)

        assert recorder.calls == []
        assert "Could not extract procedure name" in caplog.text

    @pytest.mark.asyncio
    async def test_sync_error_does_not_stop_watching(self, procedures_dir: Path) -> None:
        recorder = _Recorder(error=DdlApplyError("syntax error"))
        path = procedures_dir / "p.sql"
        path.write_text(make_artifact("p"))

        async with _watcher(procedures_dir, recorder) as watcher:
            watcher.notify(WatchEvent.MODIFIED, "p.sql")
            await asyncio.sleep(_SETTLE)
            watcher.notify(WatchEvent.MODIFIED, "p.sql")
            await asyncio.sleep(_SETTLE)
            assert watcher.running

        assert len(recorder.calls) == 2


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_schedules_observer(self, procedures_dir: Path) -> None:
        observer = MagicMock()
        watcher = ProcedureWatcher(procedures_dir, _Recorder(), observer_factory=lambda: observer)

        await watcher.start()
        try:
            assert watcher.running
            args, kwargs = observer.schedule.call_args
            assert args[1] == str(procedures_dir)
            assert kwargs == {"recursive": False}
            observer.start.assert_called_once()
        finally:
            await watcher.stop()

        observer.stop.assert_called_once()
        observer.join.assert_called_once()
        assert not watcher.running

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path: Path) -> None:
        watcher = _watcher(tmp_path / "nope", _Recorder())
        with pytest.raises(ArtifactReadError):
            await watcher.start()
        assert not watcher.running

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_timers(self, procedures_dir: Path) -> None:
        recorder = _Recorder()
        (procedures_dir / "p.sql").write_text(make_artifact("p"))
        watcher = _watcher(procedures_dir, recorder)

        await watcher.start()
        watcher.notify(WatchEvent.MODIFIED, "p.sql")
        watcher.notify(WatchEvent.CREATED, "p.sql")
        await watcher.stop()
        await asyncio.sleep(_SETTLE)

        assert watcher.pending == frozenset()
        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_events_after_stop_are_ignored(self, procedures_dir: Path) -> None:
        recorder = _Recorder()
        watcher = _watcher(procedures_dir, recorder)
        await watcher.start()
        await watcher.stop()

        watcher.notify(WatchEvent.MODIFIED, "p.sql")

        assert watcher.pending == frozenset()


# ---------------------------------------------------------------------------
# watchdog handler
# ---------------------------------------------------------------------------


class TestForwardingHandler:
    @pytest.mark.asyncio
    async def test_forwards_file_name_onto_loop(self, tmp_path: Path) -> None:
        received: list[tuple[WatchEvent, str]] = []
        handler = _ForwardingHandler(asyncio.get_running_loop(), lambda kind, name: received.append((kind, name)))

        handler.dispatch(FileModifiedEvent(str(tmp_path / "a.sql")))
        handler.dispatch(FileCreatedEvent(str(tmp_path / "b.sql")))
        handler.dispatch(FileMovedEvent(str(tmp_path / "c.tmp"), str(tmp_path / "c.sql")))
        handler.dispatch(DirModifiedEvent(str(tmp_path)))
        await asyncio.sleep(0)

        assert received == [
            (WatchEvent.MODIFIED, "a.sql"),
            (WatchEvent.CREATED, "b.sql"),
            (WatchEvent.MOVED, "c.sql"),
        ]

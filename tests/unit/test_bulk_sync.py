"""Tests for procsync.sync.bulk -- directory listing and per-file isolation."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from conftest import FakeCatalog, make_artifact

from procsync.errors import ArtifactReadError, ErrorKind
from procsync.models.sync import SyncAction, SyncSummary
from procsync.sync.bulk import list_artifacts, sync_all, sync_file
from procsync.sync.engine import SyncEngine

# ---------------------------------------------------------------------------
# list_artifacts
# ---------------------------------------------------------------------------


class TestListArtifacts:
    def test_only_sql_files(self, procedures_dir: Path) -> None:
        (procedures_dir / "a.sql").write_text(make_artifact("a"))
        (procedures_dir / "notes.md").write_text("# notes")
        (procedures_dir / "nested.sql").mkdir()

        assert [p.name for p in list_artifacts(procedures_dir)] == ["a.sql"]

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ArtifactReadError):
            list_artifacts(tmp_path / "nope")


# ---------------------------------------------------------------------------
# sync_all
# ---------------------------------------------------------------------------


class TestSyncAll:
    @pytest.mark.asyncio
    async def test_good_and_unnamed_artifact(
        self, sync_engine: SyncEngine, catalog: FakeCatalog, procedures_dir: Path
    ) -> None:
        (procedures_dir / "calc_total.sql").write_text(make_artifact("calc_total"))
        (procedures_dir / "scratch.sql").write_text("SELECT 1;")

        outcomes = await sync_all(sync_engine, procedures_dir)

        assert len(outcomes) == 2
        by_file = {o.file: o for o in outcomes}

        good = by_file["calc_total.sql"]
        assert good.success
        assert good.procedure == "calc_total"
        assert good.result is not None
        assert good.result.action is SyncAction.CREATED

        bad = by_file["scratch.sql"]
        assert not bad.success
        assert bad.procedure is None
        assert bad.error is not None
        assert bad.error.kind is ErrorKind.NAME_EXTRACTION

        assert catalog.applied == ["calc_total"]

    @pytest.mark.asyncio
    async def test_second_run_is_unchanged(self, sync_engine: SyncEngine, procedures_dir: Path) -> None:
        for name in ("a", "b", "c"):
            (procedures_dir / f"{name}.sql").write_text(make_artifact(name))

        first = SyncSummary.from_outcomes(await sync_all(sync_engine, procedures_dir, concurrency=2))
        second = SyncSummary.from_outcomes(await sync_all(sync_engine, procedures_dir, concurrency=2))

        assert (first.total, first.changed, first.unchanged, first.failed) == (3, 3, 0, 0)
        assert (second.total, second.changed, second.unchanged, second.failed) == (3, 0, 3, 0)

    @pytest.mark.asyncio
    async def test_empty_directory(self, sync_engine: SyncEngine, procedures_dir: Path) -> None:
        assert await sync_all(sync_engine, procedures_dir) == []

    @pytest.mark.asyncio
    async def test_ddl_failure_is_isolated(
        self, sync_engine: SyncEngine, catalog: FakeCatalog, procedures_dir: Path
    ) -> None:
        (procedures_dir / "a.sql").write_text(make_artifact("a"))
        catalog.fail_apply = True

        [outcome] = await sync_all(sync_engine, procedures_dir)

        assert outcome.procedure == "a"
        assert outcome.error is not None
        assert outcome.error.kind is ErrorKind.DDL_APPLY


class TestSyncFile:
    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_internal(self, sync_engine: SyncEngine, procedures_dir: Path) -> None:
        path = procedures_dir / "a.sql"
        path.write_text(make_artifact("a"))

        with patch.object(sync_engine, "sync_procedure", new=AsyncMock(side_effect=RuntimeError("boom"))):
            outcome = await sync_file(sync_engine, path)

        assert outcome.error is not None
        assert outcome.error.kind is ErrorKind.INTERNAL
        assert outcome.error.message == "boom"
        assert outcome.procedure == "a"

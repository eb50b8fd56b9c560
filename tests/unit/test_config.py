"""Tests for procsync.config -- Settings defaults, env overrides, validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from procsync.config import Settings, SyncStrategy, load_settings

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


class TestSettingsDefaults:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.database_url.startswith("mysql+aiomysql://")
        assert settings.ledger_url is None
        assert settings.procedures_dir == Path("procedures")
        assert settings.sync_strategy is SyncStrategy.SERVER
        assert settings.sync_concurrency == 4
        assert settings.query_timeout_seconds == 30.0
        assert settings.ledger_append_attempts == 3
        assert settings.debounce_seconds == 0.5
        assert settings.create_grace_seconds == 0.1
        assert settings.sync_on_startup is False
        assert settings.structured_logging is False
        assert settings.log_level == "INFO"

    def test_ledger_defaults_to_live_database(self) -> None:
        settings = Settings()
        assert settings.effective_ledger_url() == settings.database_url
        assert settings.ledger_is_shared() is True

    def test_separate_ledger(self) -> None:
        settings = Settings(ledger_url="sqlite+aiosqlite:///ledger.db")
        assert settings.effective_ledger_url() == "sqlite+aiosqlite:///ledger.db"
        assert settings.ledger_is_shared() is False

    def test_only_sync_settings_are_declared(self) -> None:
        assert "env" not in Settings.model_fields
        assert "debug" not in Settings.model_fields


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


class TestSettingsFromEnv:
    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PROCSYNC_SYNC_STRATEGY", "ledger")
        monkeypatch.setenv("PROCSYNC_PROCEDURES_DIR", "/srv/procs")
        monkeypatch.setenv("PROCSYNC_SYNC_ON_STARTUP", "true")

        settings = load_settings()

        assert settings.sync_strategy is SyncStrategy.LEDGER
        assert settings.procedures_dir == Path("/srv/procs")
        assert settings.sync_on_startup is True

    def test_overrides_win_over_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PROCSYNC_SYNC_CONCURRENCY", "8")
        assert load_settings(sync_concurrency=2).sync_concurrency == 2

    def test_case_insensitive_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("procsync_debounce_seconds", "1.5")
        assert load_settings().debounce_seconds == 1.5


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestSettingsValidation:
    def test_log_level_is_uppercased(self) -> None:
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(log_level="chatty")

    @pytest.mark.parametrize(
        "overrides",
        [
            {"sync_concurrency": 0},
            {"query_timeout_seconds": 0},
            {"ledger_append_attempts": 0},
            {"debounce_seconds": 0},
            {"create_grace_seconds": -1},
            {"sync_strategy": "both"},
        ],
    )
    def test_out_of_range_values_rejected(self, overrides: dict) -> None:
        with pytest.raises(ValidationError):
            Settings(**overrides)

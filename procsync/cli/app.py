"""procsync CLI application -- Typer-based operator interface.

Provides commands to bootstrap the ledger, synchronize one or all procedure
artifacts, inspect version history, and watch the procedures directory.
Human-readable output goes to *stderr* via Rich; ``--json`` writes the
service response envelope to *stdout* so scripts can compose cleanly.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import signal
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import typer
from pydantic import ValidationError
from rich.console import Console
from sqlalchemy.exc import SQLAlchemyError

from procsync.cli.display import (
    display_error,
    display_procedure_list,
    display_sync_outcomes,
    display_sync_result,
    display_version_history,
)
from procsync.config import Settings, load_settings
from procsync.errors import ErrorKind, SyncError
from procsync.logging_config import configure_logging
from procsync.models.sync import ServiceResponse, SyncSummary
from procsync.service import build_service
from procsync.state.database import create_ledger_tables, dispose_engine, get_engine
from procsync.watcher.file_watcher import ProcedureWatcher

T = TypeVar("T")

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="procsync",
    help="procsync - keep MySQL stored procedures in step with versioned .sql files",
    no_args_is_help=True,
)
console = Console(stderr=True)

# Mutable global options populated by the Typer callback.
_json_output: bool = False
_procedures_dir: Path | None = None


# ---------------------------------------------------------------------------
# Callback -- global options
# ---------------------------------------------------------------------------


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    procedures_dir: Path | None = typer.Option(
        None,
        "--procedures-dir",
        help="Directory holding the .sql procedure files (overrides PROCSYNC_PROCEDURES_DIR).",
        file_okay=False,
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output, _procedures_dir  # noqa: PLW0603
    _json_output = json_mode
    _procedures_dir = procedures_dir


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_settings() -> Settings:
    """Load settings, configure logging, and apply CLI overrides."""
    try:
        overrides: dict[str, Any] = {}
        if _procedures_dir is not None:
            overrides["procedures_dir"] = _procedures_dir
        settings = load_settings(**overrides)
    except ValidationError as exc:
        console.print(f"[red]Invalid configuration: {exc}[/red]")
        raise typer.Exit(code=3) from exc

    configure_logging(settings.log_level, structured=settings.structured_logging)
    return settings


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def _write_json(payload: dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, default=str) + "\n")


def _finish(response: ServiceResponse[Any], **extra: Any) -> None:
    """Write *response* as JSON when requested, and exit 3 on failure."""
    if _json_output:
        payload = response.model_dump(mode="json")
        payload.update(extra)
        _write_json(payload)
    elif response.error is not None:
        display_error(console, response.error)

    if not response.success:
        raise typer.Exit(code=3)


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------


async def _init_ledger(settings: Settings) -> None:
    engine = get_engine(
        settings.effective_ledger_url(),
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    try:
        await create_ledger_tables(engine)
    finally:
        await dispose_engine(engine)


@app.command()
def init() -> None:
    """Create the version ledger table and the procedures directory."""
    settings = _load_settings()

    try:
        _run(_init_ledger(settings))
    except (SQLAlchemyError, OSError) as exc:
        if _json_output:
            _write_json({"success": False, "error": {"kind": ErrorKind.LEDGER_WRITE.value, "message": str(exc)}})
        else:
            console.print(f"[red]Failed to create ledger tables: {exc}[/red]")
        raise typer.Exit(code=3) from exc

    settings.procedures_dir.mkdir(parents=True, exist_ok=True)

    if _json_output:
        _write_json(
            {
                "success": True,
                "data": {"procedures_dir": str(settings.procedures_dir)},
                "error": None,
            }
        )
    else:
        console.print("[green]Ledger ready.[/green]")
        console.print(f"Procedures directory: [bold]{settings.procedures_dir}[/bold]")


# ---------------------------------------------------------------------------
# sync / sync-all
# ---------------------------------------------------------------------------


@app.command()
def sync(
    name: str = typer.Argument(..., help="Procedure name."),
    artifact: str = typer.Argument(..., help="Artifact file, relative to the procedures directory."),
) -> None:
    """Synchronize one procedure from its .sql file."""
    settings = _load_settings()

    async def _sync() -> ServiceResponse[Any]:
        async with build_service(settings) as service:
            return await service.sync_one(name, artifact)

    response = _run(_sync())
    if not _json_output and response.data is not None:
        display_sync_result(console, response.data)
    _finish(response)


@app.command("sync-all")
def sync_all_command() -> None:
    """Synchronize every .sql file in the procedures directory."""
    settings = _load_settings()

    async def _sync_all() -> ServiceResponse[Any]:
        async with build_service(settings) as service:
            return await service.sync_all()

    response = _run(_sync_all())
    outcomes = response.data or []
    summary = SyncSummary.from_outcomes(outcomes)

    if not _json_output and response.success:
        display_sync_outcomes(console, outcomes)
    _finish(response, summary=summary.model_dump())

    if summary.failed:
        raise typer.Exit(code=3)


# ---------------------------------------------------------------------------
# list / versions
# ---------------------------------------------------------------------------


@app.command("list")
def list_command() -> None:
    """List every synced procedure with its latest version."""
    settings = _load_settings()

    async def _list() -> ServiceResponse[Any]:
        async with build_service(settings) as service:
            return await service.list_procedures()

    response = _run(_list())
    if not _json_output and response.data is not None:
        display_procedure_list(console, response.data)
    _finish(response)


@app.command()
def versions(
    name: str = typer.Argument(..., help="Procedure name."),
) -> None:
    """Show the version history of one procedure, newest first."""
    settings = _load_settings()

    async def _versions() -> ServiceResponse[Any]:
        async with build_service(settings) as service:
            return await service.list_versions(name)

    response = _run(_versions())
    if not _json_output and response.data is not None:
        display_version_history(console, name, response.data)
    _finish(response)


# ---------------------------------------------------------------------------
# watch
# ---------------------------------------------------------------------------


async def _watch(settings: Settings, sync_on_start: bool) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    async with build_service(settings) as service:
        if sync_on_start:
            console.print("[bold]Syncing all procedures on startup...[/bold]")
            response = await service.sync_all()
            if response.data is not None:
                display_sync_outcomes(console, response.data)
            elif response.error is not None:
                display_error(console, response.error)

        watcher = ProcedureWatcher(
            service.procedures_dir,
            service.engine.sync_procedure,
            debounce_seconds=settings.debounce_seconds,
            grace_seconds=settings.create_grace_seconds,
        )
        async with watcher:
            console.print(f"Watching [bold]{service.procedures_dir}[/bold] (Ctrl+C to stop)")
            await stop.wait()


@app.command()
def watch(
    sync_on_start: bool = typer.Option(
        False,
        "--sync-on-start",
        help="Sync every procedure before watching (also enabled by PROCSYNC_SYNC_ON_STARTUP).",
    ),
) -> None:
    """Watch the procedures directory and sync files as they change."""
    settings = _load_settings()
    enabled = sync_on_start or settings.sync_on_startup

    try:
        _run(_watch(settings, enabled))
    except SyncError as exc:
        console.print(f"[red]{exc.kind.value}: {exc.message}[/red]")
        raise typer.Exit(code=3) from exc
    except KeyboardInterrupt:
        pass
    console.print("Stopped.")

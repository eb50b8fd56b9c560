"""Rich output formatting for the procsync CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that JSON on *stdout* is never polluted with
human-readable decoration.
"""

from __future__ import annotations

from datetime import datetime

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from procsync.models.sync import OperationError, SyncOutcome, SyncResult, SyncSummary
from procsync.models.version import ProcedureSummary, VersionRecord

# ---------------------------------------------------------------------------
# Action colour mapping
# ---------------------------------------------------------------------------

_ACTION_COLOURS: dict[str, str] = {
    "created": "green",
    "updated": "cyan",
    "unchanged": "dim",
    "failed": "red",
}


def _coloured_action(action: str) -> str:
    """Return a Rich markup string with the action colour-coded."""
    colour = _ACTION_COLOURS.get(action, "white")
    return f"[{colour}]{action}[/{colour}]"


def _format_timestamp(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value is not None else "-"


def _short_hash(value: str | None) -> str:
    return value[:12] if value else "-"


# ---------------------------------------------------------------------------
# Sync results
# ---------------------------------------------------------------------------


def display_sync_result(console: Console, result: SyncResult) -> None:
    """Render the outcome of a single procedure sync."""
    version = str(result.version) if result.version is not None else "-"
    lines = [
        f"[bold]Procedure:[/bold]   {result.procedure}",
        f"[bold]Action:[/bold]      {_coloured_action(result.action.value)}",
        f"[bold]Version:[/bold]     {version}",
        f"[bold]Fingerprint:[/bold] {_short_hash(result.fingerprint)}",
    ]
    console.print(
        Panel(
            "\n".join(lines),
            title="Sync Result",
            border_style="green" if result.changed else "blue",
        )
    )


def display_sync_outcomes(console: Console, outcomes: list[SyncOutcome]) -> None:
    """Render a per-file table for a bulk sync followed by a summary line.

    Parameters
    ----------
    console:
        Rich console to write to.
    outcomes:
        One entry per artifact, in the order the sync produced them.
    """
    if not outcomes:
        console.print("[dim]No procedure files found.[/dim]")
        return

    table = Table(
        title=f"Sync Results ({len(outcomes)})",
        show_lines=False,
        pad_edge=True,
        expand=False,
    )
    table.add_column("File", style="bold")
    table.add_column("Procedure")
    table.add_column("Action")
    table.add_column("Version", justify="right")
    table.add_column("Detail")

    for outcome in outcomes:
        if outcome.error is not None:
            table.add_row(
                outcome.file,
                outcome.procedure or "-",
                _coloured_action("failed"),
                "-",
                f"[red]{outcome.error.kind.value}[/red]: {outcome.error.message}",
            )
            continue
        result = outcome.result
        if result is None:
            continue
        table.add_row(
            outcome.file,
            result.procedure,
            _coloured_action(result.action.value),
            str(result.version) if result.version is not None else "-",
            "",
        )

    console.print(table)
    display_sync_summary(console, SyncSummary.from_outcomes(outcomes))


def display_sync_summary(console: Console, summary: SyncSummary) -> None:
    failed_style = "red" if summary.failed else "dim"
    console.print(
        f"[bold]{summary.total}[/bold] file(s): "
        f"[green]{summary.changed} changed[/green], "
        f"[dim]{summary.unchanged} unchanged[/dim], "
        f"[{failed_style}]{summary.failed} failed[/{failed_style}]"
    )


# ---------------------------------------------------------------------------
# Ledger queries
# ---------------------------------------------------------------------------


def display_procedure_list(console: Console, procedures: list[ProcedureSummary]) -> None:
    """Render the latest recorded version of every procedure."""
    if not procedures:
        console.print("[dim]No procedures have been synced yet.[/dim]")
        return

    table = Table(
        title=f"Procedures ({len(procedures)})",
        show_lines=False,
        pad_edge=True,
        expand=False,
    )
    table.add_column("Name", style="bold")
    table.add_column("Version", justify="right")
    table.add_column("Hash")
    table.add_column("Updated")
    table.add_column("In Database", justify="center")

    for proc in procedures:
        if proc.exists_in_database is None:
            present = "[yellow]?[/yellow]"
        elif proc.exists_in_database:
            present = "[green]yes[/green]"
        else:
            present = "[red]no[/red]"
        table.add_row(
            proc.procedure_name,
            str(proc.latest_version),
            _short_hash(proc.definition_hash),
            _format_timestamp(proc.updated_at),
            present,
        )

    console.print(table)


def display_version_history(console: Console, procedure_name: str, versions: list[VersionRecord]) -> None:
    """Render every recorded version of one procedure, newest first."""
    if not versions:
        console.print(f"[dim]No versions recorded for {procedure_name}.[/dim]")
        return

    table = Table(
        title=f"Versions of {procedure_name} ({len(versions)})",
        show_lines=False,
        pad_edge=True,
        expand=False,
    )
    table.add_column("Version", justify="right", style="bold")
    table.add_column("Hash")
    table.add_column("Created")
    table.add_column("Definition")

    for record in versions:
        preview = " ".join(record.definition_text.split())
        if len(preview) > 60:
            preview = preview[:57] + "..."
        table.add_row(
            str(record.version),
            _short_hash(record.definition_hash),
            _format_timestamp(record.created_at),
            preview,
        )

    console.print(table)


def display_error(console: Console, error: OperationError) -> None:
    console.print(f"[red]{error.kind.value}: {error.message}[/red]")

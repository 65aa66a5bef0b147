"""``deployforge status RUN_ID`` — show the ledger projection of a run."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from deployforge.config import settings
from deployforge.core.run_ledger import LedgerIntegrityError, RunLedger
from deployforge.monitor.projection import MonitorProjection
from deployforge.monitor.renderer import MonitorRenderer

console = Console()


def status_cmd(
    run_id: str = typer.Argument(..., help="The run ID to show."),
    ledger_db: Path = typer.Option(
        settings.ledger_path,
        "--ledger",
        "-l",
        help="Path to the ledger SQLite database.",
    ),
    verify_chain: bool = typer.Option(
        False,
        "--verify-chain",
        "-V",
        help="Verify the hash chain integrity before displaying.",
    ),
) -> None:
    """Show stage, action and gate states of a run, replayed from the ledger."""
    if not ledger_db.exists():
        console.print(f"[bold red]Ledger not found:[/bold red] {ledger_db}")
        console.print("[dim]Start a run first with: deployforge run[/dim]")
        raise typer.Exit(code=1)

    ledger = RunLedger(ledger_db)
    renderer = MonitorRenderer(console=console)

    if not ledger.get_run_entries(run_id):
        console.print(f"[bold red]Run not found:[/bold red] {run_id}")
        all_runs = ledger.list_runs()
        if all_runs:
            console.print("\n[bold]Available runs:[/bold]")
            for rid in all_runs[-10:]:
                console.print(f"  [cyan]{rid}[/cyan]")
        raise typer.Exit(code=1)

    if verify_chain:
        try:
            renderer.print_chain_verification(run_id, ledger.verify_chain(run_id))
        except LedgerIntegrityError as exc:
            console.print(f"[bold red]Chain verification failed:[/bold red] {exc}")
            raise typer.Exit(code=1)

    renderer.print_snapshot(MonitorProjection(ledger).snapshot(run_id))

"""``deployforge run`` — dry-run the pipeline end to end, recording to the ledger.

The promotion gate is decided by ``--approve`` / ``--reject``; without
either flag the operator is prompted when the gate opens.
"""

from __future__ import annotations

import threading
from pathlib import Path

import typer
from rich.console import Console

from deployforge.cli.commands.plan import load_pipeline
from deployforge.config import DeployforgeSettings, settings
from deployforge.core.errors import PipelineError
from deployforge.core.orchestrator import Orchestrator, RunReport
from deployforge.core.promotion_gate import PromotionGate
from deployforge.core.run_ledger import RunLedger
from deployforge.models.approvals import GateState
from deployforge.models.states import RunStatus
from deployforge.monitor.projection import MonitorProjection
from deployforge.monitor.renderer import MonitorRenderer

console = Console()


def _decide(
    gate: PromotionGate, stage_name: str, approve: bool | None, operator: str
) -> None:
    console.print(
        f"\n[bold yellow]Approval required:[/bold yellow] {gate.name} ({stage_name})\n"
        f"  {gate.information}\n"
        f"  [dim]Review: {gate.external_link}[/dim]"
    )
    if approve is None:
        approve = typer.confirm("Approve promotion?", default=False)
    if approve:
        gate.approve(operator=operator, comment="approved from CLI")
    else:
        gate.reject(operator=operator, comment="rejected from CLI")


def run_cmd(
    definition: Path = typer.Option(
        settings.definition_path,
        "--definition",
        "-d",
        help="Path to the pipeline definition (TOML).",
    ),
    ledger_db: Path = typer.Option(
        settings.ledger_path,
        "--ledger",
        "-l",
        help="Path to the ledger SQLite database.",
    ),
    approve: bool = typer.Option(
        False, "--approve", help="Approve the promotion gate without prompting."
    ),
    reject: bool = typer.Option(
        False, "--reject", help="Reject the promotion gate without prompting."
    ),
    operator: str = typer.Option(
        "cli", "--operator", "-o", help="Operator name recorded with the gate decision."
    ),
) -> None:
    """Dry-run the pipeline: every action is recorded, nothing is deployed."""
    if approve and reject:
        console.print("[bold red]--approve and --reject are mutually exclusive[/bold red]")
        raise typer.Exit(code=2)
    decision = True if approve else False if reject else None

    try:
        pipeline = load_pipeline(definition)
    except PipelineError as exc:
        console.print(f"[bold red]{type(exc).__name__}:[/bold red] {exc}")
        raise typer.Exit(code=1)

    ledger = RunLedger(ledger_db)
    orchestrator = Orchestrator(
        pipeline,
        ledger=ledger,
        settings=DeployforgeSettings(ledger_path=ledger_db),
    )
    console.print(f"[bold]Run ID:[/bold] {orchestrator.run_id}")

    reports: list[RunReport] = []
    worker = threading.Thread(
        target=lambda: reports.append(orchestrator.run()),
        name=f"run-{orchestrator.run_id}",
    )
    worker.start()
    try:
        for gate in orchestrator.gates.values():
            while worker.is_alive() and not gate.wait_until_pending(timeout=0.1):
                pass
            if gate.state == GateState.PENDING:
                stage, _ = pipeline.locate(gate.name)
                _decide(gate, stage.name, decision, operator)
        worker.join()
    except KeyboardInterrupt:
        orchestrator.cancel("interrupted")
        worker.join()

    projection = MonitorProjection(ledger, pipeline)
    MonitorRenderer(console=console).print_snapshot(projection.snapshot(orchestrator.run_id))

    report = reports[0] if reports else orchestrator.report()
    if report.status != RunStatus.SUCCEEDED:
        raise typer.Exit(code=1)

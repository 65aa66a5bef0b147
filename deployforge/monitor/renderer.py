"""Rich terminal renderer for pipeline plans and run snapshots.

Color scheme
------------
- green     : SUCCEEDED
- red       : FAILED
- yellow    : RUNNING
- dim       : NOT_STARTED
- bold red  : BLOCKED
- magenta   : CANCELLED
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from deployforge.core.artifact_graph import ArtifactGraph
from deployforge.models.approvals import GateState
from deployforge.models.states import RunStatus, StageState

if TYPE_CHECKING:
    from deployforge.models.pipeline import Pipeline
    from deployforge.monitor.projection import RunSnapshot


_STATE_STYLES: dict[str, str] = {
    StageState.SUCCEEDED.value: "green",
    StageState.FAILED.value: "bold red",
    StageState.RUNNING.value: "yellow",
    StageState.NOT_STARTED.value: "dim",
    StageState.BLOCKED.value: "bold red",
    StageState.CANCELLED.value: "magenta",
}

_RUN_STYLES: dict[RunStatus, str] = {
    RunStatus.SUCCEEDED: "bold green",
    RunStatus.FAILED: "bold red",
    RunStatus.REJECTED: "bold red",
    RunStatus.CANCELLED: "magenta",
    RunStatus.AWAITING_APPROVAL: "bold yellow",
    RunStatus.RUNNING: "yellow",
    RunStatus.NOT_STARTED: "dim",
}

_GATE_STYLES: dict[GateState, str] = {
    GateState.APPROVED: "green",
    GateState.REJECTED: "bold red",
    GateState.PENDING: "bold yellow",
    GateState.NOT_STARTED: "dim",
}


def _styled(value: str, style: str) -> str:
    return f"[{style}]{value}[/{style}]" if style else value


class MonitorRenderer:
    """Renders pipelines and ``RunSnapshot``s as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Plan
    # ------------------------------------------------------------------

    def render_plan(self, pipeline: Pipeline) -> Table:
        """One row per action, grouped by stage, in execution order."""
        table = Table(title=f"[bold]{pipeline.name}[/bold]", header_style="bold cyan")
        table.add_column("#", style="dim", justify="right")
        table.add_column("Stage", style="bold")
        table.add_column("Run order", justify="center")
        table.add_column("Action")
        table.add_column("Kind")
        table.add_column("Inputs", style="dim")
        table.add_column("Outputs", style="green")

        for index, stage in enumerate(pipeline.stages):
            for position, action in enumerate(
                a for group in stage.run_order_groups() for a in group
            ):
                table.add_row(
                    str(index) if position == 0 else "",
                    stage.name if position == 0 else "",
                    str(action.run_order),
                    action.name,
                    action.kind.value,
                    ", ".join(action.inputs) or "-",
                    ", ".join(action.output_names) or "-",
                )
            table.add_section()
        return table

    def render_artifacts(self, pipeline: Pipeline) -> Table:
        """Producer, producing stage and consumers of every artifact."""
        graph = ArtifactGraph(pipeline)
        table = Table(title="[bold]Artifacts[/bold]", header_style="bold cyan")
        table.add_column("Artifact", style="green")
        table.add_column("Producer")
        table.add_column("Stage", style="bold")
        table.add_column("Consumers", style="dim")
        for name in graph.artifact_names:
            table.add_row(
                name,
                graph.producer_of(name),
                graph.producing_stage(name),
                ", ".join(graph.consumers_of(name)) or "-",
            )
        return table

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def render_snapshot(self, snapshot: RunSnapshot) -> Panel:
        """Render a RunSnapshot as a Panel containing the stage table."""
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("#", style="dim", width=4, justify="right")
        table.add_column("Stage", min_width=14)
        table.add_column("State", justify="center")
        table.add_column("Actions")
        table.add_column("Details")

        for i, stage in enumerate(snapshot.stages):
            style = _STATE_STYLES.get(stage.state.value, "")
            actions = "\n".join(
                f"{a.name} {_styled(a.state.value, _STATE_STYLES.get(a.state.value, ''))}"
                for a in stage.actions
            )
            details: list[str] = []
            if stage.upstream:
                details.append(f"[red]after {stage.upstream}[/red]")
            if stage.artifacts:
                details.append(f"published: {', '.join(stage.artifacts)}")
            if stage.entered_at:
                details.append(f"[dim]{stage.entered_at.strftime('%H:%M:%S')}[/dim]")
            table.add_row(
                str(i),
                _styled(stage.name, style),
                _styled(stage.state.value.upper(), style),
                actions or "[dim]-[/dim]",
                " | ".join(details) or "[dim]-[/dim]",
            )

        summary = [
            f"[bold]Run:[/bold] {snapshot.run_id}",
            f"[bold]Status:[/bold] "
            f"{_styled(snapshot.status.value.upper(), _RUN_STYLES[snapshot.status])}",
            f"[bold]Progress:[/bold] {snapshot.completed_count}/{snapshot.total_stages}",
        ]
        for gate, state in snapshot.gates.items():
            summary.append(f"[bold]{gate}:[/bold] {_styled(state.value, _GATE_STYLES[state])}")
        chain = "[green]valid[/green]" if snapshot.chain_valid else "[bold red]BROKEN[/bold red]"
        summary.append(f"[bold]Chain:[/bold] {chain}")

        parts: list = [table, Text(""), Text.from_markup("  |  ".join(summary))]
        if snapshot.failed_action:
            parts.append(
                Text.from_markup(
                    f"[bold red]First failure:[/bold red] {snapshot.failed_stage}/"
                    f"{snapshot.failed_action}: {snapshot.failure_message or ''}"
                )
            )

        return Panel(
            Group(*parts),
            title=f"[bold]{snapshot.pipeline or 'deployforge'}[/bold]",
            subtitle=f"Last updated: {snapshot.last_updated.strftime('%Y-%m-%d %H:%M:%S UTC')}",
            border_style="blue",
            padding=(1, 2),
        )

    # ------------------------------------------------------------------
    # Standalone print
    # ------------------------------------------------------------------

    def print_plan(self, pipeline: Pipeline) -> None:
        self.console.print(self.render_plan(pipeline))
        self.console.print(self.render_artifacts(pipeline))

    def print_snapshot(self, snapshot: RunSnapshot) -> None:
        self.console.print(self.render_snapshot(snapshot))

    def print_chain_verification(self, run_id: str, valid: bool) -> None:
        if valid:
            self.console.print(f"[green]Hash chain for run {run_id} is valid.[/green]")
        else:
            self.console.print(f"[bold red]Hash chain for run {run_id} is BROKEN![/bold red]")

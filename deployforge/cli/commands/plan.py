"""``deployforge plan`` and ``deployforge validate`` — build the pipeline from a
definition without running it."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from deployforge.config import settings
from deployforge.core.definition_loader import load_definition
from deployforge.core.errors import BindingError, PipelineError
from deployforge.models.pipeline import Pipeline
from deployforge.monitor.renderer import MonitorRenderer

console = Console()


def load_pipeline(definition: Path) -> Pipeline:
    """Load *definition* and build its pipeline.  Raises PipelineError subclasses."""
    loaded = load_definition(definition, stack_name_prefix=settings.stack_name_prefix)
    return loaded.build()


def plan_cmd(
    definition: Path = typer.Option(
        settings.definition_path,
        "--definition",
        "-d",
        help="Path to the pipeline definition (TOML).",
    ),
) -> None:
    """Print the stages and actions of the pipeline, in execution order."""
    try:
        pipeline = load_pipeline(definition)
    except PipelineError as exc:
        console.print(f"[bold red]{type(exc).__name__}:[/bold red] {exc}")
        raise typer.Exit(code=1)

    MonitorRenderer(console=console).print_plan(pipeline)


def validate_cmd(
    definition: Path = typer.Option(
        settings.definition_path,
        "--definition",
        "-d",
        help="Path to the pipeline definition (TOML).",
    ),
) -> None:
    """Build the pipeline and report configuration or binding errors."""
    try:
        pipeline = load_pipeline(definition)
    except BindingError as exc:
        console.print(
            Panel(
                "\n".join([
                    f"[bold red]{exc}[/bold red]",
                    "",
                    f"[bold]Expected:[/bold] {exc.expected}",
                    f"[bold]Available:[/bold] {', '.join(exc.actual) or '-'}",
                ]),
                title="[bold red]BindingError[/bold red]",
                border_style="red",
            )
        )
        raise typer.Exit(code=1)
    except PipelineError as exc:
        console.print(f"[bold red]{type(exc).__name__}:[/bold red] {exc}")
        raise typer.Exit(code=1)

    actions = sum(len(stage.actions) for stage in pipeline.stages)
    console.print(
        f"[bold green]Valid:[/bold green] {pipeline.name} "
        f"({len(pipeline.stages)} stages, {actions} actions)"
    )

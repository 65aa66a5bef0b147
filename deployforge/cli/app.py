"""Main Typer application — imports and registers all CLI commands.

Entry point: ``deployforge`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging

import typer

from deployforge.cli.commands.plan import plan_cmd, validate_cmd
from deployforge.cli.commands.run_cmd import run_cmd
from deployforge.cli.commands.status_cmd import status_cmd
from deployforge.config import settings

app = typer.Typer(
    name="deployforge",
    help="deployforge: multi-environment deployment pipeline with a promotion gate.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

app.command(name="plan", help="Show the stages and actions of the pipeline.")(plan_cmd)
app.command(name="validate", help="Check the pipeline definition for errors.")(validate_cmd)
app.command(name="run", help="Dry-run the pipeline through the promotion gate.")(run_cmd)
app.command(name="status", help="Show the ledger projection of a run.")(status_cmd)


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()

"""deployforge CLI — Typer-based command-line interface.

Provides the ``deployforge`` command with subcommands to plan, validate and
dry-run a pipeline, and to show the ledger projection of a run.  All output
uses Rich.
"""

"""Runtime configuration — env-driven.

Centralized settings using pydantic-settings. Reads from a .env file and
DEPLOYFORGE_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class DeployforgeSettings(BaseSettings):
    """Runtime settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export DEPLOYFORGE_LOG_LEVEL=DEBUG
        export DEPLOYFORGE_LEDGER_PATH=/data/ledger.db
        export DEPLOYFORGE_MAX_PARALLEL_ACTIONS=2
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DEPLOYFORGE_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = "development"
    log_level: str = "INFO"

    # Storage paths
    ledger_path: Path = Path(".deployforge/ledger.db")
    definition_path: Path = Path("deployforge.toml")

    # Where DryRunRunner pretends artifacts live
    artifact_location_prefix: str = "local://deployforge/artifacts/"

    # Upper bound on actions running at once within a run-order group
    max_parallel_actions: int = 4

    # Used when a definition gives no stack name for an environment
    stack_name_prefix: str = "Service"


# Module-level singleton — import as `from deployforge.config import settings`
settings = DeployforgeSettings()

"""Shared test fixtures for deployforge."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from deployforge.config import DeployforgeSettings
from deployforge.core.builder import build_pipeline
from deployforge.core.orchestrator import Orchestrator
from deployforge.core.run_ledger import RunLedger
from deployforge.core.stage_machine import StageMachine
from deployforge.models.actions import SourceLocation
from deployforge.models.definition import PipelineSources
from deployforge.models.environments import EnvironmentProfile
from deployforge.models.pipeline import Pipeline


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def ledger(tmp_dir: Path) -> RunLedger:
    """Provide a fresh RunLedger backed by a temp SQLite database."""
    return RunLedger(tmp_dir / "test_ledger.db")


@pytest.fixture
def run_id() -> str:
    """Provide a deterministic test run ID."""
    return "df-test-run-001"


@pytest.fixture
def settings(tmp_dir: Path) -> DeployforgeSettings:
    return DeployforgeSettings(
        ledger_path=tmp_dir / "settings_ledger.db",
        artifact_location_prefix="mem://test/",
    )


# ---------------------------------------------------------------------------
# Profiles and pipeline
# ---------------------------------------------------------------------------


@pytest.fixture
def make_profile() -> Callable[..., EnvironmentProfile]:
    """Factory fixture: build an EnvironmentProfile with sensible defaults."""

    def _factory(tag: str = "ppd", **overrides: Any) -> EnvironmentProfile:
        upper = tag.upper()
        defaults: dict[str, Any] = {
            "tag": tag,
            "stack_name": f"Svc{upper}",
            "endpoint": f"https://{tag.lower()}.svc.example.com",
        }
        defaults.update(overrides)
        return EnvironmentProfile(**defaults)

    return _factory


@pytest.fixture
def ppd_profile(make_profile: Callable[..., EnvironmentProfile]) -> EnvironmentProfile:
    return make_profile("ppd")


@pytest.fixture
def prd_profile(make_profile: Callable[..., EnvironmentProfile]) -> EnvironmentProfile:
    return make_profile("prd")


@pytest.fixture
def sources() -> PipelineSources:
    return PipelineSources(
        application=SourceLocation(owner="acme", repo="svc"),
        infrastructure=SourceLocation(owner="acme", repo="svc-infra"),
    )


@pytest.fixture
def pipeline(
    ppd_profile: EnvironmentProfile,
    prd_profile: EnvironmentProfile,
    sources: PipelineSources,
) -> Pipeline:
    """The fully-wired six-stage pipeline for SvcPPD / SvcPRD."""
    return build_pipeline(ppd_profile, prd_profile, sources)


@pytest.fixture
def stage_machine(ledger: RunLedger, pipeline: Pipeline, run_id: str) -> StageMachine:
    """Provide a StageMachine wired to the test ledger and pipeline."""
    return StageMachine(ledger, pipeline, run_id)


@pytest.fixture
def orchestrator(
    pipeline: Pipeline, ledger: RunLedger, settings: DeployforgeSettings, run_id: str
) -> Orchestrator:
    return Orchestrator(pipeline, ledger=ledger, settings=settings, run_id=run_id)

"""Tests for the MonitorRenderer — rich output of plans and snapshots."""

from __future__ import annotations

from rich.console import Console

from deployforge.models.states import RunStatus, StageState
from deployforge.monitor.projection import RunSnapshot, StageStatus
from deployforge.monitor.renderer import MonitorRenderer


def _render(renderable) -> str:
    console = Console(record=True, width=200)
    console.print(renderable)
    return console.export_text()


class TestMonitorRenderer:
    def test_plan_lists_every_action(self, pipeline):
        text = _render(MonitorRenderer().render_plan(pipeline))
        for stage in pipeline.stages:
            assert stage.name in text
            for action in stage.actions:
                assert action.name in text

    def test_artifacts_table(self, pipeline):
        text = _render(MonitorRenderer().render_artifacts(pipeline))
        synth_row = next(line for line in text.splitlines() if "InfraSynthOutput" in line)
        assert "Infra_SynthAction" in synth_row
        assert "Build-Infra" in synth_row
        assert "ServiceHandlerPPD_Cfn_Deploy, ServiceHandlerPRD_Cfn_Deploy" in synth_row
        prd_row = next(
            line for line in text.splitlines() if "ServiceHandlerBuildOutputPRD" in line
        )
        assert "ServiceHandlerPRD_Cfn_Deploy" in prd_row

    def test_snapshot_panel(self):
        snapshot = RunSnapshot(
            run_id="df-1",
            pipeline="ServicePipeline",
            status=RunStatus.FAILED,
            stages=[
                StageStatus(name="Source", state=StageState.SUCCEEDED),
                StageStatus(name="Build-Infra", state=StageState.FAILED),
                StageStatus(name="Build-PPD", state=StageState.BLOCKED, upstream="Build-Infra"),
            ],
            failed_stage="Build-Infra",
            failed_action="Infra_SynthAction",
            failure_message="synth failed",
        )
        text = _render(MonitorRenderer().render_snapshot(snapshot))
        assert "df-1" in text
        assert "FAILED" in text
        assert "BLOCKED" in text
        assert "after Build-Infra" in text
        assert "Infra_SynthAction" in text
        assert "1/3" in text

    def test_chain_verification_message(self):
        console = Console(record=True, width=120)
        renderer = MonitorRenderer(console=console)
        renderer.print_chain_verification("df-1", True)
        renderer.print_chain_verification("df-1", False)
        text = console.export_text()
        assert "is valid" in text
        assert "BROKEN" in text

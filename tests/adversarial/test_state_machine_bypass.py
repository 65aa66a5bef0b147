"""Adversarial tests — state machine bypass attempts.

These tests verify that:
1. Production stages cannot start ahead of pre-production
2. Actions cannot run outside a running stage
3. Failed work is never retried within the same run
4. Cascade blocking is thorough (no orphaned stages)
5. Terminal run states cannot be exited
"""

from __future__ import annotations

import pytest

from deployforge.core.errors import InvalidTransitionError
from deployforge.core.orchestrator import Orchestrator
from deployforge.core.runners import DryRunRunner
from deployforge.core.stage_machine import StageMachine
from deployforge.models.actions import ActionKind
from deployforge.models.states import ActionState, RunStatus, StageState


def _succeed(sm: StageMachine, stage: str) -> None:
    sm.transition_stage(stage, StageState.RUNNING)
    sm.transition_stage(stage, StageState.SUCCEEDED)


class TestOrderingBypassAttempts:
    def test_cannot_start_production_deploy_first(self, stage_machine: StageMachine):
        with pytest.raises(InvalidTransitionError, match="Cannot start Deploy-PRD"):
            stage_machine.transition_stage("Deploy-PRD", StageState.RUNNING)
        assert stage_machine.get_stage_state("Deploy-PRD") == StageState.NOT_STARTED

    def test_cannot_skip_pre_production_deploy(self, stage_machine: StageMachine):
        for stage in ("Source", "Build-Infra", "Build-PPD"):
            _succeed(stage_machine, stage)
        with pytest.raises(InvalidTransitionError, match="Deploy-PPD is not_started"):
            stage_machine.transition_stage("Build-PRD", StageState.RUNNING)

    def test_cannot_jump_to_succeeded(self, stage_machine: StageMachine):
        with pytest.raises(InvalidTransitionError):
            stage_machine.transition_stage("Source", StageState.SUCCEEDED)

    def test_rejected_attempt_leaves_no_ledger_entry(self, stage_machine: StageMachine, ledger, run_id):
        with pytest.raises(InvalidTransitionError):
            stage_machine.transition_stage("Deploy-PRD", StageState.RUNNING)
        assert ledger.get_run_entries(run_id) == []


class TestActionBypassAttempts:
    def test_action_cannot_run_in_idle_stage(self, stage_machine: StageMachine):
        with pytest.raises(InvalidTransitionError, match="stage Source is not_started"):
            stage_machine.transition_action("Source", "CheckoutApplication", ActionState.RUNNING)

    def test_action_cannot_run_in_finished_stage(self, stage_machine: StageMachine):
        _succeed(stage_machine, "Source")
        with pytest.raises(InvalidTransitionError):
            stage_machine.transition_action("Source", "CheckoutApplication", ActionState.RUNNING)

    def test_failed_action_cannot_be_retried(self, stage_machine: StageMachine):
        stage_machine.transition_stage("Source", StageState.RUNNING)
        stage_machine.transition_action("Source", "CheckoutApplication", ActionState.RUNNING)
        stage_machine.transition_action("Source", "CheckoutApplication", ActionState.FAILED)
        for target in (ActionState.RUNNING, ActionState.SUCCEEDED, ActionState.NOT_STARTED):
            with pytest.raises(InvalidTransitionError):
                stage_machine.transition_action("Source", "CheckoutApplication", target)


class TestCascadeCompleteness:
    def test_failure_blocks_every_later_stage(self, stage_machine: StageMachine, pipeline):
        _succeed(stage_machine, "Source")
        stage_machine.transition_stage("Build-Infra", StageState.RUNNING)
        stage_machine.transition_stage("Build-Infra", StageState.FAILED)

        later = pipeline.stage_names[2:]
        assert all(stage_machine.get_stage_state(s) == StageState.BLOCKED for s in later)
        for stage in later:
            with pytest.raises(InvalidTransitionError):
                stage_machine.transition_stage(stage, StageState.RUNNING)

    def test_failed_stage_cannot_restart(self, stage_machine: StageMachine):
        stage_machine.transition_stage("Source", StageState.RUNNING)
        stage_machine.transition_stage("Source", StageState.FAILED)
        with pytest.raises(InvalidTransitionError):
            stage_machine.transition_stage("Source", StageState.RUNNING)


class TestRunBypassAttempts:
    def test_terminal_run_cannot_resume(self, stage_machine: StageMachine):
        stage_machine.transition_run(RunStatus.RUNNING)
        stage_machine.transition_run(RunStatus.REJECTED)
        for target in (RunStatus.RUNNING, RunStatus.SUCCEEDED):
            with pytest.raises(InvalidTransitionError, match="already rejected"):
                stage_machine.transition_run(target)

    def test_orchestrator_cannot_be_rerun(self, orchestrator: Orchestrator):
        orchestrator.cancel("stop before start")
        orchestrator.run()
        with pytest.raises(InvalidTransitionError, match="already been started"):
            orchestrator.run()

    def test_runner_cannot_impersonate_gate(self, pipeline, ledger, settings):
        with pytest.raises(ValueError, match="promotion gates"):
            Orchestrator(
                pipeline,
                ledger=ledger,
                settings=settings,
                runners={ActionKind.APPROVAL: DryRunRunner()},
            )

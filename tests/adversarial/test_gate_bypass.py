"""Adversarial tests — attempts to push a build past the promotion gate.

These tests verify that:
1. An approval given before the gate opens is refused, not queued
2. A rejection is final: later approvals never resume the run
3. Racing operators produce exactly one recorded decision
4. A cancelled gate cannot be approved
"""

from __future__ import annotations

import threading

import pytest

from deployforge.core.errors import GateRejectedError, InvalidTransitionError
from deployforge.core.orchestrator import Orchestrator
from deployforge.models.approvals import GateState
from deployforge.models.ledger import LedgerScope
from deployforge.models.states import RunStatus, StageState

PRODUCTION_STAGES = ("Build-PRD", "Deploy-PRD")


def _when_pending(orch: Orchestrator, decide) -> threading.Thread:
    def _worker() -> None:
        assert orch.gate().wait_until_pending(timeout=10)
        decide(orch.gate())

    thread = threading.Thread(target=_worker)
    thread.start()
    return thread


def _gate_decisions(orch: Orchestrator) -> list[str]:
    return [
        e.state_transition
        for e in orch.get_run_entries()
        if e.scope == LedgerScope.GATE and e.to_state in ("approved", "rejected")
    ]


class TestEarlyApproval:
    def test_pre_approval_is_not_remembered(self, orchestrator: Orchestrator):
        with pytest.raises(InvalidTransitionError, match="not pending"):
            orchestrator.approve(operator="eager")
        assert orchestrator.gate().state == GateState.NOT_STARTED

        worker = _when_pending(orchestrator, lambda g: g.reject(operator="qa"))
        report = orchestrator.run()
        worker.join()
        assert report.status == RunStatus.REJECTED
        assert _gate_decisions(orchestrator) == ["pending->rejected"]


class TestRejectionIsFinal:
    def test_repeated_approvals_after_rejection(self, orchestrator: Orchestrator):
        refusals: list[GateRejectedError] = []

        def reject_then_hammer(gate) -> None:
            gate.reject(operator="qa", comment="smoke tests red")
            for _ in range(5):
                try:
                    gate.approve(operator="impatient")
                except GateRejectedError as exc:
                    refusals.append(exc)

        worker = _when_pending(orchestrator, reject_then_hammer)
        report = orchestrator.run()
        worker.join()

        assert len(refusals) == 5
        assert all(r.decision.operator == "qa" for r in refusals)
        assert report.status == RunStatus.REJECTED
        for stage in PRODUCTION_STAGES:
            assert report.stage_states[stage] == StageState.BLOCKED
        assert _gate_decisions(orchestrator) == ["pending->rejected"]

    def test_approval_after_run_ended(self, orchestrator: Orchestrator):
        worker = _when_pending(orchestrator, lambda g: g.reject())
        orchestrator.run()
        worker.join()

        with pytest.raises(GateRejectedError):
            orchestrator.approve(operator="late")
        assert orchestrator.status == RunStatus.REJECTED
        assert orchestrator.verify_chain()


class TestRacingOperators:
    def test_one_decision_wins(self, orchestrator: Orchestrator):
        outcomes: list[str] = []
        lock = threading.Lock()

        def race(gate) -> None:
            start = threading.Barrier(8)

            def operator(i: int) -> None:
                start.wait(timeout=5)
                try:
                    if i % 2:
                        gate.approve(operator=f"op{i}")
                    else:
                        gate.reject(operator=f"op{i}")
                except (GateRejectedError, InvalidTransitionError):
                    result = "refused"
                else:
                    result = "accepted"
                with lock:
                    outcomes.append(result)

            threads = [threading.Thread(target=operator, args=(i,)) for i in range(8)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        worker = _when_pending(orchestrator, race)
        report = orchestrator.run()
        worker.join()

        assert len(outcomes) == 8
        decisions = _gate_decisions(orchestrator)
        assert len(decisions) == 1
        if decisions == ["pending->approved"]:
            assert report.status == RunStatus.SUCCEEDED
        else:
            assert report.status == RunStatus.REJECTED
            assert report.stage_states["Deploy-PRD"] == StageState.BLOCKED


class TestCancelledGate:
    def test_cancelled_gate_refuses_approval(self, orchestrator: Orchestrator):
        worker = _when_pending(orchestrator, lambda g: orchestrator.cancel("freeze"))
        report = orchestrator.run()
        worker.join()

        assert report.status == RunStatus.CANCELLED
        with pytest.raises(GateRejectedError):
            orchestrator.approve(operator="someone")
        for stage in PRODUCTION_STAGES:
            assert report.stage_states[stage] == StageState.CANCELLED

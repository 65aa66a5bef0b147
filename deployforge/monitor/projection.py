"""MonitorProjection — pure read-only view over the RunLedger.

The monitor is a PROJECTION of the Run Ledger.  It does not compute truth,
it displays it.  Every call re-reads from the ledger; MonitorProjection
never maintains its own state.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from deployforge.core.run_ledger import LedgerIntegrityError, RunLedger
from deployforge.models.approvals import GateState
from deployforge.models.ledger import LedgerEntry, LedgerScope
from deployforge.models.pipeline import Pipeline
from deployforge.models.states import ActionState, RunStatus, StageState


class ActionStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    state: ActionState = ActionState.NOT_STARTED
    error: str | None = None


class StageStatus(BaseModel):
    """Point-in-time status of a single stage, derived from ledger entries."""

    model_config = ConfigDict(frozen=True)

    name: str
    state: StageState = StageState.NOT_STARTED
    entered_at: datetime | None = None
    upstream: str | None = None  # the stage whose failure blocked/cancelled this one
    actions: list[ActionStatus] = []
    artifacts: list[str] = []


class RunSnapshot(BaseModel):
    """A frozen, point-in-time snapshot of a pipeline run.

    Computed fresh on every ``snapshot()`` call, never persisted.
    """

    model_config = ConfigDict(frozen=True)

    run_id: str
    pipeline: str = ""
    status: RunStatus = RunStatus.NOT_STARTED
    stages: list[StageStatus] = []
    gates: dict[str, GateState] = {}
    failed_stage: str | None = None
    failed_action: str | None = None
    failure_message: str | None = None
    entry_count: int = 0
    chain_valid: bool = True
    last_updated: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def completed_count(self) -> int:
        return sum(1 for s in self.stages if s.state == StageState.SUCCEEDED)

    @property
    def total_stages(self) -> int:
        return len(self.stages)

    @property
    def blocked_stages(self) -> list[StageStatus]:
        return [s for s in self.stages if s.state == StageState.BLOCKED]


class MonitorProjection:
    """Pure read-only projection over the RunLedger.

    Parameters
    ----------
    ledger:
        The RunLedger to project from.
    pipeline:
        Optional pipeline, used for stage and action ordering and to list
        stages the run never reached.  Without it, stages appear in the
        order the ledger first mentions them.
    """

    def __init__(self, ledger: RunLedger, pipeline: Pipeline | None = None) -> None:
        self._ledger = ledger
        self._pipeline = pipeline

    def snapshot(self, run_id: str) -> RunSnapshot:
        """Produce a point-in-time snapshot of *run_id* by replaying its entries."""
        entries = self._ledger.get_run_entries(run_id)

        stage_info: dict[str, dict] = {}
        action_info: dict[str, dict[str, ActionStatus]] = {}
        if self._pipeline is not None:
            for stage in self._pipeline.stages:
                stage_info[stage.name] = {}
                action_info[stage.name] = {
                    a.name: ActionStatus(name=a.name) for a in stage.actions
                }

        status = RunStatus.NOT_STARTED
        pipeline_name = self._pipeline.name if self._pipeline else ""
        gates: dict[str, GateState] = {}
        failure: LedgerEntry | None = None

        for entry in entries:
            if entry.scope == LedgerScope.RUN:
                status = RunStatus(entry.to_state)
                pipeline_name = entry.details.get("pipeline", pipeline_name)
            elif entry.scope == LedgerScope.STAGE:
                info = stage_info.setdefault(entry.stage_name, {})
                action_info.setdefault(entry.stage_name, {})
                info["state"] = StageState(entry.to_state)
                info["entered_at"] = entry.timestamp_utc
                if "upstream" in entry.details:
                    info["upstream"] = entry.details["upstream"]
                if "artifacts" in entry.details:
                    info["artifacts"] = list(entry.details["artifacts"])
            elif entry.scope == LedgerScope.ACTION:
                stage_info.setdefault(entry.stage_name, {})
                state = ActionState(entry.to_state)
                error = entry.details.get("error")
                action_info.setdefault(entry.stage_name, {})[entry.action_name] = ActionStatus(
                    name=entry.action_name, state=state, error=error
                )
                if state == ActionState.FAILED and failure is None:
                    failure = entry
            elif entry.scope == LedgerScope.GATE:
                gates[entry.action_name] = GateState(entry.to_state)

        stages = [
            StageStatus(
                name=name,
                state=info.get("state", StageState.NOT_STARTED),
                entered_at=info.get("entered_at"),
                upstream=info.get("upstream"),
                actions=list(action_info.get(name, {}).values()),
                artifacts=info.get("artifacts", []),
            )
            for name, info in stage_info.items()
        ]

        return RunSnapshot(
            run_id=run_id,
            pipeline=pipeline_name,
            status=status,
            stages=stages,
            gates=gates,
            failed_stage=failure.stage_name if failure else None,
            failed_action=failure.action_name if failure else None,
            failure_message=failure.details.get("error") if failure else None,
            entry_count=len(entries),
            chain_valid=self._check_chain_valid(run_id),
            last_updated=entries[-1].timestamp_utc if entries else datetime.now(timezone.utc),
        )

    def _check_chain_valid(self, run_id: str) -> bool:
        """Check hash chain integrity without raising."""
        try:
            return self._ledger.verify_chain(run_id)
        except LedgerIntegrityError:
            return False

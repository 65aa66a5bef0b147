"""Pipeline orchestrator — the coordinator for one deployment run.

The Orchestrator wires together the RunLedger, StageMachine, ArtifactRegistry,
StageExecutor and one PromotionGate per approval action, and walks the
pipeline stage by stage.  Stages never overlap.  A run is single-shot: after
a failure or rejection the only recovery is a new run from the beginning.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict

from deployforge.config import DeployforgeSettings
from deployforge.core.artifact_graph import ArtifactGraph
from deployforge.core.artifact_registry import ArtifactRegistry
from deployforge.core.errors import (
    GateRejectedError,
    InvalidTransitionError,
    PipelineCancelledError,
    PipelineError,
)
from deployforge.core.executor import StageExecutor, failure_record
from deployforge.core.promotion_gate import PromotionGate
from deployforge.core.run_ledger import RunLedger
from deployforge.core.runners import ActionRunner, DryRunRunner
from deployforge.core.stage_machine import StageMachine
from deployforge.models.actions import Action, ActionKind
from deployforge.models.approvals import GateDecision, GateState
from deployforge.models.ledger import LedgerEntry
from deployforge.models.pipeline import Pipeline
from deployforge.models.states import (
    ActionState,
    FailureRecord,
    RunStatus,
    StageState,
)

logger = logging.getLogger(__name__)


class RunReport(BaseModel):
    """Outcome of a run, as surfaced to operators."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    pipeline: str
    status: RunStatus
    stage_states: dict[str, StageState]
    action_states: dict[str, ActionState]
    gate_states: dict[str, GateState] = {}
    artifacts: list[str] = []
    failure: FailureRecord | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED


class Orchestrator:
    """Runs a pipeline once.

    Parameters
    ----------
    pipeline:
        The fully-wired pipeline to run.
    ledger:
        Run Ledger to record into.  Opened at ``settings.ledger_path`` if
        not provided.
    runners:
        Runner per action kind.  Kinds without a runner use a
        ``DryRunRunner``.  Approval actions are always served by a gate.
    settings:
        Runtime settings.  Uses defaults if not provided.
    run_id:
        Explicit run id.  Generated if None.
    """

    def __init__(
        self,
        pipeline: Pipeline,
        *,
        ledger: RunLedger | None = None,
        runners: Mapping[ActionKind, ActionRunner] | None = None,
        settings: DeployforgeSettings | None = None,
        run_id: str | None = None,
    ) -> None:
        self.settings = settings or DeployforgeSettings()
        self.pipeline = pipeline
        self.graph = ArtifactGraph(pipeline)

        ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        self.run_id = run_id or f"df-{ts}-{uuid.uuid4().hex[:6]}"

        self.ledger = ledger or RunLedger(self.settings.ledger_path)
        self.stage_machine = StageMachine(self.ledger, pipeline, self.run_id)
        self.registry = ArtifactRegistry(pipeline)

        default_runner = DryRunRunner(self.settings.artifact_location_prefix)
        self._runners: dict[ActionKind, ActionRunner] = {
            kind: default_runner for kind in ActionKind if kind != ActionKind.APPROVAL
        }
        for kind, runner in (runners or {}).items():
            if kind == ActionKind.APPROVAL:
                raise ValueError("Approval actions are served by promotion gates, not runners")
            self._runners[kind] = runner

        self.gates: dict[str, PromotionGate] = {
            action.name: PromotionGate(
                action.name,
                information=action.approval.additional_information if action.approval else "",
                external_link=action.approval.external_link if action.approval else "",
                on_transition=self._record_gate_transition,
            )
            for action in pipeline.approval_actions()
        }

        self._cancel = threading.Event()
        self._started = threading.Event()
        self.executor = StageExecutor(
            self.stage_machine,
            self.registry,
            runner_for=self._runner_for,
            gate_for=self.gate,
            cancel=self._cancel,
            max_workers=self.settings.max_parallel_actions,
        )
        self.error: PipelineError | None = None

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def run(self, *, raise_on_failure: bool = False) -> RunReport:
        """Execute every stage in order.  Blocks at a pending gate.

        Returns the run report.  With *raise_on_failure*, a failed, rejected
        or cancelled run re-raises the error that ended it.
        """
        if self._started.is_set():
            raise InvalidTransitionError(
                f"Run {self.run_id} has already been started; start a new run instead"
            )
        self._started.set()

        self.stage_machine.transition_run(
            RunStatus.RUNNING,
            pipeline=self.pipeline.name,
            stages=len(self.pipeline.stages),
            environment=self.settings.environment,
        )
        logger.info("Run %s of %s started", self.run_id, self.pipeline.name)

        status = RunStatus.SUCCEEDED
        try:
            for stage in self.pipeline.stages:
                if self._cancel.is_set():
                    raise PipelineCancelledError(f"Run cancelled before stage {stage.name}")
                self.executor.execute(stage)
        except PipelineCancelledError as exc:
            self.error = exc
            status = RunStatus.CANCELLED
            self._cancel_remaining(str(exc))
        except GateRejectedError as exc:
            self.error = exc
            status = RunStatus.REJECTED
        except PipelineError as exc:
            self.error = exc
            status = RunStatus.FAILED

        failure = self.stage_machine.first_failure
        self.stage_machine.transition_run(
            status,
            **({"failed_stage": failure.stage_name, "failed_action": failure.action_name}
               if failure else {}),
        )
        if status == RunStatus.SUCCEEDED:
            logger.info("Run %s succeeded", self.run_id)
        else:
            logger.warning("Run %s ended %s: %s", self.run_id, status.value, self.error)

        if raise_on_failure and self.error is not None:
            raise self.error
        return self.report()

    def _cancel_remaining(self, reason: str) -> None:
        # Cancelling the first unreached stage cascades to every later one.
        for stage_name in self.pipeline.stage_names:
            if self.stage_machine.get_stage_state(stage_name) == StageState.NOT_STARTED:
                self.stage_machine.cancel_pending_actions(stage_name)
                self.stage_machine.transition_stage(
                    stage_name, StageState.CANCELLED, reason=reason
                )
                return

    def cancel(self, reason: str = "cancelled by operator") -> None:
        """Stop the run: no later stage or gate starts; in-flight actions are
        asked to stop.  Already produced artifacts are kept."""
        if self._cancel.is_set() or self.status.is_terminal:
            return
        logger.warning("Cancelling run %s: %s", self.run_id, reason)
        self._cancel.set()
        self.executor.abort_current()
        for gate in self.gates.values():
            gate.cancel(reason)

    # ------------------------------------------------------------------
    # Gate operations
    # ------------------------------------------------------------------

    def gate(self, name: str | None = None) -> PromotionGate:
        """Return the gate for approval action *name* (the only gate if None)."""
        if name is None:
            if len(self.gates) != 1:
                raise KeyError(f"Pipeline has {len(self.gates)} gates; name one")
            return next(iter(self.gates.values()))
        try:
            return self.gates[name]
        except KeyError:
            raise KeyError(
                f"Unknown approval action {name!r}. Gates: {sorted(self.gates)}"
            ) from None

    def approve(
        self, name: str | None = None, *, operator: str = "", comment: str = ""
    ) -> GateDecision:
        return self.gate(name).approve(operator=operator, comment=comment)

    def reject(
        self, name: str | None = None, *, operator: str = "", comment: str = ""
    ) -> GateDecision:
        return self.gate(name).reject(operator=operator, comment=comment)

    def _record_gate_transition(
        self,
        gate: PromotionGate,
        from_state: GateState,
        to_state: GateState,
        decision: GateDecision | None,
    ) -> None:
        stage_name = self.graph.stage_of(gate.name)
        details: dict[str, str] = {}
        if decision is not None:
            details = {"operator": decision.operator, "comment": decision.comment}
        self.stage_machine.record_gate(
            stage_name, gate.name, from_state.value, to_state.value, **details
        )
        if self.stage_machine.run_status.is_terminal:
            return
        if to_state == GateState.PENDING:
            self.stage_machine.transition_run(RunStatus.AWAITING_APPROVAL, gate=gate.name)
        elif to_state == GateState.APPROVED:
            self.stage_machine.transition_run(RunStatus.RUNNING, gate=gate.name)

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def _runner_for(self, action: Action) -> ActionRunner:
        return self._runners[action.kind]

    @property
    def status(self) -> RunStatus:
        return self.stage_machine.run_status

    def report(self) -> RunReport:
        failure = self.stage_machine.first_failure
        if failure is None and isinstance(self.error, PipelineError) and not isinstance(
            self.error, PipelineCancelledError
        ):
            failure = failure_record(
                getattr(self.error, "stage_name", ""),
                getattr(self.error, "action_name", ""),
                self.error,
            )
        return RunReport(
            run_id=self.run_id,
            pipeline=self.pipeline.name,
            status=self.status,
            stage_states=self.stage_machine.get_stage_states(),
            action_states=self.stage_machine.get_action_states(),
            gate_states={name: gate.state for name, gate in self.gates.items()},
            artifacts=self.registry.visible,
            failure=failure,
        )

    def get_run_entries(self) -> list[LedgerEntry]:
        """Return all ledger entries for this run."""
        return self.ledger.get_run_entries(self.run_id)

    def verify_chain(self) -> bool:
        """Verify the hash chain integrity of this run's ledger."""
        return self.ledger.verify_chain(self.run_id)

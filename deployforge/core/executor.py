"""Stage executor — run-order groups, concurrent within a group.

For one stage, the executor runs every action sharing the lowest unfinished
run-order concurrently, and starts the next group only once the whole
current group has succeeded.  One failing action fails the stage: the stage
abort event is set for in-flight actions, actions not yet started are
cancelled, and the error propagates.  Outputs are published only once the
whole stage has succeeded.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait

from deployforge.core.artifact_registry import ArtifactRegistry
from deployforge.core.errors import (
    ActionExecutionError,
    BindingError,
    GateRejectedError,
    PipelineCancelledError,
    PipelineError,
)
from deployforge.core.promotion_gate import PromotionGate
from deployforge.core.runners import ActionContext, ActionRunner
from deployforge.core.stage_machine import StageMachine
from deployforge.models.actions import Action, ActionKind
from deployforge.models.pipeline import Stage
from deployforge.models.states import ActionState, FailureRecord, StageState

logger = logging.getLogger(__name__)


def failure_record(stage_name: str, action_name: str, exc: BaseException) -> FailureRecord:
    """Describe *exc* for the run report, surfacing binding names if present."""
    binding = exc if isinstance(exc, BindingError) else exc.__cause__
    root = exc.__cause__ if isinstance(exc, ActionExecutionError) and exc.__cause__ else exc
    return FailureRecord(
        stage_name=stage_name,
        action_name=action_name,
        error_type=type(root).__name__,
        message=str(exc),
        expected=binding.expected if isinstance(binding, BindingError) else "",
        actual=binding.actual if isinstance(binding, BindingError) else [],
    )


class StageExecutor:
    """Executes the stages of one run.

    Parameters
    ----------
    machine:
        State machine of the run; every transition goes through it.
    registry:
        Artifact registry of the run.
    runner_for:
        Returns the runner for a (non-approval) action.
    gate_for:
        Returns the promotion gate for an approval action name.
    cancel:
        Run-level cancellation event.
    max_workers:
        Upper bound on concurrently running actions.
    """

    def __init__(
        self,
        machine: StageMachine,
        registry: ArtifactRegistry,
        *,
        runner_for: Callable[[Action], ActionRunner],
        gate_for: Callable[[str], PromotionGate],
        cancel: threading.Event,
        max_workers: int = 4,
    ) -> None:
        self._machine = machine
        self._registry = registry
        self._runner_for = runner_for
        self._gate_for = gate_for
        self._cancel = cancel
        self._max_workers = max(1, max_workers)
        self._abort: threading.Event | None = None
        self._abort_lock = threading.Lock()

    def abort_current(self) -> None:
        """Signal in-flight actions of the current stage to stop (best-effort)."""
        with self._abort_lock:
            if self._abort is not None:
                self._abort.set()

    # ------------------------------------------------------------------
    # Stage
    # ------------------------------------------------------------------

    def execute(self, stage: Stage) -> list[str]:
        """Run *stage* to completion.  Returns the names of published artifacts.

        Raises ``ActionExecutionError``, ``GateRejectedError`` or
        ``PipelineCancelledError``; the stage is FAILED or CANCELLED first.
        """
        abort = threading.Event()
        with self._abort_lock:
            self._abort = abort

        self._machine.transition_stage(stage.name, StageState.RUNNING)
        try:
            for group in stage.run_order_groups():
                if self._cancel.is_set():
                    raise PipelineCancelledError(
                        f"Run cancelled before run-order {group[0].run_order} of {stage.name}"
                    )
                self._run_group(stage, group, abort)
        except PipelineCancelledError as exc:
            self._machine.cancel_pending_actions(stage.name)
            self._machine.transition_stage(stage.name, StageState.CANCELLED, reason=str(exc))
            raise
        except PipelineError as exc:
            self._machine.cancel_pending_actions(stage.name)
            self._machine.transition_stage(stage.name, StageState.FAILED, error=str(exc))
            raise
        finally:
            with self._abort_lock:
                self._abort = None

        published = self._registry.publish_stage(stage.name)
        self._machine.transition_stage(stage.name, StageState.SUCCEEDED, artifacts=published)
        return published

    def _run_group(self, stage: Stage, group: list[Action], abort: threading.Event) -> None:
        logger.debug(
            "Stage %s run-order %d: %s",
            stage.name,
            group[0].run_order,
            ", ".join(a.name for a in group),
        )
        workers = min(len(group), self._max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=stage.name) as pool:
            futures: dict[Future[None], Action] = {
                pool.submit(self._run_action, stage, action, abort): action
                for action in group
            }
            _, not_done = wait(futures, return_when=FIRST_EXCEPTION)
            if not_done:
                abort.set()
                for future in not_done:
                    future.cancel()
                for action in group:
                    if action.kind == ActionKind.APPROVAL:
                        self._gate_for(action.name).cancel(f"stage {stage.name} failed")
                wait(not_done)

        errors = [
            f.exception() for f in futures if not f.cancelled() and f.exception() is not None
        ]
        if not errors:
            return
        if self._cancel.is_set():
            raise PipelineCancelledError(f"Run cancelled during stage {stage.name}")
        first = self._machine.first_failure
        for error in errors:
            if first and getattr(error, "action_name", None) == first.action_name:
                raise error
        raise errors[0]

    # ------------------------------------------------------------------
    # Action
    # ------------------------------------------------------------------

    def _run_action(self, stage: Stage, action: Action, abort: threading.Event) -> None:
        if self._cancel.is_set():
            raise PipelineCancelledError(f"Action {action.name} not started: run cancelled")
        if abort.is_set():
            return
        self._machine.transition_action(stage.name, action.name, ActionState.RUNNING)
        if action.kind == ActionKind.APPROVAL:
            self._run_approval(stage, action)
            return

        try:
            inputs = {name: self._registry.resolve(name) for name in action.inputs}
            parameters = (
                self._registry.resolve_parameters(action.deploy.parameter_overrides)
                if action.deploy is not None
                else {}
            )
            context = ActionContext(
                run_id=self._machine.run_id,
                stage_name=stage.name,
                action=action,
                inputs=inputs,
                parameters=parameters,
                abort=abort,
            )
            result = self._runner_for(action).run(context)

            missing = [a.name for a in action.outputs if not result.outputs.get(a.name)]
            if missing:
                raise ActionExecutionError(
                    f"Action {action.name} in stage {stage.name} did not produce "
                    f"declared artifacts: {missing}",
                    stage_name=stage.name,
                    action_name=action.name,
                )
            for artifact in action.outputs:
                self._registry.record(
                    artifact.name,
                    producer=action.name,
                    stage_name=stage.name,
                    location=result.outputs[artifact.name],
                )
        except Exception as exc:
            if self._cancel.is_set():
                self._machine.transition_action(
                    stage.name, action.name, ActionState.CANCELLED, reason="run cancelled"
                )
                raise PipelineCancelledError(
                    f"Action {action.name} stopped: run cancelled"
                ) from exc
            if isinstance(exc, ActionExecutionError):
                self._fail(stage, action, exc)
                raise
            error = ActionExecutionError(
                f"Action {action.name} in stage {stage.name} failed: {exc}",
                stage_name=stage.name,
                action_name=action.name,
            )
            error.__cause__ = exc
            self._fail(stage, action, error)
            raise error from exc

        self._machine.transition_action(
            stage.name, action.name, ActionState.SUCCEEDED, outputs=action.output_names
        )

    def _run_approval(self, stage: Stage, action: Action) -> None:
        gate = self._gate_for(action.name)
        try:
            gate.open()
            decision = gate.wait()
        except GateRejectedError as exc:
            if exc.decision is not None and exc.decision.cancelled:
                self._machine.transition_action(
                    stage.name, action.name, ActionState.CANCELLED, reason=str(exc)
                )
                raise PipelineCancelledError(str(exc)) from exc
            self._fail(stage, action, exc)
            raise
        self._machine.transition_action(
            stage.name,
            action.name,
            ActionState.SUCCEEDED,
            operator=decision.operator,
        )

    def _fail(self, stage: Stage, action: Action, exc: BaseException) -> None:
        record = failure_record(stage.name, action.name, exc)
        self._machine.record_failure(record)
        self._machine.transition_action(
            stage.name, action.name, ActionState.FAILED, error=str(exc)
        )
        logger.error("Action %s in stage %s failed: %s", action.name, stage.name, exc)

"""Deterministic run state machine for stages and actions.

Enforces:
- Valid state transitions only (VALID_STAGE_TRANSITIONS, VALID_ACTION_TRANSITIONS)
- A stage starts only when every earlier stage has succeeded
- Cascade blocking of later stages on failure, cascade cancel on cancellation
- Every transition recorded in the Run Ledger
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from deployforge.core.errors import InvalidTransitionError
from deployforge.core.run_ledger import RunLedger
from deployforge.models.ledger import LedgerEntry, LedgerScope
from deployforge.models.pipeline import Pipeline
from deployforge.models.states import (
    VALID_ACTION_TRANSITIONS,
    VALID_STAGE_TRANSITIONS,
    ActionState,
    FailureRecord,
    RunStatus,
    StageState,
)

logger = logging.getLogger(__name__)


class StageMachine:
    """State of one pipeline run, mirrored into the ledger.

    Thread-safe: actions of one run-order group report transitions
    concurrently.

    Parameters
    ----------
    ledger:
        The Run Ledger to record transitions into.
    pipeline:
        The pipeline being run.
    run_id:
        Identifier of the run.
    """

    def __init__(self, ledger: RunLedger, pipeline: Pipeline, run_id: str) -> None:
        self._ledger = ledger
        self._pipeline = pipeline
        self.run_id = run_id
        self._lock = threading.RLock()

        self._run_status = RunStatus.NOT_STARTED
        self._stages: dict[str, StageState] = {
            name: StageState.NOT_STARTED for name in pipeline.stage_names
        }
        self._actions: dict[tuple[str, str], ActionState] = {
            (stage.name, action.name): ActionState.NOT_STARTED
            for stage in pipeline.stages
            for action in stage.actions
        }
        self._first_failure: FailureRecord | None = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def run_status(self) -> RunStatus:
        with self._lock:
            return self._run_status

    @property
    def first_failure(self) -> FailureRecord | None:
        with self._lock:
            return self._first_failure

    def get_stage_state(self, stage_name: str) -> StageState:
        with self._lock:
            return self._stages[stage_name]

    def get_action_state(self, stage_name: str, action_name: str) -> ActionState:
        with self._lock:
            return self._actions[(stage_name, action_name)]

    def get_stage_states(self) -> dict[str, StageState]:
        with self._lock:
            return dict(self._stages)

    def get_action_states(self) -> dict[str, ActionState]:
        """Snapshot keyed by action name (action names are pipeline-unique)."""
        with self._lock:
            return {action: state for (_, action), state in self._actions.items()}

    def can_start(self, stage_name: str) -> tuple[bool, list[str]]:
        """Check if a stage can transition to RUNNING.

        Returns (can_start, blocking_reasons).
        """
        with self._lock:
            current = self._stages[stage_name]
            if current != StageState.NOT_STARTED:
                return False, [f"Stage {stage_name} is {current.value}, not not_started"]
            reasons = [
                f"{earlier} is {self._stages[earlier].value}"
                for earlier in self._pipeline.stage_names[
                    : self._pipeline.stage_index(stage_name)
                ]
                if self._stages[earlier] != StageState.SUCCEEDED
            ]
            return not reasons, reasons

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition_run(self, target: RunStatus, **details: Any) -> LedgerEntry:
        with self._lock:
            current = self._run_status
            if current.is_terminal:
                raise InvalidTransitionError(
                    f"Run {self.run_id} is already {current.value}"
                )
            self._run_status = target
            entry = self._record(LedgerScope.RUN, "", "", current.value, target.value, details)
        logger.info("Run %s: %s -> %s", self.run_id, current.value, target.value)
        return entry

    def transition_stage(
        self, stage_name: str, target: StageState, **details: Any
    ) -> LedgerEntry:
        """Move a stage to *target*, recording it in the ledger.

        Entering RUNNING requires every earlier stage to have succeeded.
        Entering FAILED blocks every later stage; entering CANCELLED cancels
        them.
        """
        with self._lock:
            current = self._stages[stage_name]
            allowed = VALID_STAGE_TRANSITIONS.get(current, set())
            if target not in allowed:
                raise InvalidTransitionError(
                    f"Cannot transition stage {stage_name} from {current.value} "
                    f"to {target.value}. Allowed: {[s.value for s in allowed]}"
                )
            if target == StageState.RUNNING:
                ok, reasons = self.can_start(stage_name)
                if not ok:
                    raise InvalidTransitionError(
                        f"Cannot start {stage_name}: {'; '.join(reasons)}"
                    )

            self._stages[stage_name] = target
            entry = self._record(
                LedgerScope.STAGE, stage_name, "", current.value, target.value, details
            )

            if target == StageState.FAILED:
                self._cascade(stage_name, StageState.BLOCKED, upstream=stage_name)
            elif target == StageState.CANCELLED:
                self._cascade(stage_name, StageState.CANCELLED, upstream=stage_name)

        logger.info("Stage %s: %s -> %s", stage_name, current.value, target.value)
        return entry

    def transition_action(
        self, stage_name: str, action_name: str, target: ActionState, **details: Any
    ) -> LedgerEntry:
        with self._lock:
            key = (stage_name, action_name)
            current = self._actions[key]
            allowed = VALID_ACTION_TRANSITIONS.get(current, set())
            if target not in allowed:
                raise InvalidTransitionError(
                    f"Cannot transition action {stage_name}/{action_name} from "
                    f"{current.value} to {target.value}. "
                    f"Allowed: {[s.value for s in allowed]}"
                )
            if target == ActionState.RUNNING and self._stages[stage_name] != StageState.RUNNING:
                raise InvalidTransitionError(
                    f"Cannot start {action_name}: stage {stage_name} is "
                    f"{self._stages[stage_name].value}"
                )
            self._actions[key] = target
            entry = self._record(
                LedgerScope.ACTION, stage_name, action_name, current.value, target.value, details
            )
        logger.debug("Action %s/%s: %s -> %s", stage_name, action_name, current.value, target.value)
        return entry

    def record_failure(self, failure: FailureRecord) -> bool:
        """Keep *failure* if it is the first of the run.  Returns True if kept."""
        with self._lock:
            if self._first_failure is not None:
                return False
            self._first_failure = failure
            return True

    def record_gate(
        self, stage_name: str, action_name: str, from_state: str, to_state: str, **details: Any
    ) -> LedgerEntry:
        with self._lock:
            return self._record(
                LedgerScope.GATE, stage_name, action_name, from_state, to_state, details
            )

    def cancel_pending_actions(self, stage_name: str) -> list[str]:
        """Cancel every NOT_STARTED action of a stage.  Returns their names."""
        cancelled: list[str] = []
        with self._lock:
            for (stage, action), state in list(self._actions.items()):
                if stage == stage_name and state == ActionState.NOT_STARTED:
                    self.transition_action(stage, action, ActionState.CANCELLED)
                    cancelled.append(action)
        return cancelled

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cascade(self, stage_name: str, target: StageState, *, upstream: str) -> list[str]:
        later = self._pipeline.stage_names[self._pipeline.stage_index(stage_name) + 1 :]
        affected: list[str] = []
        for name in later:
            if self._stages[name] == StageState.NOT_STARTED:
                self._stages[name] = target
                self._record(
                    LedgerScope.STAGE,
                    name,
                    "",
                    StageState.NOT_STARTED.value,
                    target.value,
                    {"upstream": upstream},
                )
                affected.append(name)
        if affected:
            logger.info("Stages %s after %s: %s", target.value, upstream, ", ".join(affected))
        return affected

    def _record(
        self,
        scope: LedgerScope,
        stage_name: str,
        action_name: str,
        from_state: str,
        to_state: str,
        details: dict[str, Any],
    ) -> LedgerEntry:
        return self._ledger.append(
            LedgerEntry(
                run_id=self.run_id,
                scope=scope,
                stage_name=stage_name,
                action_name=action_name,
                state_transition=f"{from_state}->{to_state}",
                details=details,
            )
        )

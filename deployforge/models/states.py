"""Run-time state models — deterministic transitions for actions, stages and runs."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class ActionState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StageState(str, Enum):
    """Strict state model for each pipeline stage."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    BLOCKED = "blocked"  # an earlier stage failed
    CANCELLED = "cancelled"


class RunStatus(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    AWAITING_APPROVAL = "awaiting_approval"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REJECTED = "rejected"  # halted at the promotion gate
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_RUN_STATUSES


_TERMINAL_RUN_STATUSES = frozenset(
    {RunStatus.SUCCEEDED, RunStatus.FAILED, RunStatus.REJECTED, RunStatus.CANCELLED}
)


# No retry edges: a failed run is recovered only by starting a new run.
VALID_ACTION_TRANSITIONS: dict[ActionState, set[ActionState]] = {
    ActionState.NOT_STARTED: {ActionState.RUNNING, ActionState.CANCELLED},
    ActionState.RUNNING: {
        ActionState.SUCCEEDED,
        ActionState.FAILED,
        ActionState.CANCELLED,
    },
    ActionState.SUCCEEDED: set(),
    ActionState.FAILED: set(),
    ActionState.CANCELLED: set(),
}

VALID_STAGE_TRANSITIONS: dict[StageState, set[StageState]] = {
    StageState.NOT_STARTED: {
        StageState.RUNNING,
        StageState.BLOCKED,
        StageState.CANCELLED,
    },
    StageState.RUNNING: {
        StageState.SUCCEEDED,
        StageState.FAILED,
        StageState.CANCELLED,
    },
    StageState.SUCCEEDED: set(),
    StageState.FAILED: set(),
    StageState.BLOCKED: set(),
    StageState.CANCELLED: set(),
}


class FailureRecord(BaseModel):
    """First failure of a run — enough context to diagnose without internals."""

    model_config = ConfigDict(frozen=True)

    stage_name: str
    action_name: str = ""
    error_type: str
    message: str
    expected: str = ""
    actual: list[str] = []

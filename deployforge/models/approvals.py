"""Promotion gate models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class GateState(str, Enum):
    NOT_STARTED = "not_started"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


VALID_GATE_TRANSITIONS: dict[GateState, set[GateState]] = {
    GateState.NOT_STARTED: {GateState.PENDING, GateState.REJECTED},  # reject = cancel
    GateState.PENDING: {GateState.APPROVED, GateState.REJECTED},
    GateState.APPROVED: set(),
    GateState.REJECTED: set(),
}


class GateDecision(BaseModel):
    """The single operator decision recorded for a gate in one run."""

    model_config = ConfigDict(frozen=True)

    gate: str  # approval action name
    outcome: GateState
    operator: str = ""
    comment: str = ""
    cancelled: bool = False
    decided_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

"""Run Ledger entry model (append-only, hash-chained).

One entry per state transition of a run, stage, action or promotion gate.
The Build Monitor is a projection of these entries.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class LedgerScope(str, Enum):
    RUN = "run"
    STAGE = "stage"
    ACTION = "action"
    GATE = "gate"


class LedgerEntry(BaseModel):
    """A single entry in the append-only Run Ledger."""

    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    run_id: str
    scope: LedgerScope
    stage_name: str = ""
    action_name: str = ""
    state_transition: str  # "from_state->to_state", e.g. "not_started->running"
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    details: dict[str, Any] = {}
    previous_entry_hash: str = ""
    entry_hash: str = ""  # computed on append, seals this entry

    @property
    def to_state(self) -> str:
        return self.state_transition.split("->", 1)[-1]

"""Pluggable action runners — the seam to the external build/deploy collaborators.

Defines the ``ActionRunner`` Protocol that runner backends must satisfy,
plus ``DryRunRunner``, a pass-through default that performs no work and
hands back a location handle for every declared output.

Approval actions never reach a runner; the promotion gate serves them.
"""

from __future__ import annotations

import threading
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from deployforge.models.actions import Action
from deployforge.models.artifacts import ProducedArtifact


class ActionContext(BaseModel):
    """Everything a runner needs to execute one action.

    ``abort`` is set when the stage fails or the run is cancelled; long
    running runners should poll it and stop early.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    run_id: str
    stage_name: str
    action: Action
    inputs: dict[str, ProducedArtifact] = {}
    parameters: dict[str, str] = {}  # deploy overrides, locations resolved
    abort: threading.Event


class ActionResult(BaseModel):
    """What a runner reports back: one location per declared output."""

    model_config = ConfigDict(frozen=True)

    outputs: dict[str, str] = {}  # artifact name -> opaque location handle
    details: dict[str, Any] = {}


@runtime_checkable
class ActionRunner(Protocol):
    """Protocol for action execution backends.

    Any object with a ``run(context) -> ActionResult`` method satisfies it.
    Raising any exception fails the action, its stage and the pipeline.
    """

    def run(self, context: ActionContext) -> ActionResult:
        ...


class DryRunRunner:
    """Pass-through runner that records calls and fabricates locations.

    Parameters
    ----------
    location_prefix:
        Prefix of the generated location handles.
    """

    def __init__(self, location_prefix: str = "local://deployforge/artifacts/") -> None:
        self.location_prefix = location_prefix
        self._lock = threading.Lock()
        self.calls: list[ActionContext] = []

    def run(self, context: ActionContext) -> ActionResult:
        with self._lock:
            self.calls.append(context)
        return ActionResult(
            outputs={
                artifact.name: f"{self.location_prefix}{context.run_id}/{artifact.name}"
                for artifact in context.action.outputs
            },
            details={"dry_run": True},
        )

    @property
    def executed(self) -> list[str]:
        """Action names in the order they were started."""
        with self._lock:
            return [c.action.name for c in self.calls]

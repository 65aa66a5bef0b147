"""Stage and Pipeline models."""

from __future__ import annotations

from itertools import groupby

from pydantic import BaseModel, ConfigDict

from deployforge.models.actions import Action, ActionKind
from deployforge.models.artifacts import Artifact


class Stage(BaseModel):
    """An ordered, barrier-synchronized group of actions."""

    model_config = ConfigDict(frozen=True)

    name: str
    actions: tuple[Action, ...]

    def run_order_groups(self) -> list[list[Action]]:
        """Actions grouped by run-order, ascending.  Declaration order is kept within a group."""
        ordered = sorted(self.actions, key=lambda a: a.run_order)
        return [list(group) for _, group in groupby(ordered, key=lambda a: a.run_order)]


class Pipeline(BaseModel):
    """Ordered stages forming the full promotion path.

    Stage order encodes the only execution dependency.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    stages: tuple[Stage, ...]

    @property
    def stage_names(self) -> list[str]:
        return [s.name for s in self.stages]

    def stage(self, name: str) -> Stage:
        for stage in self.stages:
            if stage.name == name:
                return stage
        raise KeyError(f"Pipeline {self.name!r} has no stage {name!r}")

    def stage_index(self, name: str) -> int:
        return self.stage_names.index(name)

    def locate(self, action_name: str) -> tuple[Stage, Action]:
        """Return the (stage, action) pair for an action name."""
        for stage in self.stages:
            for action in stage.actions:
                if action.name == action_name:
                    return stage, action
        raise KeyError(f"Pipeline {self.name!r} has no action {action_name!r}")

    def artifacts(self) -> dict[str, Artifact]:
        """Every declared artifact, keyed by name."""
        return {
            artifact.name: artifact
            for stage in self.stages
            for action in stage.actions
            for artifact in action.outputs
        }

    def approval_actions(self) -> list[Action]:
        return [
            action
            for stage in self.stages
            for action in stage.actions
            if action.kind == ActionKind.APPROVAL
        ]

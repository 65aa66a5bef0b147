"""Artifact data-dependency graph over a pipeline's stages.

The graph enforces, at build time:
- Every artifact has exactly one producer (no name collisions).
- Action names are unique across the pipeline.
- Every consumed artifact is produced by an action in a strictly earlier
  stage.  Artifacts become visible only once their producing stage has
  completed, so same-stage and forward references can never be satisfied.
"""

from __future__ import annotations

from deployforge.core.errors import ConfigurationError
from deployforge.models.artifacts import Artifact
from deployforge.models.pipeline import Pipeline


class ArtifactGraph:
    """Producer/consumer edges between the actions of a pipeline.

    Built once from a ``Pipeline``; raises ``ConfigurationError`` on the first
    violated invariant.
    """

    def __init__(self, pipeline: Pipeline) -> None:
        self._pipeline = pipeline
        # artifact name -> (stage index, stage name, artifact)
        self._producers: dict[str, tuple[int, str, Artifact]] = {}
        # artifact name -> list of consuming action names
        self._consumers: dict[str, list[str]] = {}
        # action name -> stage name
        self._action_stage: dict[str, str] = {}

        self._index_producers()
        self._validate_consumers()

    def _index_producers(self) -> None:
        seen_stages: set[str] = set()
        for index, stage in enumerate(self._pipeline.stages):
            if stage.name in seen_stages:
                raise ConfigurationError(f"Duplicate stage name {stage.name!r}")
            seen_stages.add(stage.name)
            if not stage.actions:
                raise ConfigurationError(f"Stage {stage.name!r} has no actions")

            for action in stage.actions:
                if action.name in self._action_stage:
                    raise ConfigurationError(
                        f"Action name {action.name!r} is used in both stage "
                        f"{self._action_stage[action.name]!r} and {stage.name!r}"
                    )
                self._action_stage[action.name] = stage.name

                for artifact in action.outputs:
                    if artifact.name in self._producers:
                        _, other_stage, other = self._producers[artifact.name]
                        raise ConfigurationError(
                            f"Artifact name {artifact.name!r} collides: produced by "
                            f"{other.producer!r} in stage {other_stage!r} and by "
                            f"{action.name!r} in stage {stage.name!r}"
                        )
                    self._producers[artifact.name] = (index, stage.name, artifact)
                    self._consumers[artifact.name] = []

    def _validate_consumers(self) -> None:
        for index, stage in enumerate(self._pipeline.stages):
            for action in stage.actions:
                for name in action.inputs:
                    if name not in self._producers:
                        raise ConfigurationError(
                            f"Action {action.name!r} in stage {stage.name!r} consumes "
                            f"{name!r}, which no action produces"
                        )
                    producer_index, producer_stage, artifact = self._producers[name]
                    if producer_index >= index:
                        raise ConfigurationError(
                            f"Action {action.name!r} in stage {stage.name!r} consumes "
                            f"{name!r} produced by {artifact.producer!r} in "
                            f"{'the same' if producer_index == index else 'a later'} "
                            f"stage {producer_stage!r}"
                        )
                    self._consumers[name].append(action.name)

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def producer_of(self, artifact_name: str) -> str:
        """Return the action name producing *artifact_name*."""
        return self._producers[artifact_name][2].producer

    def producing_stage(self, artifact_name: str) -> str:
        return self._producers[artifact_name][1]

    def consumers_of(self, artifact_name: str) -> list[str]:
        return list(self._consumers.get(artifact_name, []))

    def stage_of(self, action_name: str) -> str:
        return self._action_stage[action_name]

    @property
    def artifact_names(self) -> list[str]:
        return list(self._producers)

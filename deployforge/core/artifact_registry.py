"""Run-scoped artifact registry — write-once, read-after-stage-complete.

Actions stage their outputs as they finish; outputs become visible to
consumers only when ``publish_stage()`` is called for the producing stage.
There is no update or delete: a produced artifact is never rolled back.
"""

from __future__ import annotations

import logging
import threading

from deployforge.core.errors import ArtifactError
from deployforge.models.artifacts import Artifact, LocationBinding, ProducedArtifact
from deployforge.models.pipeline import Pipeline

logger = logging.getLogger(__name__)


class ArtifactRegistry:
    """Tracks which declared artifacts a run has produced.

    Parameters
    ----------
    pipeline:
        The pipeline whose declared artifacts this registry accepts.
    """

    def __init__(self, pipeline: Pipeline) -> None:
        self._declared: dict[str, Artifact] = pipeline.artifacts()
        self._staged: dict[str, ProducedArtifact] = {}
        self._visible: dict[str, ProducedArtifact] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def record(
        self, name: str, *, producer: str, stage_name: str, location: str
    ) -> ProducedArtifact:
        """Record that *producer* emitted *name* at *location*.

        Raises ``ArtifactError`` if the artifact is undeclared, declared by a
        different action, or already produced in this run.
        """
        declared = self._declared.get(name)
        if declared is None:
            raise ArtifactError(f"Artifact {name!r} is not declared by the pipeline")
        if declared.producer != producer:
            raise ArtifactError(
                f"Artifact {name!r} is owned by {declared.producer!r}, "
                f"not {producer!r}"
            )
        if not location:
            raise ArtifactError(f"Artifact {name!r} was produced without a location")

        produced = ProducedArtifact(
            name=name,
            producer=producer,
            stage_name=stage_name,
            location=location,
            files=declared.files,
        )
        with self._lock:
            if name in self._staged or name in self._visible:
                raise ArtifactError(f"Artifact {name!r} is write-once and already produced")
            self._staged[name] = produced
        logger.debug("Staged artifact %s from %s at %s", name, producer, location)
        return produced

    def publish_stage(self, stage_name: str) -> list[str]:
        """Make every artifact staged by *stage_name* visible.  Returns their names."""
        with self._lock:
            names = [n for n, a in self._staged.items() if a.stage_name == stage_name]
            for name in names:
                self._visible[name] = self._staged.pop(name)
        if names:
            logger.info("Stage %s published artifacts: %s", stage_name, ", ".join(names))
        return names

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def resolve(self, name: str) -> ProducedArtifact:
        """Return a visible artifact.  Raises ``ArtifactError`` if not visible yet."""
        with self._lock:
            produced = self._visible.get(name)
        if produced is None:
            raise ArtifactError(
                f"Artifact {name!r} is not visible: its producing stage has not completed"
            )
        return produced

    def resolve_parameters(
        self, overrides: dict[str, str | LocationBinding]
    ) -> dict[str, str]:
        """Substitute every ``LocationBinding`` with the bound artifact's location."""
        return {
            key: self.resolve(value.artifact).location
            if isinstance(value, LocationBinding)
            else value
            for key, value in overrides.items()
        }

    def is_visible(self, name: str) -> bool:
        with self._lock:
            return name in self._visible

    @property
    def visible(self) -> list[str]:
        with self._lock:
            return list(self._visible)

    @property
    def produced(self) -> list[str]:
        """Every artifact produced so far, staged or visible."""
        with self._lock:
            return [*self._visible, *self._staged]

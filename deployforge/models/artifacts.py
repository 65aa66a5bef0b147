"""Artifact models (write-once, single producer)."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from deployforge.core.errors import BindingError


class ArtifactPath(BaseModel):
    """A single declared file inside an artifact, rendered ``artifact::file``."""

    model_config = ConfigDict(frozen=True)

    artifact: str
    file_name: str

    def __str__(self) -> str:
        return f"{self.artifact}::{self.file_name}"


class Artifact(BaseModel):
    """A named blob produced by exactly one action.

    ``files`` lists what the producer declares it will emit.  An empty list
    means the artifact is a whole directory tree (source checkouts).
    """

    model_config = ConfigDict(frozen=True)

    name: str
    producer: str  # action name
    files: tuple[str, ...] = ()
    base_directory: str = "."

    def at_path(self, file_name: str) -> ArtifactPath:
        """Reference *file_name* inside this artifact.

        Raises ``BindingError`` if the producer declares its files and
        *file_name* is not one of them.
        """
        if self.files and file_name not in self.files:
            raise BindingError(
                f"Artifact {self.name!r} (produced by {self.producer!r}) has no "
                f"entry {file_name!r}; declared entries: {list(self.files)}",
                expected=file_name,
                actual=list(self.files),
            )
        return ArtifactPath(artifact=self.name, file_name=file_name)


class LocationBinding(BaseModel):
    """Placeholder for an artifact's storage location, resolved at run time."""

    model_config = ConfigDict(frozen=True)

    artifact: str

    def __str__(self) -> str:
        return f"#{{{self.artifact}.location}}"


class ProducedArtifact(BaseModel):
    """Run-time record of an artifact that an action actually emitted."""

    model_config = ConfigDict(frozen=True)

    name: str
    producer: str
    stage_name: str
    location: str  # opaque storage handle
    files: tuple[str, ...] = ()
    produced_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

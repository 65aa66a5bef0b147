"""Action models — Source, Build, Deploy and Approval units of work."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

from deployforge.models.artifacts import Artifact, ArtifactPath, LocationBinding
from deployforge.models.environments import EnvironmentTag


class ActionKind(str, Enum):
    SOURCE = "source"
    BUILD = "build"
    DEPLOY = "deploy"
    APPROVAL = "approval"


class BuildSpecification(BaseModel):
    """Declarative build steps handed to the external build executor.

    ``environment_variables`` are plaintext configuration, never secrets.
    """

    model_config = ConfigDict(frozen=True)

    version: str = "0.2"
    install_commands: tuple[str, ...] = ()
    build_commands: tuple[str, ...] = ()
    base_directory: str = "."
    output_files: tuple[str, ...] = ()
    environment_variables: dict[str, str] = {}
    build_image: str = "standard:5.0"

    def to_document(self) -> dict[str, Any]:
        """Render the buildspec document consumed by the build executor."""
        doc: dict[str, Any] = {
            "version": self.version,
            "phases": {
                "install": {"commands": list(self.install_commands)},
                "build": {"commands": list(self.build_commands)},
            },
            "artifacts": {
                "base-directory": self.base_directory,
                "files": list(self.output_files),
            },
        }
        if self.environment_variables:
            doc["env"] = {"variables": dict(self.environment_variables)}
        return doc


class SourceLocation(BaseModel):
    """Where a source checkout action pulls from.  Checkout itself is external."""

    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str
    branch: str = "main"
    connection: str = ""  # opaque connection handle


class DeployConfiguration(BaseModel):
    """Create-or-update of one named stack from a synthesized template."""

    model_config = ConfigDict(frozen=True)

    stack_name: str
    template_path: ArtifactPath
    parameter_overrides: dict[str, str | LocationBinding] = {}
    admin_permissions: bool = True
    endpoint: str = ""


class ApprovalConfiguration(BaseModel):
    model_config = ConfigDict(frozen=True)

    additional_information: str = ""
    external_link: str = ""


_CONFIG_FIELD: dict[ActionKind, str] = {
    ActionKind.SOURCE: "source",
    ActionKind.BUILD: "build_spec",
    ActionKind.DEPLOY: "deploy",
    ActionKind.APPROVAL: "approval",
}


class Action(BaseModel):
    """A unit of work inside one stage.

    Exactly the configuration block matching ``kind`` must be set.  Actions
    sharing a ``run_order`` within a stage run concurrently; groups run in
    ascending order.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: ActionKind
    inputs: tuple[str, ...] = ()  # artifact names, in order
    outputs: tuple[Artifact, ...] = ()
    run_order: int = 1
    environment: EnvironmentTag | None = None

    source: SourceLocation | None = None
    build_spec: BuildSpecification | None = None
    deploy: DeployConfiguration | None = None
    approval: ApprovalConfiguration | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> Action:
        if self.run_order < 1:
            raise ValueError(f"Action {self.name!r}: run_order must be >= 1")
        expected = _CONFIG_FIELD[self.kind]
        for kind, field in _CONFIG_FIELD.items():
            present = getattr(self, field) is not None
            if field == expected and not present:
                raise ValueError(
                    f"Action {self.name!r} of kind {self.kind.value} requires {field!r}"
                )
            if field != expected and present:
                raise ValueError(
                    f"Action {self.name!r} of kind {self.kind.value} "
                    f"must not carry {field!r} ({kind.value} configuration)"
                )
        for artifact in self.outputs:
            if artifact.producer != self.name:
                raise ValueError(
                    f"Action {self.name!r} declares output {artifact.name!r} "
                    f"owned by {artifact.producer!r}"
                )
        return self

    @property
    def output_names(self) -> list[str]:
        return [a.name for a in self.outputs]

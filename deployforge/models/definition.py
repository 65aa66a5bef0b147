"""Declarative pipeline definition — everything the builder needs, as data.

Loaded from ``deployforge.toml`` (see ``deployforge.core.definition_loader``).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from deployforge.models.actions import SourceLocation
from deployforge.models.environments import EnvironmentProfile

if TYPE_CHECKING:
    from deployforge.models.pipeline import Pipeline


class PipelineSources(BaseModel):
    """The two independent checkouts the Source stage emits."""

    model_config = ConfigDict(frozen=True)

    application: SourceLocation
    infrastructure: SourceLocation


class FunctionBuild(BaseModel):
    """How the application function is compiled, shared by every environment.

    ``{output_file}`` in a build command is replaced by ``output_file_name``.
    """

    model_config = ConfigDict(frozen=True)

    name: str = "ServiceHandler"
    base_directory: str = "."
    output_file_name: str = "handler"
    install_commands: tuple[str, ...] = ("go get ./...",)
    build_commands: tuple[str, ...] = ("go build -o {output_file}",)
    build_image: str = "standard:2.0"


class SynthesisBuild(BaseModel):
    """How the infrastructure definition is synthesized into templates."""

    model_config = ConfigDict(frozen=True)

    action_name: str = "Infra_SynthAction"
    output_directory: str = "dist"
    install_commands: tuple[str, ...] = ("npm install",)
    build_commands: tuple[str, ...] = (
        "npm run build",
        "npm run cdk synth -- -o {output_directory}",
    )
    build_image: str = "standard:5.0"


class PipelineDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = "ServicePipeline"
    sources: PipelineSources
    function: FunctionBuild = FunctionBuild()
    synthesis: SynthesisBuild = SynthesisBuild()
    pre_production: EnvironmentProfile
    production: EnvironmentProfile
    approval_information: str = "Ready to deploy to Production?"

    def build(self) -> Pipeline:
        """Assemble the fully-wired pipeline for this definition."""
        from deployforge.core.builder import build_pipeline

        return build_pipeline(
            self.pre_production,
            self.production,
            self.sources,
            function=self.function,
            synthesis=self.synthesis,
            name=self.name,
            approval_information=self.approval_information,
        )

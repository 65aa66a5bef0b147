"""Action factories — pure functions of (environment profile, shared inputs).

Every environment-specific action is produced here and nowhere else, so the
pre-production and production graphs can only differ in profile values.
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath, PureWindowsPath
from typing import NamedTuple

from deployforge.core import naming
from deployforge.core.errors import SpecificationError
from deployforge.models.actions import (
    Action,
    ActionKind,
    ApprovalConfiguration,
    BuildSpecification,
    DeployConfiguration,
    SourceLocation,
)
from deployforge.models.artifacts import Artifact, LocationBinding
from deployforge.models.definition import FunctionBuild, SynthesisBuild
from deployforge.models.environments import EnvironmentProfile

logger = logging.getLogger(__name__)

APP_ENV_VARIABLE = "APP_ENV"


class EnvironmentActions(NamedTuple):
    build: Action
    deploy: Action


# ----------------------------------------------------------------------
# Build specifications
# ----------------------------------------------------------------------


def _check_relative(base_directory: str) -> None:
    if not base_directory or not base_directory.strip():
        raise SpecificationError("Base directory must not be empty")
    if PurePosixPath(base_directory).is_absolute() or PureWindowsPath(base_directory).is_absolute():
        raise SpecificationError(
            f"Base directory must be a relative path, got {base_directory!r}"
        )


def function_build_spec(
    base_directory: str,
    output_file_name: str,
    *,
    install_commands: tuple[str, ...] = (),
    build_commands: tuple[str, ...] = (),
    environment_variables: dict[str, str] | None = None,
    build_image: str = "standard:2.0",
) -> BuildSpecification:
    """Build specification whose only declared output is *output_file_name*.

    Raises ``SpecificationError`` if the output file name is empty or the base
    directory is not a relative path.
    """
    if not output_file_name or not output_file_name.strip():
        raise SpecificationError("Output file name must not be empty")
    _check_relative(base_directory)

    return BuildSpecification(
        install_commands=(f"cd {base_directory}", *install_commands),
        build_commands=tuple(
            cmd.format(output_file=output_file_name) for cmd in build_commands
        ),
        base_directory=base_directory,
        output_files=(output_file_name,),
        environment_variables=dict(environment_variables or {}),
        build_image=build_image,
    )


def synthesis_build_spec(
    synthesis: SynthesisBuild, template_files: list[str]
) -> BuildSpecification:
    _check_relative(synthesis.output_directory)
    if not template_files:
        raise SpecificationError("Synthesis must declare at least one template file")
    return BuildSpecification(
        install_commands=synthesis.install_commands,
        build_commands=tuple(
            cmd.format(output_directory=synthesis.output_directory)
            for cmd in synthesis.build_commands
        ),
        base_directory=synthesis.output_directory,
        output_files=tuple(template_files),
        build_image=synthesis.build_image,
    )


# ----------------------------------------------------------------------
# Environment-independent actions
# ----------------------------------------------------------------------


def source_action(action_name: str, location: SourceLocation, artifact_name: str) -> Action:
    """Checkout action emitting one whole-tree artifact."""
    return Action(
        name=action_name,
        kind=ActionKind.SOURCE,
        outputs=(Artifact(name=artifact_name, producer=action_name),),
        source=location,
    )


def synthesis_action(
    synthesis: SynthesisBuild,
    infra_source: Artifact,
    profiles: list[EnvironmentProfile],
    *,
    output_name: str = "InfraSynthOutput",
) -> Action:
    """Infra-synthesis action declaring one template per environment profile."""
    template_files = [naming.template_file_name(p.stack_name) for p in profiles]
    spec = synthesis_build_spec(synthesis, template_files)
    return Action(
        name=synthesis.action_name,
        kind=ActionKind.BUILD,
        inputs=(infra_source.name,),
        outputs=(
            Artifact(
                name=output_name,
                producer=synthesis.action_name,
                files=spec.output_files,
                base_directory=spec.base_directory,
            ),
        ),
        build_spec=spec,
    )


def approval_action(
    action_name: str,
    *,
    information: str = "",
    external_link: str = "",
    run_order: int = 2,
) -> Action:
    return Action(
        name=action_name,
        kind=ActionKind.APPROVAL,
        run_order=run_order,
        approval=ApprovalConfiguration(
            additional_information=information,
            external_link=external_link,
        ),
    )


# ----------------------------------------------------------------------
# Environment-specific actions
# ----------------------------------------------------------------------


def build_action(
    profile: EnvironmentProfile,
    *,
    function: FunctionBuild,
    source: Artifact,
    variables: dict[str, str] | None = None,
) -> Action:
    """Build action for one environment.

    Environment variables are ``APP_ENV`` first, then the profile's
    variables, then *variables*; later entries win.
    """
    tag = profile.tag
    action_name = naming.build_action_name(function.name, tag)
    environment_variables = {
        APP_ENV_VARIABLE: tag.value,
        **profile.variables,
        **(variables or {}),
    }
    spec = function_build_spec(
        function.base_directory,
        function.output_file_name,
        install_commands=function.install_commands,
        build_commands=function.build_commands,
        environment_variables=environment_variables,
        build_image=function.build_image,
    )
    return Action(
        name=action_name,
        kind=ActionKind.BUILD,
        inputs=(source.name,),
        outputs=(
            Artifact(
                name=naming.build_output_name(function.name, tag),
                producer=action_name,
                files=spec.output_files,
                base_directory=spec.base_directory,
            ),
        ),
        environment=tag,
        build_spec=spec,
    )


def deploy_action(
    profile: EnvironmentProfile,
    *,
    function: FunctionBuild,
    template: Artifact,
    package: Artifact,
) -> Action:
    """Deploy action for one environment.

    Binds *package*'s storage location under ``profile.code_parameter`` and
    takes its template from *template* by the shared naming convention.
    Raises ``BindingError`` if *template* does not declare that file.
    """
    template_path = template.at_path(naming.template_file_name(profile.stack_name))

    if profile.code_parameter in profile.parameters:
        raise SpecificationError(
            f"{profile.tag.value}: deploy parameter {profile.code_parameter!r} "
            f"is reserved for the build artifact location"
        )
    overrides: dict[str, str | LocationBinding] = dict(profile.parameters)
    overrides[profile.code_parameter] = LocationBinding(artifact=package.name)

    return Action(
        name=naming.deploy_action_name(function.name, profile.tag),
        kind=ActionKind.DEPLOY,
        inputs=(template.name, package.name),
        environment=profile.tag,
        deploy=DeployConfiguration(
            stack_name=profile.stack_name,
            template_path=template_path,
            parameter_overrides=overrides,
            endpoint=profile.endpoint,
        ),
    )


def environment_actions(
    profile: EnvironmentProfile,
    *,
    function: FunctionBuild,
    app_source: Artifact,
    template: Artifact,
) -> EnvironmentActions:
    """The build and deploy actions of one environment, from one routine."""
    build = build_action(profile, function=function, source=app_source)
    deploy = deploy_action(
        profile, function=function, template=template, package=build.outputs[0]
    )
    logger.debug(
        "Templated %s actions: %s, %s", profile.tag.value, build.name, deploy.name
    )
    return EnvironmentActions(build=build, deploy=deploy)

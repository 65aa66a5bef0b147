"""Pipeline graph builder — fixed topology expressed as data.

The topology is a tuple of ``StageDescriptor``s.  Environment-specific stages
pull their actions from ``environment_actions()``, invoked once per profile,
so the pre-production and production stages are built by the same code.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from deployforge.core import naming
from deployforge.core.artifact_graph import ArtifactGraph
from deployforge.core.errors import ConfigurationError
from deployforge.core.factories import (
    APP_ENV_VARIABLE,
    EnvironmentActions,
    approval_action,
    environment_actions,
    source_action,
    synthesis_action,
)
from deployforge.core.hasher import structural_fingerprint
from deployforge.models.actions import Action
from deployforge.models.definition import FunctionBuild, PipelineSources, SynthesisBuild
from deployforge.models.environments import EnvironmentProfile, EnvironmentTag
from deployforge.models.pipeline import Pipeline, Stage

logger = logging.getLogger(__name__)

APP_SOURCE_ARTIFACT = "AppSource"
INFRA_SOURCE_ARTIFACT = "InfraSource"
SYNTH_OUTPUT_ARTIFACT = "InfraSynthOutput"


class StageRole(str, Enum):
    SOURCE = "Source"
    SYNTHESIS = "Build-Infra"
    BUILD = "Build"
    DEPLOY = "Deploy"


class StageDescriptor(BaseModel):
    """One row of the topology: what a stage does and for which environment."""

    model_config = ConfigDict(frozen=True)

    role: StageRole
    environment: EnvironmentTag | None = None
    gated: bool = False  # append the promotion approval after the stage's actions

    @property
    def name(self) -> str:
        return naming.stage_name(self.role.value, self.environment)


PIPELINE_TOPOLOGY: tuple[StageDescriptor, ...] = (
    StageDescriptor(role=StageRole.SOURCE),
    StageDescriptor(role=StageRole.SYNTHESIS),
    StageDescriptor(role=StageRole.BUILD, environment=EnvironmentTag.PPD),
    StageDescriptor(role=StageRole.DEPLOY, environment=EnvironmentTag.PPD, gated=True),
    StageDescriptor(role=StageRole.BUILD, environment=EnvironmentTag.PRD),
    StageDescriptor(role=StageRole.DEPLOY, environment=EnvironmentTag.PRD),
)


# ----------------------------------------------------------------------
# Profile validation
# ----------------------------------------------------------------------


def _check_profiles(
    pre_production: EnvironmentProfile, production: EnvironmentProfile
) -> dict[EnvironmentTag, EnvironmentProfile]:
    problems: list[str] = []
    for expected, profile in (
        (EnvironmentTag.PPD, pre_production),
        (EnvironmentTag.PRD, production),
    ):
        if profile.tag is not expected:
            problems.append(
                f"{expected.display_name.lower()} profile is tagged {profile.tag.value}, "
                f"expected {expected.value}"
            )
        if not profile.stack_name.strip():
            problems.append(f"{profile.tag.value} profile is missing 'stack_name'")
        if not profile.endpoint.strip():
            problems.append(f"{profile.tag.value} profile is missing 'endpoint'")
    if (
        pre_production.stack_name
        and pre_production.stack_name == production.stack_name
    ):
        problems.append(
            f"both profiles target the same stack {production.stack_name!r}"
        )
    if problems:
        raise ConfigurationError("Invalid environment profiles: " + "; ".join(problems))
    return {EnvironmentTag.PPD: pre_production, EnvironmentTag.PRD: production}


# ----------------------------------------------------------------------
# Symmetry
# ----------------------------------------------------------------------


def environment_fingerprint(
    actions: EnvironmentActions, profile: EnvironmentProfile, *, function_name: str
) -> str:
    """Structural hash of one environment's actions with profile values masked.

    Profile build variables and extra deploy parameters are removed first.
    Strings equal to a profile value, or to a name the naming helpers derive
    from the profile, are replaced by placeholders.  Equal fingerprints mean
    the two environments were built by identical logic.
    """
    tag = profile.tag
    shape: list[dict[str, Any]] = []
    for action in actions:
        dump = action.model_dump(mode="json")
        if dump.get("build_spec"):
            env = dump["build_spec"]["environment_variables"]
            app_env = env.pop(APP_ENV_VARIABLE, None)
            for key in profile.variables:
                env.pop(key, None)
            if app_env is not None:
                env[APP_ENV_VARIABLE] = "<app-env>"
        if dump.get("deploy"):
            overrides = dump["deploy"]["parameter_overrides"]
            for key in profile.parameters:
                overrides.pop(key, None)
        shape.append(dump)
    return structural_fingerprint(
        shape,
        {
            "<build-action>": naming.build_action_name(function_name, tag),
            "<build-output>": naming.build_output_name(function_name, tag),
            "<deploy-action>": naming.deploy_action_name(function_name, tag),
            "<stack>": profile.stack_name,
            "<template>": naming.template_file_name(profile.stack_name),
            "<endpoint>": profile.endpoint,
            "<code-parameter>": profile.code_parameter,
            "<tag>": tag.value,
        },
    )


def _check_symmetry(
    env_actions: dict[EnvironmentTag, EnvironmentActions],
    profiles: dict[EnvironmentTag, EnvironmentProfile],
    function_name: str,
) -> None:
    fingerprints = {
        tag: environment_fingerprint(actions, profiles[tag], function_name=function_name)
        for tag, actions in env_actions.items()
    }
    if len(set(fingerprints.values())) != 1:
        raise ConfigurationError(
            "Pre-production and production actions are not structurally identical: "
            + ", ".join(f"{tag.value}={fp[:12]}" for tag, fp in fingerprints.items())
        )


# ----------------------------------------------------------------------
# Assembly
# ----------------------------------------------------------------------


def build_pipeline(
    pre_production: EnvironmentProfile,
    production: EnvironmentProfile,
    sources: PipelineSources,
    *,
    function: FunctionBuild | None = None,
    synthesis: SynthesisBuild | None = None,
    name: str = "ServicePipeline",
    approval_information: str = "Ready to deploy to Production?",
    topology: tuple[StageDescriptor, ...] = PIPELINE_TOPOLOGY,
) -> Pipeline:
    """Assemble the fully-wired pipeline for two environment profiles.

    Raises
    ------
    ConfigurationError
        A profile is incomplete, an artifact or action name collides, an
        action consumes an artifact not produced in an earlier stage, or the
        two environments are not symmetric.
    SpecificationError
        Build parameters are invalid.
    BindingError
        A deploy action cannot find its template in the synthesis output.
    """
    function = function or FunctionBuild()
    synthesis = synthesis or SynthesisBuild()
    profiles = _check_profiles(pre_production, production)

    app_checkout = source_action(
        "CheckoutApplication", sources.application, APP_SOURCE_ARTIFACT
    )
    infra_checkout = source_action(
        "CheckoutInfrastructure", sources.infrastructure, INFRA_SOURCE_ARTIFACT
    )
    synth = synthesis_action(
        synthesis,
        infra_checkout.outputs[0],
        [pre_production, production],
        output_name=SYNTH_OUTPUT_ARTIFACT,
    )

    env_actions = {
        tag: environment_actions(
            profile,
            function=function,
            app_source=app_checkout.outputs[0],
            template=synth.outputs[0],
        )
        for tag, profile in profiles.items()
    }
    _check_symmetry(env_actions, profiles, function.name)

    def actions_for(descriptor: StageDescriptor) -> tuple[Action, ...]:
        if descriptor.role is StageRole.SOURCE:
            return (app_checkout, infra_checkout)
        if descriptor.role is StageRole.SYNTHESIS:
            return (synth,)
        if descriptor.environment is None:
            raise ConfigurationError(
                f"Stage role {descriptor.role.value!r} needs an environment"
            )
        env = env_actions[descriptor.environment]
        if descriptor.role is StageRole.BUILD:
            return (env.build,)
        actions: tuple[Action, ...] = (env.deploy,)
        if descriptor.gated:
            actions += (
                approval_action(
                    naming.approval_action_name(function.name, EnvironmentTag.PRD),
                    information=approval_information,
                    external_link=profiles[descriptor.environment].endpoint,
                    run_order=env.deploy.run_order + 1,
                ),
            )
        return actions

    pipeline = Pipeline(
        name=name,
        stages=tuple(
            Stage(name=descriptor.name, actions=actions_for(descriptor))
            for descriptor in topology
        ),
    )
    ArtifactGraph(pipeline)

    logger.info(
        "Built pipeline %r: %d stages, %d artifacts (%s -> %s)",
        pipeline.name,
        len(pipeline.stages),
        len(pipeline.artifacts()),
        pre_production.stack_name,
        production.stack_name,
    )
    return pipeline

"""Naming conventions shared by the synthesis and deploy actions.

The template file name is the only coupling between the infra-synthesis
action (which emits one template per environment) and the deploy actions
(which look their template up by name).  Both sides format it here.
"""

from __future__ import annotations

from deployforge.models.environments import EnvironmentTag

TEMPLATE_SUFFIX = ".template.json"


def stack_name(stack_name_prefix: str, tag: EnvironmentTag | str) -> str:
    """``{stackNamePrefix}{environmentTag}``, e.g. ``ServiceStackPPD``."""
    return f"{stack_name_prefix}{EnvironmentTag(tag).value}"


def template_file_name(stack: str) -> str:
    """Template file emitted by synthesis for the stack named *stack*."""
    return f"{stack}{TEMPLATE_SUFFIX}"


def stage_name(kind: str, tag: EnvironmentTag | None = None) -> str:
    """Stage names: ``Source``, ``Build-Infra``, ``Build-PPD``, ``Deploy-PRD``..."""
    if tag is None:
        return kind
    return f"{kind}-{tag.value}"


def build_action_name(function_name: str, tag: EnvironmentTag) -> str:
    return f"{function_name}{tag.value}_BuildAction"


def build_output_name(function_name: str, tag: EnvironmentTag) -> str:
    return f"{function_name}BuildOutput{tag.value}"


def deploy_action_name(function_name: str, tag: EnvironmentTag) -> str:
    return f"{function_name}{tag.value}_Cfn_Deploy"


def approval_action_name(function_name: str, target: EnvironmentTag) -> str:
    return f"Deploy{function_name}To{target.display_name}Approval"

"""Adversarial tests — template binding between synthesis and deploy.

The template file name is the only contract between the infra-synthesis
action and the deploy actions.  These tests verify that any drift in that
contract fails at graph construction, never at deploy time.
"""

from __future__ import annotations

import pytest

from deployforge.core import builder
from deployforge.core.builder import build_pipeline
from deployforge.core.errors import BindingError
from deployforge.core.factories import deploy_action
from deployforge.models.artifacts import Artifact
from deployforge.models.definition import FunctionBuild


def _synth(*files: str) -> Artifact:
    return Artifact(name="InfraSynthOutput", producer="Infra_SynthAction", files=files)


def _package(tag: str) -> Artifact:
    return Artifact(
        name=f"ServiceHandlerBuildOutput{tag}",
        producer=f"ServiceHandler{tag}_BuildAction",
        files=("handler",),
    )


class TestTemplateDrift:
    def test_missing_production_template(self, prd_profile):
        with pytest.raises(BindingError) as exc_info:
            deploy_action(
                prd_profile,
                function=FunctionBuild(),
                template=_synth("SvcPPD.template.json"),
                package=_package("PRD"),
            )
        assert exc_info.value.expected == "SvcPRD.template.json"
        assert exc_info.value.actual == ["SvcPPD.template.json"]

    @pytest.mark.parametrize(
        "emitted",
        [
            "svcprd.template.json",  # case differs
            "SvcPRD.template.yaml",  # suffix differs
            "ServicePRD.template.json",  # prefix differs
            "SvcPRD",  # suffix missing
        ],
    )
    def test_near_miss_names_rejected(self, prd_profile, emitted):
        with pytest.raises(BindingError, match="SvcPRD.template.json"):
            deploy_action(
                prd_profile,
                function=FunctionBuild(),
                template=_synth("SvcPPD.template.json", emitted),
                package=_package("PRD"),
            )

    def test_renamed_stack_after_synthesis(self, monkeypatch, ppd_profile, prd_profile, sources):
        """Synthesis ran for one production stack name, the deploy targets another."""
        renamed = prd_profile.model_copy(update={"stack_name": "SvcPRD2"})
        original = builder.environment_actions

        def deploy_renamed(profile, **kwargs):
            if profile.tag == prd_profile.tag:
                profile = renamed
            return original(profile, **kwargs)

        monkeypatch.setattr(builder, "environment_actions", deploy_renamed)
        with pytest.raises(BindingError, match="SvcPRD2.template.json"):
            build_pipeline(ppd_profile, prd_profile, sources)

    def test_binding_error_lists_every_declared_template(self, prd_profile):
        declared = ("A.template.json", "B.template.json", "C.template.json")
        with pytest.raises(BindingError) as exc_info:
            deploy_action(
                prd_profile,
                function=FunctionBuild(),
                template=_synth(*declared),
                package=_package("PRD"),
            )
        assert exc_info.value.actual == list(declared)
        for name in declared:
            assert name in str(exc_info.value)

"""Tests for the pipeline graph builder — topology, profiles, symmetry."""

from __future__ import annotations

import pytest

from deployforge.core import builder
from deployforge.core.builder import PIPELINE_TOPOLOGY, build_pipeline, environment_fingerprint
from deployforge.core.errors import ConfigurationError
from deployforge.core.factories import build_action, environment_actions, EnvironmentActions
from deployforge.models.actions import ActionKind
from deployforge.models.artifacts import Artifact
from deployforge.models.definition import FunctionBuild, SynthesisBuild
from deployforge.models.environments import CODE_LOCATION_PARAMETER

EXPECTED_STAGES = ["Source", "Build-Infra", "Build-PPD", "Deploy-PPD", "Build-PRD", "Deploy-PRD"]


class TestTopology:
    def test_stage_order(self, pipeline):
        assert pipeline.stage_names == EXPECTED_STAGES

    def test_topology_names(self):
        assert [d.name for d in PIPELINE_TOPOLOGY] == EXPECTED_STAGES

    def test_source_stage_has_two_checkouts(self, pipeline):
        stage = pipeline.stage("Source")
        assert {a.kind for a in stage.actions} == {ActionKind.SOURCE}
        assert sorted(a.output_names[0] for a in stage.actions) == ["AppSource", "InfraSource"]

    def test_synthesis_declares_both_templates(self, pipeline):
        (synth,) = pipeline.stage("Build-Infra").actions
        assert synth.outputs[0].files == ("SvcPPD.template.json", "SvcPRD.template.json")

    def test_approval_follows_ppd_deploy(self, pipeline):
        stage = pipeline.stage("Deploy-PPD")
        deploy, approval = (group[0] for group in stage.run_order_groups())
        assert deploy.kind == ActionKind.DEPLOY and deploy.run_order == 1
        assert approval.kind == ActionKind.APPROVAL and approval.run_order == 2
        assert approval.name == "DeployServiceHandlerToProductionApproval"
        assert approval.approval.external_link == "https://ppd.svc.example.com"
        assert approval.approval.additional_information == "Ready to deploy to Production?"

    def test_only_one_approval(self, pipeline):
        assert len(pipeline.approval_actions()) == 1
        assert not any(
            a.kind == ActionKind.APPROVAL for a in pipeline.stage("Deploy-PRD").actions
        )


class TestScenarioA:
    """Build with SvcPPD / SvcPRD profiles and check the cross-stage wiring."""

    def test_deploy_template_paths(self, pipeline):
        _, ppd = pipeline.locate("ServiceHandlerPPD_Cfn_Deploy")
        _, prd = pipeline.locate("ServiceHandlerPRD_Cfn_Deploy")
        assert str(ppd.deploy.template_path) == "InfraSynthOutput::SvcPPD.template.json"
        assert str(prd.deploy.template_path) == "InfraSynthOutput::SvcPRD.template.json"

    def test_deploy_code_location_bound_to_own_build(self, pipeline):
        for tag in ("PPD", "PRD"):
            stage, deploy = pipeline.locate(f"ServiceHandler{tag}_Cfn_Deploy")
            assert stage.name == f"Deploy-{tag}"
            binding = deploy.deploy.parameter_overrides[CODE_LOCATION_PARAMETER]
            assert binding.artifact == f"ServiceHandlerBuildOutput{tag}"

    def test_build_app_env(self, pipeline):
        for tag in ("PPD", "PRD"):
            (build,) = pipeline.stage(f"Build-{tag}").actions
            assert build.build_spec.environment_variables["APP_ENV"] == tag

    def test_every_artifact_produced_once(self, pipeline):
        assert sorted(pipeline.artifacts()) == [
            "AppSource",
            "InfraSource",
            "InfraSynthOutput",
            "ServiceHandlerBuildOutputPPD",
            "ServiceHandlerBuildOutputPRD",
        ]


class TestProfileValidation:
    def test_missing_endpoint(self, make_profile, prd_profile, sources):
        with pytest.raises(ConfigurationError, match="missing 'endpoint'"):
            build_pipeline(make_profile("ppd", endpoint=""), prd_profile, sources)

    def test_missing_stack_name(self, ppd_profile, make_profile, sources):
        with pytest.raises(ConfigurationError, match="missing 'stack_name'"):
            build_pipeline(ppd_profile, make_profile("prd", stack_name=""), sources)

    def test_swapped_profiles(self, ppd_profile, prd_profile, sources):
        with pytest.raises(ConfigurationError, match="tagged"):
            build_pipeline(prd_profile, ppd_profile, sources)

    def test_same_stack(self, make_profile, sources):
        with pytest.raises(ConfigurationError, match="same stack"):
            build_pipeline(
                make_profile("ppd", stack_name="Shared"),
                make_profile("prd", stack_name="Shared"),
                sources,
            )

    def test_invalid_function_is_specification_error(self, ppd_profile, prd_profile, sources):
        from deployforge.core.errors import SpecificationError

        with pytest.raises(SpecificationError):
            build_pipeline(
                ppd_profile, prd_profile, sources, function=FunctionBuild(output_file_name="")
            )


class TestSymmetry:
    @pytest.fixture
    def template(self, ppd_profile, prd_profile) -> Artifact:
        return Artifact(
            name="InfraSynthOutput",
            producer="Infra_SynthAction",
            files=("SvcPPD.template.json", "SvcPRD.template.json"),
        )

    def test_profiles_yield_equal_fingerprints(self, ppd_profile, prd_profile, template):
        app = Artifact(name="AppSource", producer="CheckoutApplication")
        fps = {
            environment_fingerprint(
                environment_actions(p, function=FunctionBuild(), app_source=app, template=template),
                p,
                function_name="ServiceHandler",
            )
            for p in (ppd_profile, prd_profile)
        }
        assert len(fps) == 1

    def test_profile_variables_do_not_break_symmetry(self, make_profile, sources):
        pipeline = build_pipeline(
            make_profile("ppd", variables={"LOG_LEVEL": "debug", "TRACE": "1"}),
            make_profile("prd", variables={"LOG_LEVEL": "info"}, parameters={"Memory": "512"}),
            sources,
        )
        assert len(pipeline.stages) == 6

    def test_function_name_containing_a_tag(self, ppd_profile, prd_profile, sources):
        pipeline = build_pipeline(
            ppd_profile, prd_profile, sources, function=FunctionBuild(name="PRDHandler")
        )
        (build,) = pipeline.stage("Build-PPD").actions
        assert build.name == "PRDHandlerPPD_BuildAction"

    def test_stack_name_inside_shared_names(self, make_profile, prd_profile, sources):
        pipeline = build_pipeline(make_profile("ppd", stack_name="Handler"), prd_profile, sources)
        _, deploy = pipeline.locate("ServiceHandlerPPD_Cfn_Deploy")
        assert deploy.deploy.stack_name == "Handler"
        assert deploy.deploy.template_path.file_name == "Handler.template.json"

    def test_profile_overrides_app_env(self, make_profile, prd_profile, sources):
        pipeline = build_pipeline(
            make_profile("ppd", variables={"APP_ENV": "staging"}), prd_profile, sources
        )
        (ppd_build,) = pipeline.stage("Build-PPD").actions
        (prd_build,) = pipeline.stage("Build-PRD").actions
        assert ppd_build.build_spec.environment_variables["APP_ENV"] == "staging"
        assert prd_build.build_spec.environment_variables["APP_ENV"] == "PRD"

    def test_divergent_environment_rejected(self, monkeypatch, ppd_profile, prd_profile, sources):
        def skewed(profile, *, function, app_source, template):
            actions = environment_actions(
                profile, function=function, app_source=app_source, template=template
            )
            if profile.tag.value == "PRD":
                extra = build_action(
                    profile, function=function, source=app_source, variables={"DEBUG": "1"}
                )
                return EnvironmentActions(build=extra, deploy=actions.deploy)
            return actions

        monkeypatch.setattr(builder, "environment_actions", skewed)
        with pytest.raises(ConfigurationError, match="not structurally identical"):
            build_pipeline(ppd_profile, prd_profile, sources)

    def test_custom_synthesis_directory(self, ppd_profile, prd_profile, sources):
        pipeline = build_pipeline(
            ppd_profile, prd_profile, sources, synthesis=SynthesisBuild(output_directory="cdk.out")
        )
        (synth,) = pipeline.stage("Build-Infra").actions
        assert synth.outputs[0].base_directory == "cdk.out"

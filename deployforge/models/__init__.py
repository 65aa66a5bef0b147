"""deployforge data models — all Pydantic v2, all frozen (immutable)."""

from deployforge.models.actions import (
    Action,
    ActionKind,
    ApprovalConfiguration,
    BuildSpecification,
    DeployConfiguration,
    SourceLocation,
)
from deployforge.models.approvals import VALID_GATE_TRANSITIONS, GateDecision, GateState
from deployforge.models.artifacts import (
    Artifact,
    ArtifactPath,
    LocationBinding,
    ProducedArtifact,
)
from deployforge.models.definition import (
    FunctionBuild,
    PipelineDefinition,
    PipelineSources,
    SynthesisBuild,
)
from deployforge.models.environments import (
    CODE_LOCATION_PARAMETER,
    EnvironmentProfile,
    EnvironmentTag,
)
from deployforge.models.ledger import LedgerEntry, LedgerScope
from deployforge.models.pipeline import Pipeline, Stage
from deployforge.models.states import (
    VALID_ACTION_TRANSITIONS,
    VALID_STAGE_TRANSITIONS,
    ActionState,
    FailureRecord,
    RunStatus,
    StageState,
)

__all__ = [
    "Action",
    "ActionKind",
    "ActionState",
    "ApprovalConfiguration",
    "Artifact",
    "ArtifactPath",
    "BuildSpecification",
    "CODE_LOCATION_PARAMETER",
    "DeployConfiguration",
    "EnvironmentProfile",
    "EnvironmentTag",
    "FailureRecord",
    "FunctionBuild",
    "GateDecision",
    "GateState",
    "LedgerEntry",
    "LedgerScope",
    "LocationBinding",
    "Pipeline",
    "PipelineDefinition",
    "PipelineSources",
    "ProducedArtifact",
    "RunStatus",
    "SourceLocation",
    "Stage",
    "StageState",
    "SynthesisBuild",
    "VALID_ACTION_TRANSITIONS",
    "VALID_GATE_TRANSITIONS",
    "VALID_STAGE_TRANSITIONS",
]

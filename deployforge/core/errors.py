"""Error taxonomy for the deployment pipeline.

Build-time errors (``ConfigurationError``, ``SpecificationError``,
``BindingError``) are raised while the pipeline graph is assembled and are
fatal.  Run-time errors (``ActionExecutionError``, ``GateRejectedError``,
``PipelineCancelledError``) halt the current stage and every later stage.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from deployforge.models.approvals import GateDecision


class PipelineError(RuntimeError):
    """Base class for every error raised by deployforge."""


class ConfigurationError(PipelineError):
    """Raised when a profile or the pipeline topology is malformed."""


class SpecificationError(PipelineError):
    """Raised when build or deploy action parameters are invalid."""


class BindingError(PipelineError):
    """Raised when the synthesis output and a deploy action disagree on names.

    Parameters
    ----------
    message:
        Human-readable description.
    expected:
        The file or parameter name the consumer expected.
    actual:
        What the producer actually declares.
    """

    def __init__(
        self,
        message: str,
        *,
        expected: str = "",
        actual: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = list(actual or [])


class ActionExecutionError(PipelineError):
    """Raised when a delegated action fails.  Halts the stage and pipeline."""

    def __init__(self, message: str, *, stage_name: str, action_name: str) -> None:
        super().__init__(message)
        self.stage_name = stage_name
        self.action_name = action_name


class GateRejectedError(PipelineError):
    """Raised when a promotion gate has been rejected (terminal)."""

    def __init__(self, message: str, *, decision: GateDecision | None = None) -> None:
        super().__init__(message)
        self.decision = decision


class PipelineCancelledError(PipelineError):
    """Raised when an operator cancels a running pipeline."""


class InvalidTransitionError(PipelineError):
    """Raised when a requested state transition is not valid."""


class ArtifactError(PipelineError):
    """Raised on write-once or visibility violations in the artifact registry."""

"""Environment profiles — the only inputs that differ between PPD and PRD."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator

# Parameter key under which a deploy action receives the build artifact location.
CODE_LOCATION_PARAMETER = "FunctionCodeLocation"


class EnvironmentTag(str, Enum):
    """The two promotion targets.  Parsed case-insensitively (``"ppd"`` works)."""

    PPD = "PPD"
    PRD = "PRD"

    @classmethod
    def _missing_(cls, value: object) -> EnvironmentTag | None:
        if isinstance(value, str):
            for member in cls:
                if member.value == value.upper():
                    return member
        return None

    @property
    def display_name(self) -> str:
        return "Preproduction" if self is EnvironmentTag.PPD else "Production"


class EnvironmentProfile(BaseModel):
    """Parameter bundle that specializes the shared build/deploy templates.

    ``stack_name`` and ``endpoint`` are required by the pipeline builder; they
    default to empty so that a missing value surfaces as a
    ``ConfigurationError`` naming the environment rather than a validation
    error.
    """

    model_config = ConfigDict(frozen=True)

    tag: EnvironmentTag
    stack_name: str = ""
    endpoint: str = ""
    variables: dict[str, str] = {}  # plaintext build environment variables
    code_parameter: str = CODE_LOCATION_PARAMETER
    parameters: dict[str, str] = {}  # extra deploy parameter overrides

    @field_validator("tag", mode="before")
    @classmethod
    def _normalize_tag(cls, value: object) -> object:
        if isinstance(value, str):
            return EnvironmentTag(value)
        return value

    @classmethod
    def for_environment(
        cls,
        tag: EnvironmentTag | str,
        stack_name_prefix: str,
        endpoint: str,
        **kwargs: object,
    ) -> EnvironmentProfile:
        """Build a profile whose stack name follows ``{prefix}{tag}``."""
        from deployforge.core.naming import stack_name

        env = EnvironmentTag(tag)
        return cls(
            tag=env,
            stack_name=stack_name(stack_name_prefix, env),
            endpoint=endpoint,
            **kwargs,
        )

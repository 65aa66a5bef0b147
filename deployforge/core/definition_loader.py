"""Load a PipelineDefinition from a TOML file.

Layout::

    name = "ServicePipeline"
    stack_name_prefix = "Service"        # optional

    [sources.application]
    owner = "acme"
    repo = "service"

    [sources.infrastructure]
    owner = "acme"
    repo = "service-infra"

    [environments.ppd]
    endpoint = "https://ppd.example.com"
    variables = { LOG_LEVEL = "debug" }

    [environments.prd]
    endpoint = "https://example.com"

An environment without ``stack_name`` gets ``{stack_name_prefix}{TAG}``.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from deployforge.core import naming
from deployforge.core.errors import ConfigurationError
from deployforge.models.definition import PipelineDefinition
from deployforge.models.environments import EnvironmentTag

logger = logging.getLogger(__name__)

_PROFILE_KEYS = {
    EnvironmentTag.PPD: "pre_production",
    EnvironmentTag.PRD: "production",
}


def parse_definition(
    data: dict[str, Any], *, stack_name_prefix: str = "Service"
) -> PipelineDefinition:
    """Validate raw definition data (as decoded from TOML)."""
    data = dict(data)
    prefix = data.pop("stack_name_prefix", stack_name_prefix)
    environments = data.pop("environments", {})
    if not isinstance(environments, dict):
        raise ConfigurationError("'environments' must be a table keyed by environment tag")

    for key, profile in environments.items():
        try:
            tag = EnvironmentTag(key)
        except ValueError:
            raise ConfigurationError(
                f"Unknown environment {key!r}; expected one of "
                f"{[t.value.lower() for t in EnvironmentTag]}"
            ) from None
        profile = dict(profile)
        profile.setdefault("tag", tag.value)
        profile.setdefault("stack_name", naming.stack_name(prefix, tag))
        data[_PROFILE_KEYS[tag]] = profile

    missing = [t.value.lower() for t, k in _PROFILE_KEYS.items() if k not in data]
    if missing:
        raise ConfigurationError(f"Definition has no profile for environment(s): {missing}")

    try:
        return PipelineDefinition.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid pipeline definition: {exc}") from exc


def load_definition(path: Path | str, *, stack_name_prefix: str = "Service") -> PipelineDefinition:
    """Read and validate the definition at *path*.

    Raises
    ------
    ConfigurationError
        The file is missing, is not valid TOML, or does not describe a
        valid pipeline.
    """
    path = Path(path)
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except FileNotFoundError:
        raise ConfigurationError(f"Pipeline definition not found: {path}") from None
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"{path} is not valid TOML: {exc}") from exc

    definition = parse_definition(data, stack_name_prefix=stack_name_prefix)
    logger.debug("Loaded definition %s from %s", definition.name, path)
    return definition

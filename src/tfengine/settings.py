from __future__ import annotations

"""
settings.py – engine settings
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Knobs that change how a configuration is assembled and evaluated. Settings
can be built directly or read from ``TFENGINE_*`` environment variables.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ConfigurationError

ENV_PREFIX = "TFENGINE_"

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


class RedeclarationPolicy(str, Enum):
    """What happens when two blocks declare the same address."""

    REPLACE = "replace"  # the last declaration wins
    ERROR = "error"


class EngineSettings(BaseModel):
    """Settings shared by the configuration builder and the engine."""

    redeclaration: RedeclarationPolicy = Field(
        RedeclarationPolicy.REPLACE,
        description="Policy applied when an address is declared more than once.",
    )
    variable_env_prefix: str = Field(
        "TF_VAR_",
        description="Prefix of environment variables that supply variable values.",
    )
    read_environment: bool = Field(
        True,
        description="Whether variables may be read from the environment at all.",
    )
    base_dir: Path = Field(
        Path("."), description="Directory that file() paths are relative to."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("variable_env_prefix")
    @classmethod
    def _prefix_no_spaces(cls, v: str) -> str:
        if any(ch.isspace() for ch in v):
            raise ValueError("environment prefix must not contain whitespace")
        return v

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> EngineSettings:
        """
        Build settings from ``TFENGINE_*`` environment variables.

        Recognised variables are ``TFENGINE_REDECLARATION``,
        ``TFENGINE_BASE_DIR`` and ``TFENGINE_READ_ENVIRONMENT``. Unset ones
        keep their defaults.

        Raises:
            ConfigurationError: If a variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        values: dict = {}

        if f"{ENV_PREFIX}REDECLARATION" in env:
            values["redeclaration"] = env[f"{ENV_PREFIX}REDECLARATION"].strip().lower()
        if f"{ENV_PREFIX}BASE_DIR" in env:
            values["base_dir"] = Path(env[f"{ENV_PREFIX}BASE_DIR"])
        if f"{ENV_PREFIX}READ_ENVIRONMENT" in env:
            raw = env[f"{ENV_PREFIX}READ_ENVIRONMENT"].strip().lower()
            if raw in _TRUE_STRINGS:
                values["read_environment"] = True
            elif raw in _FALSE_STRINGS:
                values["read_environment"] = False
            else:
                raise ConfigurationError(
                    f"{ENV_PREFIX}READ_ENVIRONMENT must be a boolean, got '{raw}'"
                )

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid engine settings: {e}") from e


__all__ = ["RedeclarationPolicy", "EngineSettings", "ENV_PREFIX"]

"""Unit tests for engine settings."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from tfengine.exceptions import ConfigurationError
from tfengine.settings import EngineSettings, RedeclarationPolicy


def test_defaults() -> None:
    settings = EngineSettings()
    assert settings.redeclaration == RedeclarationPolicy.REPLACE
    assert settings.variable_env_prefix == "TF_VAR_"
    assert settings.read_environment is True
    assert settings.base_dir == Path(".")


def test_settings_are_immutable() -> None:
    settings = EngineSettings()
    with pytest.raises(ValidationError):
        settings.read_environment = False


class TestFromEnv:
    def test_empty_environment(self) -> None:
        assert EngineSettings.from_env({}) == EngineSettings()

    def test_all_variables(self) -> None:
        settings = EngineSettings.from_env(
            {
                "TFENGINE_REDECLARATION": " Error ",
                "TFENGINE_BASE_DIR": "/srv/config",
                "TFENGINE_READ_ENVIRONMENT": "no",
            }
        )
        assert settings.redeclaration == RedeclarationPolicy.ERROR
        assert settings.base_dir == Path("/srv/config")
        assert settings.read_environment is False

    def test_process_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("TFENGINE_READ_ENVIRONMENT", "1")
        monkeypatch.setenv("TFENGINE_REDECLARATION", "replace")
        assert EngineSettings.from_env().read_environment is True

    def test_invalid_policy(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid engine settings"):
            EngineSettings.from_env({"TFENGINE_REDECLARATION": "merge"})

    def test_invalid_boolean(self) -> None:
        with pytest.raises(ConfigurationError, match="must be a boolean"):
            EngineSettings.from_env({"TFENGINE_READ_ENVIRONMENT": "sometimes"})


def test_prefix_without_whitespace() -> None:
    with pytest.raises(ValueError):
        EngineSettings(variable_env_prefix="TF VAR_")

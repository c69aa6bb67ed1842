"""Shared fixtures for the tfengine unit tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from tfengine.bindings import BindingGraph
from tfengine.context import EvaluationContext
from tfengine.functions import FunctionRegistry


@pytest.fixture
def functions() -> FunctionRegistry:
    return FunctionRegistry.with_builtins()


@pytest.fixture
def bindings() -> BindingGraph:
    return BindingGraph()


@pytest.fixture
def ctx(
    bindings: BindingGraph, functions: FunctionRegistry, tmp_path: Path
) -> EvaluationContext:
    return EvaluationContext(bindings=bindings, functions=functions, base_dir=tmp_path)

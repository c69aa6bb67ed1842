"""Declarative configuration evaluation engine with Terraform semantics."""

from .config import (
    Configuration,
    DataBlock,
    DynamicBlock,
    LocalValue,
    OutputBlock,
    ResourceBlock,
    VariableBlock,
)
from .context import EvaluationContext
from .engine import Engine, evaluate_configuration
from .evaluator import ExpressionEvaluator, evaluate
from .functions import Function, FunctionRegistry, Parameter
from .models import EvaluationResult, OutputValue, ResourceInstance
from .secrets import (
    ChainedSecretSource,
    EncryptedFileSecretSource,
    EnvironmentSecretSource,
    SecretSource,
)
from .settings import EngineSettings, RedeclarationPolicy

__version__ = "0.1.0"

__all__ = [
    "Configuration",
    "VariableBlock",
    "LocalValue",
    "DataBlock",
    "DynamicBlock",
    "ResourceBlock",
    "OutputBlock",
    "EvaluationContext",
    "Engine",
    "evaluate_configuration",
    "ExpressionEvaluator",
    "evaluate",
    "Function",
    "FunctionRegistry",
    "Parameter",
    "EvaluationResult",
    "OutputValue",
    "ResourceInstance",
    "SecretSource",
    "EnvironmentSecretSource",
    "EncryptedFileSecretSource",
    "ChainedSecretSource",
    "EngineSettings",
    "RedeclarationPolicy",
]

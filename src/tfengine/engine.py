"""
Evaluation engine.

Runs the two-phase pass over a configuration:

1. build the dependency graph from static reference analysis;
2. evaluate every block in deterministic topological order, binding each
   address exactly once.

Errors are fatal for the whole pass. The failing block address is attached to
the error, logged and the error is re-raised.
"""

import json
import logging
import os
from collections.abc import Mapping
from typing import Any

from .bindings import BindingGraph, BindingKind
from .config import (
    AnyBlock,
    Configuration,
    DataBlock,
    LocalValue,
    OutputBlock,
    ResourceBlock,
    VariableBlock,
)
from .context import EvaluationContext
from .datasources import DataSourceRegistry
from .evaluator import ExpressionEvaluator, default_evaluator
from .exceptions import (
    ConfigurationError,
    EvaluationError,
    MissingVariableValueError,
    TfEngineError,
    TypeConversionError,
)
from .expander import ResourceExpander
from .functions import FunctionRegistry
from .graph import DependencyGraph
from .models import SENSITIVE_PLACEHOLDER, EvaluationResult, OutputValue
from .secrets import EnvironmentSecretSource, SecretSource
from .settings import EngineSettings
from .values import ValueType, coerce, from_python

logger = logging.getLogger(__name__)

# Variable types whose environment values are JSON documents
_JSON_TYPES = {ValueType.LIST, ValueType.SET, ValueType.MAP}


class Engine:
    """
    Evaluates configurations.

    An Engine holds only collaborators, never per-pass state, so one instance
    can evaluate many configurations, also from several threads.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        functions: FunctionRegistry | None = None,
        secrets: SecretSource | None = None,
        data_sources: DataSourceRegistry | None = None,
        evaluator: ExpressionEvaluator | None = None,
    ):
        self.settings = settings
        self.functions = functions or FunctionRegistry.with_builtins()
        self.secrets = secrets
        self.data_sources = data_sources or DataSourceRegistry.with_defaults()
        self._evaluator = evaluator or default_evaluator
        self._expander = ResourceExpander(self._evaluator)
        self._logger = logger.getChild(self.__class__.__name__)

    def evaluate(
        self,
        configuration: Configuration,
        inputs: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> EvaluationResult:
        """
        Evaluate a configuration.

        Args:
            configuration: Blocks to evaluate
            inputs: Explicit variable values, taking precedence over the
                environment and defaults
            environ: Environment to read ``TF_VAR_*`` values and environment
                secrets from (defaults to ``os.environ``)

        Returns:
            EvaluationResult with every bound value

        Raises:
            ConfigurationError: For static problems (cycles, undeclared
                depends_on targets or inputs).
            EvaluationError: For the first block whose evaluation fails.
        """
        settings = self.settings or configuration.settings
        inputs = dict(inputs or {})
        environ = os.environ if environ is None else environ

        blocks = {block.address: block for block in configuration.blocks()}
        self._check_inputs(blocks, inputs)

        order = DependencyGraph.build(blocks.values()).topological_order()
        self._logger.info(f"Evaluating {len(order)} blocks")

        secrets = self.secrets
        if secrets is None and settings.read_environment:
            secrets = EnvironmentSecretSource(environ=environ)

        ctx = EvaluationContext(
            bindings=BindingGraph(),
            functions=self.functions,
            secrets=secrets,
            base_dir=settings.base_dir,
        )
        result = EvaluationResult(order=order)

        for address in order:
            block = blocks[address]
            try:
                self._evaluate_block(block, ctx, result, settings, inputs, environ)
            except TfEngineError as e:
                e.with_address(address)
                self.redact(e, ctx.bindings)
                self._logger.error(f"Evaluation failed: {e}")
                raise

        self._logger.info(
            f"Evaluation completed: {len(result.instances())} resource instances, "
            f"{len(result.outputs)} outputs"
        )
        return result

    # ------------------------------------------------------------------ #
    # Blocks
    # ------------------------------------------------------------------ #

    def _evaluate_block(
        self,
        block: AnyBlock,
        ctx: EvaluationContext,
        result: EvaluationResult,
        settings: EngineSettings,
        inputs: dict[str, Any],
        environ: Mapping[str, str],
    ) -> None:
        self._logger.debug(f"Evaluating {block.address}")
        block_ctx = ctx.for_block(block.address)

        if isinstance(block, VariableBlock):
            value = self.variable_value(block, settings, inputs, environ)
            ctx.bindings.define(
                block.address, BindingKind.VARIABLE, value, sensitive=block.sensitive
            )
            result.variables[block.name] = value
            if block.sensitive:
                result.sensitive_variables.append(block.name)

        elif isinstance(block, LocalValue):
            value = self._evaluator.evaluate(block.value, block_ctx)
            ctx.bindings.define(block.address, BindingKind.LOCAL, value)
            result.locals[block.name] = value

        elif isinstance(block, DataBlock):
            value = self._read_data(block, block_ctx)
            sensitive = getattr(
                self.data_sources.get_reader(block.data_type), "sensitive", False
            )
            ctx.bindings.define(
                block.address, BindingKind.DATA, value, sensitive=sensitive
            )
            result.data[block.address] = value

        elif isinstance(block, ResourceBlock):
            instances = self._expander.expand(block, block_ctx)
            value = ResourceExpander.collection_value(block, instances)
            ctx.bindings.define(
                block.address, BindingKind.RESOURCE, value, instances=instances
            )
            result.resources[block.address] = instances

        elif isinstance(block, OutputBlock):
            value = self._evaluator.evaluate(block.value, block_ctx)
            ctx.bindings.define(
                block.address, BindingKind.OUTPUT, value, sensitive=block.sensitive
            )
            result.outputs[block.name] = OutputValue(
                name=block.name,
                value=value,
                description=block.description,
                sensitive=block.sensitive,
            )

        else:
            raise ConfigurationError(
                f"Unsupported block type '{type(block).__name__}'", block.address
            )

    def _read_data(self, block: DataBlock, ctx: EvaluationContext) -> Any:
        attributes = self._expander.evaluate_attributes(block, ctx)
        try:
            return from_python(self.data_sources.read(block.data_type, attributes, ctx))
        except TypeConversionError as e:
            raise EvaluationError(
                f"Data source '{block.data_type}' returned an invalid value: "
                f"{e.message}",
                block.address,
            ) from e

    # ------------------------------------------------------------------ #
    # Variables
    # ------------------------------------------------------------------ #

    def variable_value(
        self,
        block: VariableBlock,
        settings: EngineSettings,
        inputs: Mapping[str, Any],
        environ: Mapping[str, str],
    ) -> Any:
        """
        Determine the value of a variable.

        Precedence: explicit input, then the ``<prefix><name>`` environment
        variable, then the default. The value is coerced to the declared type.

        Raises:
            MissingVariableValueError: If no source provides a value.
            TypeConversionError: If the value does not match the type.
        """
        env_key = f"{settings.variable_env_prefix}{block.name}"

        if block.name in inputs:
            raw = from_python(inputs[block.name])
            source = "input"
        elif settings.read_environment and env_key in environ:
            raw = self._parse_environment_value(block, environ[env_key], env_key)
            source = f"environment variable {env_key}"
        elif block.has_default:
            raw = from_python(block.default)
            source = "default"
        else:
            raise MissingVariableValueError(
                f"No value for required variable '{block.name}'; set it as an "
                f"input or through {env_key}",
                block.address,
            )

        if raw is None and not block.nullable:
            raise TypeConversionError(
                f"Variable '{block.name}' must not be null", block.address
            )

        try:
            value = coerce(raw, block.type_spec)
        except TypeConversionError as e:
            # conversion details may quote the value
            detail = f"expected {block.type_spec}" if block.sensitive else e.message
            raise TypeConversionError(
                f"Invalid value for variable '{block.name}' from {source}: {detail}",
                block.address,
            ) from e

        # the value itself is never logged, it may be a secret
        self._logger.debug(f"Variable {block.name} set from {source}")
        return value

    @staticmethod
    def redact(error: TfEngineError, bindings: BindingGraph) -> None:
        """Replace the values of sensitive bindings in an error message."""
        message = error.message
        for text in sorted(bindings.sensitive_strings(), key=len, reverse=True):
            message = message.replace(text, SENSITIVE_PLACEHOLDER)
        if message != error.message:
            error.message = message
            error.args = (message,)

    @staticmethod
    def _parse_environment_value(block: VariableBlock, text: str, env_key: str) -> Any:
        if block.type_spec.kind not in _JSON_TYPES:
            return text
        try:
            return from_python(json.loads(text))
        except json.JSONDecodeError as e:
            raise TypeConversionError(
                f"{env_key} must hold a JSON document for type "
                f"{block.type_spec}: {e.msg}",
                block.address,
            ) from e

    @staticmethod
    def _check_inputs(
        blocks: Mapping[str, AnyBlock], inputs: Mapping[str, Any]
    ) -> None:
        for name in inputs:
            if f"var.{name}" not in blocks:
                raise ConfigurationError(
                    f"Value given for undeclared variable '{name}'"
                )


def evaluate_configuration(
    configuration: Configuration,
    inputs: Mapping[str, Any] | None = None,
    **kwargs: Any,
) -> EvaluationResult:
    """Evaluate ``configuration`` with a default Engine."""
    environ = kwargs.pop("environ", None)
    return Engine(**kwargs).evaluate(configuration, inputs=inputs, environ=environ)


__all__ = ["Engine", "evaluate_configuration"]

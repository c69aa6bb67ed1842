"""
tfengine Exception Classes

Typed exception hierarchy raised while building and evaluating a
configuration. Static problems derive from ConfigurationError, problems that
only appear while evaluating expressions derive from EvaluationError.
"""

from __future__ import annotations


class TfEngineError(Exception):
    """Base exception for all tfengine errors."""

    def __init__(self, message: str, address: str | None = None):
        super().__init__(message)
        self.message = message
        self.address = address

    def with_address(self, address: str) -> TfEngineError:
        """Attach the address of the block being evaluated, if not set yet."""
        if self.address is None:
            self.address = address
        return self

    def __str__(self) -> str:
        if self.address:
            return f"{self.address}: {self.message}"
        return self.message


# --------------------------------------------------------------------------- #
#                          Static configuration errors                        #
# --------------------------------------------------------------------------- #


class ConfigurationError(TfEngineError):
    """Raised when the configuration itself is invalid, before evaluation."""

    pass


class ExpansionError(ConfigurationError):
    """Raised when a block's expansion meta-arguments are ambiguous or invalid."""

    pass


class RedeclarationError(ConfigurationError):
    """Raised when an address is declared twice under the 'error' policy."""

    pass


class CyclicDependencyError(ConfigurationError):
    """Raised when no evaluation order satisfies the dependency graph."""

    def __init__(self, message: str, cycle: list[str] | None = None):
        super().__init__(message)
        self.cycle = cycle or []


# --------------------------------------------------------------------------- #
#                               Evaluation errors                             #
# --------------------------------------------------------------------------- #


class EvaluationError(TfEngineError):
    """Raised when an expression cannot be evaluated."""

    pass


class TypeConversionError(EvaluationError, TypeError):
    """Raised when a value cannot be converted to the required type."""

    pass


class UnresolvedReferenceError(EvaluationError):
    """Raised when a reference names no binding and no loop variable."""

    pass


class IndexOutOfRangeError(EvaluationError):
    """Raised when a list index is outside ``0 <= i < len(list)``."""

    pass


class MissingKeyError(EvaluationError):
    """Raised when a map has no element for the requested key."""

    pass


class UnknownFunctionError(EvaluationError):
    """Raised when a function call names an unregistered function."""

    pass


class FunctionCallError(EvaluationError):
    """Raised when a function receives bad arguments or fails internally."""

    pass


class InvalidCountError(EvaluationError):
    """Raised when ``count`` is not a whole number greater than or equal to 0."""

    pass


class DuplicateKeyError(EvaluationError):
    """Raised when a map comprehension or for_each produces the same key twice."""

    pass


class BindingConflictError(EvaluationError):
    """Raised when an address is bound twice within one evaluation pass."""

    pass


class MissingVariableValueError(EvaluationError):
    """Raised when a variable has no input, environment value or default."""

    pass


class SecretError(EvaluationError):
    """Raised when a secret source cannot produce the requested secret."""

    def __init__(
        self, message: str, address: str | None = None, retryable: bool = False
    ):
        super().__init__(message, address)
        self.retryable = retryable

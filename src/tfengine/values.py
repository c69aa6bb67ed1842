"""
Value Model

Configuration values are plain Python objects tagged by ``type_of``:

    string -> str          number -> int | float      bool -> bool
    list   -> list         set    -> frozenset        map  -> dict[str, ...]
    null   -> None

This module holds the conversion rules between those tags (the same rules
Terraform applies when a value meets a type constraint), tag-aware equality,
and the string rendering used by template interpolation.
"""

import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from collections.abc import Iterable
from typing import Any

from .exceptions import ConfigurationError, TypeConversionError

logger = logging.getLogger(__name__)


class ValueType(str, Enum):
    """Value tags, plus ``ANY`` for use in type constraints."""

    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"
    LIST = "list"
    SET = "set"
    MAP = "map"
    NULL = "null"
    ANY = "any"


_COLLECTION_TYPES = {ValueType.LIST, ValueType.SET, ValueType.MAP}
_PRIMITIVE_TYPES = {ValueType.STRING, ValueType.NUMBER, ValueType.BOOL}

# Sets iterate in a fixed order: bools, then numbers, then strings.
_SORT_ORDER = {ValueType.BOOL: 0, ValueType.NUMBER: 1, ValueType.STRING: 2}

# Conversion messages never include the value itself, it may be sensitive
_NOT_NUMERIC = "Cannot convert string to number; it is not a numeric literal"


@dataclass(frozen=True)
class TypeSpec:
    """A type constraint such as ``string`` or ``map(list(string))``."""

    kind: ValueType
    element: "TypeSpec | None" = None

    def __str__(self) -> str:
        if self.kind in _COLLECTION_TYPES:
            inner = self.element or ANY_TYPE
            return f"{self.kind.value}({inner})"
        return self.kind.value


ANY_TYPE = TypeSpec(ValueType.ANY)
STRING_TYPE = TypeSpec(ValueType.STRING)
NUMBER_TYPE = TypeSpec(ValueType.NUMBER)
BOOL_TYPE = TypeSpec(ValueType.BOOL)

_TYPE_PATTERN = re.compile(r"^\s*(\w+)\s*(?:\((.*)\))?\s*$", re.DOTALL)


def parse_type(text: str | TypeSpec | None) -> TypeSpec:
    """
    Parse a Terraform type constraint string.

    Args:
        text: Constraint such as "string", "list(string)" or "map(number)".
            ``None`` means no constraint.

    Returns:
        The parsed TypeSpec

    Raises:
        ConfigurationError: If the constraint is not understood.
    """
    if text is None:
        return ANY_TYPE
    if isinstance(text, TypeSpec):
        return text

    match = _TYPE_PATTERN.match(text)
    if not match:
        raise ConfigurationError(f"Invalid type constraint '{text}'")

    name, inner = match.group(1), match.group(2)

    if name in ("object", "tuple"):
        # Structural types are accepted, but only checked as a map or list
        fallback = ValueType.MAP if name == "object" else ValueType.LIST
        logger.warning(
            "Type constraint '%s' is checked as %s(any)", text, fallback.value
        )
        return TypeSpec(fallback, ANY_TYPE)

    try:
        kind = ValueType(name)
    except ValueError as e:
        raise ConfigurationError(f"Unknown type constraint '{text}'") from e

    if kind == ValueType.NULL:
        raise ConfigurationError("'null' is not a valid type constraint")

    if kind in _COLLECTION_TYPES:
        element = parse_type(inner) if inner is not None else ANY_TYPE
        return TypeSpec(kind, element)

    if inner is not None:
        raise ConfigurationError(f"Type '{name}' takes no element type")
    return TypeSpec(kind)


def type_of(value: Any) -> ValueType:
    """
    Return the tag of a value.

    Raises:
        TypeConversionError: If the Python object is not a configuration value.
    """
    if value is None:
        return ValueType.NULL
    # bool must be checked before int
    if isinstance(value, bool):
        return ValueType.BOOL
    if isinstance(value, (int, float)):
        return ValueType.NUMBER
    if isinstance(value, str):
        return ValueType.STRING
    if isinstance(value, list):
        return ValueType.LIST
    if isinstance(value, frozenset):
        return ValueType.SET
    if isinstance(value, dict):
        return ValueType.MAP
    raise TypeConversionError(
        f"Unsupported value of Python type '{type(value).__name__}'"
    )


def from_python(obj: Any) -> Any:
    """
    Normalise data coming from outside the engine (inputs, YAML, JSON).

    Tuples become lists, sets become frozensets, map keys become strings.

    Raises:
        TypeConversionError: If the object contains unsupported types.
    """
    if obj is None or isinstance(obj, (bool, str)):
        return obj
    if isinstance(obj, (int, float)):
        if isinstance(obj, float) and not math.isfinite(obj):
            raise TypeConversionError(f"Number {obj} is not finite")
        return obj
    if isinstance(obj, (list, tuple)):
        return [from_python(item) for item in obj]
    if isinstance(obj, (set, frozenset)):
        return make_set(from_python(item) for item in obj)
    if isinstance(obj, dict):
        return {to_string(from_python(k)): from_python(v) for k, v in obj.items()}
    raise TypeConversionError(
        f"Unsupported value of Python type '{type(obj).__name__}'"
    )


def _set_element(value: Any) -> Any:
    if type_of(value) not in _PRIMITIVE_TYPES:
        raise TypeConversionError(
            "Set elements must be strings, numbers or bools, "
            f"got {type_of(value).value}"
        )
    return value


def make_set(items: Iterable[Any]) -> frozenset:
    """
    Build a set value.

    Elements must be primitives. When they carry more than one tag they are
    all converted to strings, so that ``1`` and ``true`` stay distinct
    elements instead of collapsing under Python equality.

    Raises:
        TypeConversionError: If an element is null or a collection.
    """
    elements = [_set_element(item) for item in items]
    if len({type_of(item) for item in elements}) > 1:
        elements = [to_string(item) for item in elements]
    return frozenset(elements)


def _sort_key(value: Any) -> tuple[int, Any]:
    return (_SORT_ORDER[type_of(value)], value)


def iter_set(value: frozenset) -> list[Any]:
    """Return the elements of a set in their deterministic iteration order."""
    return sorted(value, key=_sort_key)


def to_string(value: Any) -> str:
    """
    Render a primitive value as a string.

    Raises:
        TypeConversionError: For null and collection values.
    """
    tag = type_of(value)
    if tag == ValueType.STRING:
        return value
    if tag == ValueType.BOOL:
        return "true" if value else "false"
    if tag == ValueType.NUMBER:
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return repr(value) if isinstance(value, float) else str(value)
    if tag == ValueType.NULL:
        raise TypeConversionError("Cannot convert null to string")
    raise TypeConversionError(
        f"Cannot convert {tag.value} to string; join or encode it explicitly"
    )


def to_number(value: Any) -> int | float:
    """Convert a number or numeric string to a number."""
    tag = type_of(value)
    if tag == ValueType.NUMBER:
        return value
    if tag == ValueType.STRING:
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError as e:
            raise TypeConversionError(_NOT_NUMERIC) from e
        if not math.isfinite(number):
            raise TypeConversionError(_NOT_NUMERIC)
        return number
    raise TypeConversionError(f"Cannot convert {tag.value} to number")


def to_bool(value: Any) -> bool:
    """Convert a bool or the strings "true"/"false" to a bool."""
    tag = type_of(value)
    if tag == ValueType.BOOL:
        return value
    if tag == ValueType.STRING and value in ("true", "false"):
        return value == "true"
    if tag == ValueType.STRING:
        raise TypeConversionError(
            "Cannot convert string to bool; only \"true\" and \"false\" are accepted"
        )
    raise TypeConversionError(f"Cannot convert {tag.value} to bool")


def to_whole_number(value: Any, what: str = "value") -> int:
    """Convert a value to an int, rejecting fractional numbers."""
    number = to_number(value)
    if isinstance(number, float):
        if not number.is_integer():
            raise TypeConversionError(f"{what} must be a whole number, got a fraction")
        number = int(number)
    return number


def coerce(value: Any, spec: TypeSpec | str | None) -> Any:
    """
    Convert a value to satisfy a type constraint.

    Null satisfies every constraint. Collections are converted element-wise.

    Args:
        value: The value to convert
        spec: Target type constraint (TypeSpec or constraint string)

    Returns:
        The converted value

    Raises:
        TypeConversionError: If the value cannot satisfy the constraint.
    """
    spec = parse_type(spec)
    if value is None or spec.kind == ValueType.ANY:
        return value

    tag = type_of(value)
    element = spec.element or ANY_TYPE

    if spec.kind == ValueType.STRING:
        if tag in _PRIMITIVE_TYPES:
            return to_string(value)
        raise TypeConversionError(f"Cannot convert {tag.value} to string")

    if spec.kind == ValueType.NUMBER:
        return to_number(value)

    if spec.kind == ValueType.BOOL:
        return to_bool(value)

    if spec.kind == ValueType.LIST:
        if tag == ValueType.LIST:
            return [coerce(item, element) for item in value]
        if tag == ValueType.SET:
            return [coerce(item, element) for item in iter_set(value)]
        raise TypeConversionError(f"Cannot convert {tag.value} to {spec}")

    if spec.kind == ValueType.SET:
        if tag in (ValueType.LIST, ValueType.SET):
            items = value if tag == ValueType.LIST else iter_set(value)
            return make_set(coerce(item, element) for item in items)
        raise TypeConversionError(f"Cannot convert {tag.value} to {spec}")

    if spec.kind == ValueType.MAP:
        if tag == ValueType.MAP:
            return {key: coerce(item, element) for key, item in value.items()}
        raise TypeConversionError(f"Cannot convert {tag.value} to {spec}")

    raise TypeConversionError(f"Cannot convert {tag.value} to {spec}")


def equals(a: Any, b: Any) -> bool:
    """
    Compare two values. Values with different tags are never equal.

    This differs from Python equality, where ``True == 1``.
    """
    tag = type_of(a)
    if tag != type_of(b):
        return False
    if tag == ValueType.LIST:
        return len(a) == len(b) and all(equals(x, y) for x, y in zip(a, b))
    if tag == ValueType.SET:
        left, right = iter_set(a), iter_set(b)
        return len(left) == len(right) and all(
            equals(x, y) for x, y in zip(left, right)
        )
    if tag == ValueType.MAP:
        return a.keys() == b.keys() and all(equals(a[k], b[k]) for k in a)
    return a == b


__all__ = [
    "ValueType",
    "TypeSpec",
    "ANY_TYPE",
    "STRING_TYPE",
    "NUMBER_TYPE",
    "BOOL_TYPE",
    "parse_type",
    "type_of",
    "from_python",
    "iter_set",
    "make_set",
    "to_string",
    "to_number",
    "to_bool",
    "to_whole_number",
    "coerce",
    "equals",
]

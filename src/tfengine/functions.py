"""
Function registry and builtin functions.

Functions are looked up by name at call time. Each one declares its
parameters (type constraint, nullability, optionality) and the registry
checks arity and converts arguments before the implementation runs, so the
implementations below can assume well-typed input.
"""

import base64
import binascii
import io
import json
import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .exceptions import (
    FunctionCallError,
    SecretError,
    TfEngineError,
    TypeConversionError,
    UnknownFunctionError,
)
from .values import (
    ANY_TYPE,
    NUMBER_TYPE,
    STRING_TYPE,
    TypeSpec,
    ValueType,
    coerce,
    equals,
    from_python,
    iter_set,
    parse_type,
    to_bool,
    to_number,
    to_string,
    to_whole_number,
    type_of,
)

if TYPE_CHECKING:
    from .context import EvaluationContext

logger = logging.getLogger(__name__)

LIST_TYPE = parse_type("list(any)")
LIST_OF_STRINGS = parse_type("list(string)")
SET_TYPE = parse_type("set(any)")
MAP_TYPE = parse_type("map(any)")

MAX_RANGE_LENGTH = 1024

_MISSING = object()


@dataclass(frozen=True)
class Parameter:
    """A declared function parameter."""

    name: str
    type: TypeSpec = ANY_TYPE
    allow_null: bool = False
    optional: bool = False


@dataclass(frozen=True)
class Function:
    """
    A named function with its argument contract.

    Functions with ``needs_context`` receive the EvaluationContext as their
    first argument; all others are pure functions of their arguments.
    """

    name: str
    impl: Callable[..., Any]
    params: tuple[Parameter, ...] = ()
    variadic: Parameter | None = None
    needs_context: bool = False
    description: str = ""

    @property
    def min_args(self) -> int:
        return sum(1 for param in self.params if not param.optional)

    @property
    def max_args(self) -> int | None:
        return None if self.variadic is not None else len(self.params)

    def signature(self) -> str:
        names = [f"[{p.name}]" if p.optional else p.name for p in self.params]
        if self.variadic is not None:
            names.append(f"{self.variadic.name}...")
        return f"{self.name}({', '.join(names)})"

    def _check_arity(self, count: int) -> None:
        if count < self.min_args or (
            self.max_args is not None and count > self.max_args
        ):
            raise FunctionCallError(
                f"Wrong number of arguments for {self.signature()}: got {count}"
            )

    def _prepare(self, param: Parameter, value: Any) -> Any:
        if value is None:
            if param.allow_null:
                return None
            raise FunctionCallError(
                f"{self.name}(): argument '{param.name}' must not be null"
            )
        try:
            return coerce(value, param.type)
        except TypeConversionError as e:
            raise TypeConversionError(
                f"{self.name}(): invalid value for '{param.name}': {e.message}"
            ) from e

    def call(self, args: Sequence[Any], ctx: "EvaluationContext") -> Any:
        """
        Check and convert the arguments, then run the implementation.

        Raises:
            FunctionCallError: On arity errors or implementation failures.
            TypeConversionError: If an argument does not fit its parameter.
        """
        self._check_arity(len(args))

        prepared = []
        for position, value in enumerate(args):
            if position < len(self.params):
                param = self.params[position]
            else:
                param = self.variadic
            prepared.append(self._prepare(param, value))

        try:
            if self.needs_context:
                return self.impl(ctx, *prepared)
            return self.impl(*prepared)
        except TfEngineError:
            raise
        except Exception as e:
            raise FunctionCallError(f"{self.name}(): {e}") from e


class FunctionRegistry:
    """
    Registry mapping function names to Function objects.

    New builtins can be added without touching the evaluator.
    """

    def __init__(self):
        self._functions: dict[str, Function] = {}
        self._logger = logger.getChild(self.__class__.__name__)

    @classmethod
    def with_builtins(cls) -> "FunctionRegistry":
        """Create a registry holding every builtin function."""
        registry = cls()
        for function in BUILTIN_FUNCTIONS:
            registry.register(function)
        return registry

    def register(self, function: Function) -> None:
        """
        Register a function under its name.

        Raises:
            ValueError: If the function name is empty
        """
        if not function.name or not function.name.strip():
            raise ValueError("Function name cannot be empty")

        if function.name in self._functions:
            self._logger.warning(
                f"Overwriting existing function registration for '{function.name}'"
            )

        self._functions[function.name] = function
        self._logger.debug(f"Registered function '{function.signature()}'")

    def get(self, name: str) -> Function:
        """
        Get the function registered under ``name``.

        Raises:
            UnknownFunctionError: If no such function is registered
        """
        try:
            return self._functions[name]
        except KeyError:
            raise UnknownFunctionError(
                f"Call to unknown function '{name}'. "
                f"Available functions: {', '.join(self.get_available_names())}"
            ) from None

    def call(self, name: str, args: Sequence[Any], ctx: "EvaluationContext") -> Any:
        return self.get(name).call(args, ctx)

    def get_available_names(self) -> list[str]:
        return sorted(self._functions)

    def unregister(self, name: str) -> None:
        self._functions.pop(name, None)

    def __len__(self) -> int:
        return len(self._functions)

    def __contains__(self, name: str) -> bool:
        return name in self._functions


# --------------------------------------------------------------------------- #
#                               Builtin helpers                               #
# --------------------------------------------------------------------------- #


def to_plain(value: Any) -> Any:
    """Convert sets to sorted lists so a value can be serialised."""
    tag = type_of(value)
    if tag == ValueType.SET:
        return [to_plain(item) for item in iter_set(value)]
    if tag == ValueType.LIST:
        return [to_plain(item) for item in value]
    if tag == ValueType.MAP:
        return {key: to_plain(item) for key, item in value.items()}
    return value


def _string_fn(name: str, impl: Callable[[str], str], description: str) -> Function:
    return Function(
        name, impl, (Parameter("str", STRING_TYPE),), description=description
    )


def _title(value: str) -> str:
    return re.sub(r"\b(\w)", lambda m: m.group(1).upper(), value)


def _replace(value: str, substring: str, replacement: str) -> str:
    # "/pattern/" substrings are regular expressions
    if len(substring) > 1 and substring.startswith("/") and substring.endswith("/"):
        return re.sub(substring[1:-1], replacement, value)
    return value.replace(substring, replacement)


def _join(separator: str, *lists: list[str]) -> str:
    if not lists:
        raise FunctionCallError("join() requires at least one list")
    items = [item for lst in lists for item in lst]
    if any(item is None for item in items):
        raise FunctionCallError("join() cannot join null elements")
    return separator.join(items)


def _split(separator: str, value: str) -> list[str]:
    if not separator:
        raise FunctionCallError("split() separator must not be empty")
    return value.split(separator)


def _length(value: Any) -> int:
    tag = type_of(value)
    if tag in (ValueType.STRING, ValueType.LIST, ValueType.SET, ValueType.MAP):
        return len(value)
    raise FunctionCallError(f"length() cannot be applied to a {tag.value} value")


def _keys(value: dict) -> list[str]:
    return sorted(value)


def _values(value: dict) -> list[Any]:
    return [value[key] for key in sorted(value)]


def _tostring(value: Any) -> str | None:
    if value is None:
        return None
    return to_string(value)


def _tonumber(value: Any) -> int | float | None:
    return None if value is None else to_number(value)


def _tobool(value: Any) -> bool | None:
    return None if value is None else to_bool(value)


def _concat(*lists: list) -> list:
    return [item for lst in lists for item in lst]


def _merge(*maps: dict | None) -> dict:
    merged: dict[str, Any] = {}
    for mapping in maps:
        if mapping is not None:
            merged.update(mapping)
    return merged


def _contains(collection: Any, value: Any) -> bool:
    tag = type_of(collection)
    if tag == ValueType.LIST:
        return any(equals(item, value) for item in collection)
    if tag == ValueType.SET:
        return any(equals(item, value) for item in iter_set(collection))
    raise FunctionCallError(f"contains() requires a list or set, got {tag.value}")


def _lookup(mapping: dict, key: str, default: Any = _MISSING) -> Any:
    if key in mapping:
        return mapping[key]
    if default is _MISSING:
        raise FunctionCallError(f"lookup() found no key '{key}' and no default")
    return default


def _element(lst: list, index: Any) -> Any:
    if not lst:
        raise FunctionCallError("element() cannot use an empty list")
    position = to_whole_number(index, "element() index")
    if position < 0:
        raise FunctionCallError("element() index must not be negative")
    return lst[position % len(lst)]


def _range(*args: Any) -> list[int | float]:
    if not 1 <= len(args) <= 3:
        raise FunctionCallError(
            f"range() takes one to three arguments, got {len(args)}"
        )
    if len(args) == 1:
        start, limit, step = 0, args[0], 1
    elif len(args) == 2:
        start, limit = args
        step = 1 if start <= limit else -1
    else:
        start, limit, step = args

    if step == 0:
        raise FunctionCallError("range() step must not be zero")
    if (step > 0 and start > limit) or (step < 0 and start < limit):
        raise FunctionCallError(
            "range() step must move from start towards limit"
        )

    result = []
    current = start
    while (step > 0 and current < limit) or (step < 0 and current > limit):
        if len(result) >= MAX_RANGE_LENGTH:
            raise FunctionCallError(
                f"range() would produce more than {MAX_RANGE_LENGTH} elements"
            )
        result.append(current)
        current += step
    return result


def _flatten(lst: list) -> list:
    flat = []
    for item in lst:
        tag = type_of(item)
        if tag == ValueType.LIST:
            flat.extend(_flatten(item))
        elif tag == ValueType.SET:
            flat.extend(_flatten(iter_set(item)))
        else:
            flat.append(item)
    return flat


def _distinct(lst: list) -> list:
    unique: list[Any] = []
    for item in lst:
        if not any(equals(item, seen) for seen in unique):
            unique.append(item)
    return unique


def _coalesce(*args: Any) -> Any:
    for value in args:
        if value is not None and value != "":
            return value
    raise FunctionCallError("coalesce() has no non-null, non-empty argument")


def _zipmap(keys: list[str], values: list) -> dict:
    if len(keys) != len(values):
        raise FunctionCallError(
            f"zipmap() got {len(keys)} keys but {len(values)} values"
        )
    if any(key is None for key in keys):
        raise FunctionCallError("zipmap() keys must not be null")
    return dict(zip(keys, values))


def _sort(lst: list[str]) -> list[str]:
    if any(item is None for item in lst):
        raise FunctionCallError("sort() cannot sort null elements")
    return sorted(lst)


def _min(*numbers: int | float) -> int | float:
    if not numbers:
        raise FunctionCallError("min() requires at least one number")
    return min(numbers)


def _max(*numbers: int | float) -> int | float:
    if not numbers:
        raise FunctionCallError("max() requires at least one number")
    return max(numbers)


_FORMAT_VERB = re.compile(r"%(%|(?:\.(\d+))?([sdfqtv]))")


def _format(spec: str, *args: Any) -> str:
    remaining = list(args)

    def substitute(match: re.Match) -> str:
        if match.group(1) == "%":
            return "%"
        if not remaining:
            raise FunctionCallError(f"format() has too few arguments for '{spec}'")
        value = remaining.pop(0)
        precision, verb = match.group(2), match.group(3)

        if verb == "d":
            return str(to_whole_number(value, "format() %d argument"))
        if verb == "f":
            digits = int(precision) if precision is not None else 6
            return f"{float(to_number(value)):.{digits}f}"
        if verb == "t":
            return to_string(to_bool(value))
        if verb == "q":
            return json.dumps(to_string(value))
        if verb == "v" and type_of(value) in (
            ValueType.LIST,
            ValueType.SET,
            ValueType.MAP,
        ):
            return json.dumps(to_plain(value), sort_keys=True, separators=(",", ":"))
        return to_string(value)

    result = _FORMAT_VERB.sub(substitute, spec)
    if remaining:
        raise FunctionCallError(f"format() has too many arguments for '{spec}'")
    return result


def _resolve_path(ctx: "EvaluationContext", path: str) -> Path:
    candidate = Path(path)
    return candidate if candidate.is_absolute() else ctx.base_dir / candidate


def _file(ctx: "EvaluationContext", path: str) -> str:
    file_path = _resolve_path(ctx, path)
    try:
        return file_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise FunctionCallError(f"file(): cannot read {file_path}: {e}") from e


def _fileexists(ctx: "EvaluationContext", path: str) -> bool:
    return _resolve_path(ctx, path).is_file()


def _yamldecode(text: str) -> Any:
    try:
        return from_python(YAML(typ="safe").load(text))
    except YAMLError as e:
        raise FunctionCallError(f"yamldecode(): invalid YAML: {e}") from e


def _yamlencode(value: Any) -> str:
    yaml = YAML(typ="safe")
    yaml.default_flow_style = False
    stream = io.StringIO()
    yaml.dump(to_plain(value), stream)
    return stream.getvalue()


def _jsondecode(text: str) -> Any:
    try:
        return from_python(json.loads(text))
    except json.JSONDecodeError as e:
        raise FunctionCallError(f"jsondecode(): invalid JSON: {e}") from e


def _jsonencode(value: Any) -> str:
    return json.dumps(to_plain(value), sort_keys=True, separators=(",", ":"))


def _base64encode(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def _base64decode(value: str) -> str:
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise FunctionCallError(f"base64decode(): invalid input: {e}") from e


def _secret(ctx: "EvaluationContext", reference: str) -> str:
    if ctx.secrets is None:
        raise SecretError(
            f"secret(): no secret source configured for '{reference}'", ctx.address
        )
    return ctx.secrets.resolve_secret(reference)


_ANY = Parameter("value")
_NULLABLE = Parameter("value", allow_null=True)

BUILTIN_FUNCTIONS: tuple[Function, ...] = (
    # strings
    _string_fn("upper", str.upper, "Convert letters to upper case"),
    _string_fn("lower", str.lower, "Convert letters to lower case"),
    _string_fn("title", _title, "Capitalise the first letter of each word"),
    _string_fn("trimspace", str.strip, "Remove surrounding whitespace"),
    Function(
        "replace",
        _replace,
        (
            Parameter("str", STRING_TYPE),
            Parameter("substring", STRING_TYPE),
            Parameter("replacement", STRING_TYPE),
        ),
    ),
    Function(
        "join",
        _join,
        (Parameter("separator", STRING_TYPE),),
        variadic=Parameter("lists", LIST_OF_STRINGS),
    ),
    Function(
        "split",
        _split,
        (Parameter("separator", STRING_TYPE), Parameter("str", STRING_TYPE)),
    ),
    Function(
        "format",
        _format,
        (Parameter("format", STRING_TYPE),),
        variadic=Parameter("args", allow_null=False),
    ),
    # collections
    Function("length", _length, (_ANY,)),
    Function("keys", _keys, (Parameter("map", MAP_TYPE),)),
    Function("values", _values, (Parameter("map", MAP_TYPE),)),
    Function("toset", lambda v: v, (Parameter("value", SET_TYPE),)),
    Function("tolist", lambda v: v, (Parameter("value", LIST_TYPE),)),
    Function("tomap", lambda v: v, (Parameter("value", MAP_TYPE),)),
    Function("tostring", _tostring, (_NULLABLE,)),
    Function("tonumber", _tonumber, (_NULLABLE,)),
    Function("tobool", _tobool, (_NULLABLE,)),
    Function("concat", _concat, variadic=Parameter("lists", LIST_TYPE)),
    Function(
        "merge", _merge, variadic=Parameter("maps", MAP_TYPE, allow_null=True)
    ),
    Function(
        "contains",
        _contains,
        (Parameter("collection"), Parameter("value", allow_null=True)),
    ),
    Function(
        "lookup",
        _lookup,
        (
            Parameter("map", MAP_TYPE),
            Parameter("key", STRING_TYPE),
            Parameter("default", allow_null=True, optional=True),
        ),
    ),
    Function(
        "element",
        _element,
        (Parameter("list", LIST_TYPE), Parameter("index", NUMBER_TYPE)),
    ),
    Function("range", _range, variadic=Parameter("params", NUMBER_TYPE)),
    Function("flatten", _flatten, (Parameter("list", LIST_TYPE),)),
    Function("distinct", _distinct, (Parameter("list", LIST_TYPE),)),
    Function("coalesce", _coalesce, variadic=Parameter("vals", allow_null=True)),
    Function(
        "zipmap",
        _zipmap,
        (Parameter("keys", LIST_OF_STRINGS), Parameter("values", LIST_TYPE)),
    ),
    Function("sort", _sort, (Parameter("list", LIST_OF_STRINGS),)),
    # numbers
    Function("min", _min, variadic=Parameter("numbers", NUMBER_TYPE)),
    Function("max", _max, variadic=Parameter("numbers", NUMBER_TYPE)),
    Function("abs", abs, (Parameter("num", NUMBER_TYPE),)),
    # encoding
    Function("yamldecode", _yamldecode, (Parameter("src", STRING_TYPE),)),
    Function("yamlencode", _yamlencode, (_NULLABLE,)),
    Function("jsondecode", _jsondecode, (Parameter("src", STRING_TYPE),)),
    Function("jsonencode", _jsonencode, (_NULLABLE,)),
    Function("base64encode", _base64encode, (Parameter("str", STRING_TYPE),)),
    Function("base64decode", _base64decode, (Parameter("str", STRING_TYPE),)),
    # filesystem and secrets
    Function(
        "file", _file, (Parameter("path", STRING_TYPE),), needs_context=True
    ),
    Function(
        "fileexists",
        _fileexists,
        (Parameter("path", STRING_TYPE),),
        needs_context=True,
    ),
    Function(
        "secret",
        _secret,
        (Parameter("reference", STRING_TYPE),),
        needs_context=True,
        description="Resolve a reference through the configured secret source",
    ),
)


__all__ = [
    "Parameter",
    "Function",
    "FunctionRegistry",
    "BUILTIN_FUNCTIONS",
    "to_plain",
]

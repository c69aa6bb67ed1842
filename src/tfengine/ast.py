"""
Expression AST

Immutable expression nodes owned by the blocks that declare them. Nodes are
built by a configuration loader (or directly in Python); the evaluator in
``tfengine.evaluator`` interprets them against an EvaluationContext.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Union

from .exceptions import ConfigurationError

BINARY_OPERATORS = frozenset(
    {"==", "!=", "<", "<=", ">", ">=", "+", "-", "*", "/", "%", "&&", "||"}
)
UNARY_OPERATORS = frozenset({"!", "-"})


def _freeze(items: Any) -> tuple:
    return tuple(items) if not isinstance(items, tuple) else items


@dataclass(frozen=True)
class Literal:
    """A constant value."""

    value: Any


@dataclass(frozen=True)
class Reference:
    """
    A dotted traversal such as ``var.names``, ``each.value`` or
    ``aws_iam_user.example.arn``.

    The evaluator binds the longest prefix that names a binding (or a loop
    variable) and treats the remaining parts as attribute access.
    """

    path: str

    def __post_init__(self):
        if not self.path or any(not part for part in self.path.split(".")):
            raise ConfigurationError(f"Invalid reference '{self.path}'")

    @property
    def parts(self) -> tuple[str, ...]:
        return tuple(self.path.split("."))

    @property
    def root(self) -> str:
        return self.parts[0]


@dataclass(frozen=True)
class GetAttr:
    """Attribute access on the result of another expression: ``expr.name``."""

    target: Expression
    name: str


@dataclass(frozen=True)
class Index:
    """Index access: ``expr[key]``."""

    target: Expression
    key: Expression


@dataclass(frozen=True)
class Splat:
    """Splat projection: ``expr[*].attr.sub``."""

    target: Expression
    attributes: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "attributes", _freeze(self.attributes))


@dataclass(frozen=True)
class FunctionCall:
    """Call of a registered function by name."""

    name: str
    args: tuple[Expression, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "args", _freeze(self.args))


@dataclass(frozen=True)
class Conditional:
    """``condition ? true_result : false_result``; only one branch is evaluated."""

    condition: Expression
    true_result: Expression
    false_result: Expression


@dataclass(frozen=True)
class ForExpr:
    """
    ``[for k, v in collection : value_expr if condition]`` (list form) or
    ``{for k, v in collection : key_expr => value_expr if condition}`` (map
    form, when ``key_expr`` is set). ``grouping`` is the trailing ``...`` of
    the map form.
    """

    collection: Expression
    value_var: str
    value_expr: Expression
    key_var: str | None = None
    key_expr: Expression | None = None
    condition: Expression | None = None
    grouping: bool = False

    def __post_init__(self):
        if self.key_var is not None and self.key_var == self.value_var:
            raise ConfigurationError(
                f"Key and value variables must differ, both are '{self.value_var}'"
            )
        if self.grouping and self.key_expr is None:
            raise ConfigurationError("Grouping mode requires a map-form expression")

    @property
    def is_map(self) -> bool:
        return self.key_expr is not None


@dataclass(frozen=True)
class TemplateString:
    """A string template; str parts are literal text, others are interpolated."""

    parts: tuple[str | Expression, ...]

    def __post_init__(self):
        object.__setattr__(self, "parts", _freeze(self.parts))


@dataclass(frozen=True)
class ListExpr:
    """Tuple constructor: ``[a, b, c]``."""

    items: tuple[Expression, ...] = ()

    def __post_init__(self):
        object.__setattr__(
            self, "items", tuple(as_expression(item) for item in self.items)
        )


@dataclass(frozen=True)
class MapExpr:
    """Object constructor: ``{key = value, ...}``."""

    items: tuple[tuple[Expression, Expression], ...] = ()

    def __post_init__(self):
        pairs = self.items.items() if isinstance(self.items, dict) else self.items
        object.__setattr__(
            self,
            "items",
            tuple((as_expression(k), as_expression(v)) for k, v in pairs),
        )


@dataclass(frozen=True)
class BinaryOp:
    operator: str
    left: Expression
    right: Expression

    def __post_init__(self):
        if self.operator not in BINARY_OPERATORS:
            raise ConfigurationError(f"Unknown binary operator '{self.operator}'")


@dataclass(frozen=True)
class UnaryOp:
    operator: str
    operand: Expression

    def __post_init__(self):
        if self.operator not in UNARY_OPERATORS:
            raise ConfigurationError(f"Unknown unary operator '{self.operator}'")


Expression = Union[
    Literal,
    Reference,
    GetAttr,
    Index,
    Splat,
    FunctionCall,
    Conditional,
    ForExpr,
    TemplateString,
    ListExpr,
    MapExpr,
    BinaryOp,
    UnaryOp,
]

EXPRESSION_TYPES = (
    Literal,
    Reference,
    GetAttr,
    Index,
    Splat,
    FunctionCall,
    Conditional,
    ForExpr,
    TemplateString,
    ListExpr,
    MapExpr,
    BinaryOp,
    UnaryOp,
)


def is_expression(obj: Any) -> bool:
    return isinstance(obj, EXPRESSION_TYPES)


def _contains_expression(obj: Any) -> bool:
    if is_expression(obj):
        return True
    if isinstance(obj, (list, tuple)):
        return any(_contains_expression(item) for item in obj)
    if isinstance(obj, dict):
        return any(_contains_expression(item) for item in obj.values())
    return False


def as_expression(obj: Any) -> Expression:
    """
    Turn a plain value into an expression; expressions are returned unchanged.

    Lists and dicts that contain expressions become ListExpr / MapExpr nodes,
    anything else is wrapped in a Literal.
    """
    if is_expression(obj):
        return obj
    if isinstance(obj, (list, tuple)) and _contains_expression(obj):
        return ListExpr(obj)
    if isinstance(obj, dict) and _contains_expression(obj):
        return MapExpr(obj)
    return Literal(obj)


def children(node: Expression) -> Iterator[Expression]:
    """Yield the direct sub-expressions of a node (ForExpr bodies included)."""
    if isinstance(node, (GetAttr, Splat)):
        yield node.target
    elif isinstance(node, Index):
        yield node.target
        yield node.key
    elif isinstance(node, FunctionCall):
        yield from node.args
    elif isinstance(node, Conditional):
        yield node.condition
        yield node.true_result
        yield node.false_result
    elif isinstance(node, ForExpr):
        yield node.collection
        if node.key_expr is not None:
            yield node.key_expr
        yield node.value_expr
        if node.condition is not None:
            yield node.condition
    elif isinstance(node, TemplateString):
        yield from (part for part in node.parts if not isinstance(part, str))
    elif isinstance(node, ListExpr):
        yield from node.items
    elif isinstance(node, MapExpr):
        for key, value in node.items:
            yield key
            yield value
    elif isinstance(node, BinaryOp):
        yield node.left
        yield node.right
    elif isinstance(node, UnaryOp):
        yield node.operand


def collect_references(
    node: Expression, bound: frozenset[str] = frozenset()
) -> list[Reference]:
    """
    Statically collect the references an expression may read.

    Names bound by enclosing ``for`` expressions are excluded. Both branches of
    a conditional are included, since either may be taken.

    Args:
        node: Expression to analyse
        bound: Names already bound by an enclosing scope

    Returns:
        References in the order they appear
    """
    found: list[Reference] = []
    _collect(node, bound, found)
    return found


def _collect(node: Expression, bound: frozenset[str], found: list[Reference]) -> None:
    if isinstance(node, Reference):
        if node.root not in bound:
            found.append(node)
        return

    if isinstance(node, ForExpr):
        _collect(node.collection, bound, found)
        inner = bound | {node.value_var}
        if node.key_var is not None:
            inner = inner | {node.key_var}
        for sub in (node.key_expr, node.value_expr, node.condition):
            if sub is not None:
                _collect(sub, inner, found)
        return

    for child in children(node):
        _collect(child, bound, found)


__all__ = [
    "Literal",
    "Reference",
    "GetAttr",
    "Index",
    "Splat",
    "FunctionCall",
    "Conditional",
    "ForExpr",
    "TemplateString",
    "ListExpr",
    "MapExpr",
    "BinaryOp",
    "UnaryOp",
    "Expression",
    "is_expression",
    "as_expression",
    "children",
    "collect_references",
]

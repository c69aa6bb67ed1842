from __future__ import annotations

"""
config.py – configuration blocks
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Pydantic models for the declarative blocks of a configuration (variables,
locals, data sources, resources with their dynamic blocks, outputs) and the
`Configuration` container that collects them in declaration order.

Block fields that hold expressions accept any AST node; plain Python values
are wrapped in a `Literal`.
"""

import logging
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .ast import Expression, as_expression
from .bindings import BindingKind
from .exceptions import (
    ConfigurationError,
    ExpansionError,
    RedeclarationError,
    TfEngineError,
)
from .settings import EngineSettings, RedeclarationPolicy
from .values import TypeSpec, coerce, from_python, parse_type

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")

# (expression, names bound around it)
ScopedExpression = Tuple[Expression, frozenset]


def _check_identifier(value: str, what: str) -> str:
    if not _IDENTIFIER.match(value):
        raise ValueError(f"'{value}' is not a valid {what}")
    return value


def _optional_expression(value: Any) -> Optional[Expression]:
    return None if value is None else as_expression(value)


# --------------------------------------------------------------------------- #
#                                  Block base                                 #
# --------------------------------------------------------------------------- #


class Block(BaseModel):
    """Common behaviour of every block kind."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def kind(self) -> BindingKind:  # pragma: no cover - overridden
        raise NotImplementedError

    @property
    def address(self) -> str:  # pragma: no cover - overridden
        raise NotImplementedError

    def iter_expressions(self) -> Iterator[ScopedExpression]:
        """Yield every expression of the block with the names bound around it."""
        return iter(())

    def explicit_dependencies(self) -> List[str]:
        return list(getattr(self, "depends_on", []))


class _DependsOnMixin(BaseModel):
    depends_on: List[str] = Field(
        default_factory=list,
        description="Addresses this block must be evaluated after.",
    )

    @field_validator("depends_on")
    @classmethod
    def _valid_dependency_addresses(cls, v: List[str]) -> List[str]:
        for address in v:
            parts = address.split(".")
            if len(parts) < 2 or not all(_IDENTIFIER.match(p) for p in parts):
                raise ValueError(f"'{address}' is not a valid block address")
        return v


# --------------------------------------------------------------------------- #
#                                   Blocks                                    #
# --------------------------------------------------------------------------- #


class VariableBlock(Block):
    """An input variable."""

    name: str = Field(..., description="Variable name.")
    type: Optional[str] = Field(
        None, description="Type constraint, e.g. *list(string)*."
    )
    default: Any = Field(None, description="Default value (plain data).")
    description: Optional[str] = Field(None, description="Human‑readable note.")
    sensitive: bool = Field(False, description="Mask the value in results.")
    nullable: bool = Field(True, description="Whether null is an accepted value.")

    @field_validator("name")
    @classmethod
    def _valid_name(cls, v: str) -> str:
        return _check_identifier(v, "variable name")

    @field_validator("type")
    @classmethod
    def _valid_type(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            try:
                parse_type(v)
            except TfEngineError as e:
                raise ValueError(e.message) from e
        return v

    @model_validator(mode="after")
    def _default_matches_type(self) -> VariableBlock:
        if not self.has_default:
            return self
        if self.default is None and not self.nullable:
            raise ValueError(f"variable '{self.name}' is not nullable")
        try:
            coerce(from_python(self.default), self.type_spec)
        except TfEngineError as e:
            raise ValueError(
                f"default of variable '{self.name}' does not match its type: "
                f"{e.message}"
            ) from e
        return self

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set

    @property
    def type_spec(self) -> TypeSpec:
        return parse_type(self.type)

    @property
    def kind(self) -> BindingKind:
        return BindingKind.VARIABLE

    @property
    def address(self) -> str:
        return f"var.{self.name}"


class LocalValue(Block):
    """One named value of a ``locals`` block."""

    name: str = Field(..., description="Local name.")
    value: Any = Field(..., description="Value expression.")

    @field_validator("name")
    @classmethod
    def _valid_name(cls, v: str) -> str:
        return _check_identifier(v, "local name")

    @field_validator("value", mode="before")
    @classmethod
    def _to_expression(cls, v: Any) -> Expression:
        return as_expression(v)

    @property
    def kind(self) -> BindingKind:
        return BindingKind.LOCAL

    @property
    def address(self) -> str:
        return f"local.{self.name}"

    def iter_expressions(self) -> Iterator[ScopedExpression]:
        yield self.value, frozenset()


class DynamicBlock(BaseModel):
    """
    A ``dynamic`` block generating repeated nested blocks.

    The generated blocks are stored as a list of maps under ``name``. While
    ``content`` is evaluated, ``<iterator>.key`` and ``<iterator>.value`` are
    bound; the iterator defaults to the block name.
    """

    name: str = Field(..., description="Nested block type, e.g. *tag*.")
    for_each: Any = Field(..., description="Collection expression.")
    content: Dict[str, Any] = Field(
        default_factory=dict, description="Attribute expressions per element."
    )
    iterator: Optional[str] = Field(
        None, description="Name of the iteration variable."
    )
    dynamic: List[DynamicBlock] = Field(
        default_factory=list, description="Nested dynamic blocks inside content."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("name", "iterator")
    @classmethod
    def _valid_names(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else _check_identifier(v, "dynamic block name")

    @field_validator("for_each", mode="before")
    @classmethod
    def _for_each_expression(cls, v: Any) -> Expression:
        return as_expression(v)

    @field_validator("content")
    @classmethod
    def _content_expressions(cls, v: Dict[str, Any]) -> Dict[str, Expression]:
        return {key: as_expression(value) for key, value in v.items()}

    @property
    def iterator_name(self) -> str:
        return self.iterator or self.name

    def iter_expressions(
        self, bound: frozenset = frozenset()
    ) -> Iterator[ScopedExpression]:
        yield self.for_each, bound
        inner = bound | {self.iterator_name}
        for expr in self.content.values():
            yield expr, inner
        for nested in self.dynamic:
            yield from nested.iter_expressions(inner)


class _BodyBlock(Block, _DependsOnMixin):
    """Blocks with free-form attributes and dynamic nested blocks."""

    attributes: Dict[str, Any] = Field(
        default_factory=dict, description="Attribute name ➜ expression."
    )
    dynamic: List[DynamicBlock] = Field(
        default_factory=list, description="Dynamic nested blocks."
    )

    @field_validator("attributes")
    @classmethod
    def _attribute_expressions(cls, v: Dict[str, Any]) -> Dict[str, Expression]:
        for key in v:
            _check_identifier(key, "attribute name")
        return {key: as_expression(value) for key, value in v.items()}

    def iter_expressions(self) -> Iterator[ScopedExpression]:
        for expr in self.attributes.values():
            yield expr, frozenset()
        for block in self.dynamic:
            yield from block.iter_expressions()


class DataBlock(_BodyBlock):
    """A data source read through a registered reader."""

    data_type: str = Field(..., description="Data source type.")
    name: str = Field(..., description="Logical name.")

    @field_validator("data_type", "name")
    @classmethod
    def _valid_names(cls, v: str) -> str:
        return _check_identifier(v, "data source name")

    @property
    def kind(self) -> BindingKind:
        return BindingKind.DATA

    @property
    def address(self) -> str:
        return f"data.{self.data_type}.{self.name}"


class ResourceBlock(_BodyBlock):
    """A resource, optionally repeated with ``count`` or ``for_each``."""

    resource_type: str = Field(..., description="Resource type, e.g. *aws_iam_user*.")
    name: str = Field(..., description="Logical name.")
    count: Any = Field(None, description="Instance count expression.")
    for_each: Any = Field(None, description="Instance collection expression.")

    @field_validator("resource_type", "name")
    @classmethod
    def _valid_names(cls, v: str) -> str:
        return _check_identifier(v, "resource name")

    @field_validator("count", "for_each", mode="before")
    @classmethod
    def _meta_expression(cls, v: Any) -> Optional[Expression]:
        return _optional_expression(v)

    @property
    def kind(self) -> BindingKind:
        return BindingKind.RESOURCE

    @property
    def address(self) -> str:
        return f"{self.resource_type}.{self.name}"

    def check_meta_arguments(self) -> None:
        """
        Reject blocks that set both ``count`` and ``for_each``.

        Raises:
            ExpansionError: If both meta-arguments are present.
        """
        if self.count is not None and self.for_each is not None:
            raise ExpansionError(
                'The "count" and "for_each" meta-arguments are mutually '
                "exclusive, only one should be used",
                self.address,
            )

    def iter_expressions(self) -> Iterator[ScopedExpression]:
        for meta in (self.count, self.for_each):
            if meta is not None:
                yield meta, frozenset()
        yield from super().iter_expressions()


class OutputBlock(Block, _DependsOnMixin):
    """An output value."""

    name: str = Field(..., description="Output name.")
    value: Any = Field(..., description="Value expression.")
    description: Optional[str] = Field(None, description="Human‑readable note.")
    sensitive: bool = Field(False, description="Mask the value when rendered.")

    @field_validator("name")
    @classmethod
    def _valid_name(cls, v: str) -> str:
        return _check_identifier(v, "output name")

    @field_validator("value", mode="before")
    @classmethod
    def _to_expression(cls, v: Any) -> Expression:
        return as_expression(v)

    @property
    def kind(self) -> BindingKind:
        return BindingKind.OUTPUT

    @property
    def address(self) -> str:
        return f"output.{self.name}"

    def iter_expressions(self) -> Iterator[ScopedExpression]:
        yield self.value, frozenset()


AnyBlock = Union[VariableBlock, LocalValue, DataBlock, ResourceBlock, OutputBlock]


def resolve_declaration(blocks: List[AnyBlock], address: str) -> AnyBlock:
    """
    Return the effective declaration of ``address``: the last one wins.

    Raises:
        KeyError: If no block declares the address.
    """
    for block in reversed(blocks):
        if block.address == address:
            return block
    raise KeyError(address)


# --------------------------------------------------------------------------- #
#                                Configuration                                #
# --------------------------------------------------------------------------- #


class Configuration:
    """
    An ordered collection of block declarations.

    Every declaration is kept, so redeclarations stay visible; the effective
    block for an address is the last one declared.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()
        self._declarations: List[AnyBlock] = []
        self._logger = logger.getChild(self.__class__.__name__)

    # ----- building ---------------------------------------------------------
    def add(self, block: AnyBlock) -> AnyBlock:
        """
        Add a block declaration.

        Raises:
            ExpansionError: If a resource sets both count and for_each.
            RedeclarationError: If the address is already declared and the
                redeclaration policy is "error".
        """
        if isinstance(block, ResourceBlock):
            block.check_meta_arguments()

        address = block.address
        if address in self:
            if self.settings.redeclaration == RedeclarationPolicy.ERROR:
                raise RedeclarationError(
                    f"'{address}' is already declared", address
                )
            self._logger.warning(
                f"Redeclaration of '{address}'; the last declaration wins"
            )

        self._declarations.append(block)
        self._logger.debug(f"Declared {address}")
        return block

    def _build(self, model: type, **fields: Any) -> AnyBlock:
        try:
            block = model(**fields)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid {model.__name__}: {e.errors()[0]['msg']}"
            ) from e
        return self.add(block)

    def add_variable(self, name: str, **fields: Any) -> VariableBlock:
        return self._build(VariableBlock, name=name, **fields)

    def add_local(self, name: str, value: Any) -> LocalValue:
        return self._build(LocalValue, name=name, value=value)

    def add_locals(self, values: Dict[str, Any]) -> List[LocalValue]:
        """Add every entry of a ``locals`` block."""
        return [self.add_local(name, value) for name, value in values.items()]

    def add_data(self, data_type: str, name: str, **fields: Any) -> DataBlock:
        return self._build(DataBlock, data_type=data_type, name=name, **fields)

    def add_resource(
        self, resource_type: str, name: str, **fields: Any
    ) -> ResourceBlock:
        return self._build(
            ResourceBlock, resource_type=resource_type, name=name, **fields
        )

    def add_output(self, name: str, value: Any, **fields: Any) -> OutputBlock:
        return self._build(OutputBlock, name=name, value=value, **fields)

    # ----- queries ----------------------------------------------------------
    def declarations(self, address: Optional[str] = None) -> List[AnyBlock]:
        """All declarations, or those of one address, in declaration order."""
        if address is None:
            return list(self._declarations)
        return [b for b in self._declarations if b.address == address]

    def resolve(self, address: str) -> AnyBlock:
        """
        Effective block for an address.

        Raises:
            KeyError: If the address is not declared.
        """
        return resolve_declaration(self._declarations, address)

    def addresses(self) -> List[str]:
        """Declared addresses in order of first declaration."""
        return list(dict.fromkeys(b.address for b in self._declarations))

    def blocks(self) -> List[AnyBlock]:
        """Effective blocks, one per address."""
        return [self.resolve(address) for address in self.addresses()]

    def __contains__(self, address: str) -> bool:
        return any(b.address == address for b in self._declarations)

    def __len__(self) -> int:
        return len(self.addresses())


DynamicBlock.model_rebuild()

__all__ = [
    "Block",
    "VariableBlock",
    "LocalValue",
    "DynamicBlock",
    "DataBlock",
    "ResourceBlock",
    "OutputBlock",
    "AnyBlock",
    "Configuration",
    "resolve_declaration",
]

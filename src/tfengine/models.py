from __future__ import annotations

"""
models.py – evaluation results
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Pydantic models for what an evaluation pass produces: expanded resource
instances, output values and the overall result container.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

SENSITIVE_PLACEHOLDER: str = "(sensitive value)"


class ResourceInstance(BaseModel):
    """One concrete instance produced by expanding a resource block."""

    resource_type: str = Field(
        ..., description="Resource type, e.g. *aws_iam_user*."
    )
    name: str = Field(..., description="Logical name of the resource block.")
    key: Optional[Union[int, str]] = Field(
        None,
        description="Instance key: index for count, string for for_each, "
        "None for a singleton.",
    )
    attributes: Dict[str, Any] = Field(
        default_factory=dict, description="Resolved attribute values."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    # ----- validators --------------------------------------------------------
    @field_validator("key")
    @classmethod
    def _key_not_negative(cls, v: Optional[Union[int, str]]):
        if isinstance(v, int) and v < 0:
            raise ValueError("count index must not be negative")
        return v

    @property
    def resource_address(self) -> str:
        """Address of the declaring block, e.g. ``aws_iam_user.example``."""
        return f"{self.resource_type}.{self.name}"

    @property
    def address(self) -> str:
        """Full instance address, e.g. ``aws_iam_user.example["neo"]``."""
        if self.key is None:
            return self.resource_address
        if isinstance(self.key, int):
            return f"{self.resource_address}[{self.key}]"
        return f'{self.resource_address}["{self.key}"]'


class OutputValue(BaseModel):
    """An evaluated output block."""

    name: str = Field(..., description="Output name.")
    value: Any = Field(None, description="Evaluated value.")
    description: Optional[str] = Field(None, description="Human‑readable note.")
    sensitive: bool = Field(
        False, description="Whether the value is masked when rendered."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    def rendered(self) -> Any:
        return SENSITIVE_PLACEHOLDER if self.sensitive else self.value


class EvaluationResult(BaseModel):
    """Everything bound by one evaluation pass."""

    variables: Dict[str, Any] = Field(
        default_factory=dict, description="Variable name ➜ final value."
    )
    sensitive_variables: List[str] = Field(
        default_factory=list, description="Names of sensitive variables."
    )
    locals: Dict[str, Any] = Field(
        default_factory=dict, description="Local name ➜ value."
    )
    data: Dict[str, Any] = Field(
        default_factory=dict, description="Data source address ➜ result."
    )
    resources: Dict[str, List[ResourceInstance]] = Field(
        default_factory=dict,
        description="Resource address ➜ expanded instances.",
    )
    outputs: Dict[str, OutputValue] = Field(
        default_factory=dict, description="Output name ➜ evaluated output."
    )
    order: List[str] = Field(
        default_factory=list, description="Addresses in evaluation order."
    )

    model_config = ConfigDict(extra="forbid")

    def instances(self) -> List[ResourceInstance]:
        """All resource instances, grouped by resource in evaluation order."""
        return [inst for group in self.resources.values() for inst in group]

    def instance(self, address: str) -> ResourceInstance:
        """
        Find an instance by its full address.

        Raises:
            KeyError: If no instance has this address.
        """
        for inst in self.instances():
            if inst.address == address:
                return inst
        raise KeyError(address)

    def rendered_outputs(self) -> Dict[str, Any]:
        """Output values with sensitive ones masked."""
        return {name: out.rendered() for name, out in self.outputs.items()}

    def rendered_variables(self) -> Dict[str, Any]:
        """Variable values with sensitive ones masked."""
        return {
            name: SENSITIVE_PLACEHOLDER if name in self.sensitive_variables else value
            for name, value in self.variables.items()
        }


__all__ = [
    "SENSITIVE_PLACEHOLDER",
    "ResourceInstance",
    "OutputValue",
    "EvaluationResult",
]

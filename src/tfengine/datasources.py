"""
Data-source readers.

A data block's attributes are evaluated and handed to the reader registered
for its data type. Readers never reach remote APIs; they only shape values
that are already available to the engine (attributes, secret sources).
"""

import logging
from typing import Any, Protocol

from .context import EvaluationContext
from .exceptions import SecretError
from .values import ValueType, to_string, type_of

logger = logging.getLogger(__name__)


class DataSourceReader(Protocol):
    """Defines the contract for reading a data source."""

    def read(
        self, data_type: str, attributes: dict[str, Any], ctx: EvaluationContext
    ) -> dict[str, Any]:
        """
        Produce the result object of a data source.

        Args:
            data_type: The data source type, e.g. "aws_kms_secrets"
            attributes: Evaluated attributes of the data block
            ctx: Evaluation context of the block

        Returns:
            The object bound to the data source address
        """
        ...


class PassthroughReader:
    """Returns the evaluated attributes unchanged."""

    def read(
        self, data_type: str, attributes: dict[str, Any], ctx: EvaluationContext
    ) -> dict[str, Any]:
        return dict(attributes)


class SecretsReader:
    """
    Resolves ``secret`` blocks through the configured secret source.

    Each entry of the ``secret`` list has a ``name`` and a ``payload`` secret
    reference. The result exposes ``plaintext`` as name ➜ secret string,
    alongside the original attributes.
    """

    sensitive = True

    def __init__(self):
        self._logger = logger.getChild(self.__class__.__name__)

    def read(
        self, data_type: str, attributes: dict[str, Any], ctx: EvaluationContext
    ) -> dict[str, Any]:
        if ctx.secrets is None:
            raise SecretError(
                f"Data source '{data_type}' needs a secret source, but none is "
                "configured",
                ctx.address,
            )

        entries = attributes.get("secret") or []
        if type_of(entries) != ValueType.LIST:
            entries = [entries]

        plaintext: dict[str, str] = {}
        for entry in entries:
            complete = type_of(entry) == ValueType.MAP and {"name", "payload"} <= set(
                entry
            )
            if not complete:
                raise SecretError(
                    "Each secret block needs a 'name' and a 'payload'", ctx.address
                )
            name = to_string(entry["name"])
            try:
                reference = to_string(entry["payload"])
                plaintext[name] = ctx.secrets.resolve_secret(reference)
            except SecretError as e:
                raise e.with_address(ctx.address)
            self._logger.debug("Resolved secret '%s' for %s", name, ctx.address)

        return {**attributes, "plaintext": plaintext}


class DataSourceRegistry:
    """Maps data source types to readers; unknown types use the default reader."""

    def __init__(self, default: DataSourceReader | None = None):
        self._logger = logger.getChild(self.__class__.__name__)
        self._readers: dict[str, DataSourceReader] = {}
        self._default = default or PassthroughReader()

    @classmethod
    def with_defaults(cls) -> "DataSourceRegistry":
        registry = cls()
        registry.register_reader("aws_kms_secrets", SecretsReader())
        return registry

    def register_reader(self, data_type: str, reader: DataSourceReader) -> None:
        """Register the reader for a data source type."""
        if data_type in self._readers:
            self._logger.warning(
                f"Overwriting reader for data source type: '{data_type}'"
            )
        self._logger.debug(
            f"Registering reader '{reader.__class__.__name__}' "
            f"for type '{data_type}'"
        )
        self._readers[data_type] = reader

    def get_reader(self, data_type: str) -> DataSourceReader:
        return self._readers.get(data_type, self._default)

    def get_registered_readers(self) -> dict[str, DataSourceReader]:
        return dict(self._readers)

    def read(
        self, data_type: str, attributes: dict[str, Any], ctx: EvaluationContext
    ) -> dict[str, Any]:
        return self.get_reader(data_type).read(data_type, attributes, ctx)

    def __contains__(self, data_type: str) -> bool:
        return data_type in self._readers


__all__ = [
    "DataSourceReader",
    "PassthroughReader",
    "SecretsReader",
    "DataSourceRegistry",
]

"""
Secret sources.

A secret source turns a reference string into a secret string. Two providers
cover the usual ways secrets reach a configuration: environment variables
injected by the caller, and encrypted YAML files that are decrypted and then
parsed.
"""

import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .exceptions import SecretError, TypeConversionError
from .values import ValueType, from_python, to_string, type_of

logger = logging.getLogger(__name__)


@runtime_checkable
class SecretSource(Protocol):
    """Defines the contract for resolving secrets."""

    def resolve_secret(self, reference: str) -> str:
        """
        Resolve a secret reference.

        Args:
            reference: Provider-specific reference string

        Returns:
            The secret as a string

        Raises:
            SecretError: If the secret cannot be produced.
        """
        ...


class EnvironmentSecretSource:
    """Reads secrets from environment variables, optionally namespaced by a prefix."""

    def __init__(self, prefix: str = "", environ: Mapping[str, str] | None = None):
        self.prefix = prefix
        self._environ = environ
        self._logger = logger.getChild(self.__class__.__name__)

    @property
    def environ(self) -> Mapping[str, str]:
        return self._environ if self._environ is not None else os.environ

    def _key(self, reference: str) -> str:
        return f"{self.prefix}{reference}"

    def knows(self, reference: str) -> bool:
        return self._key(reference) in self.environ

    def resolve_secret(self, reference: str) -> str:
        key = self._key(reference)
        try:
            value = self.environ[key]
        except KeyError:
            raise SecretError(f"Environment variable '{key}' is not set") from None
        # never log the value itself
        self._logger.debug("Resolved secret from environment variable %s", key)
        return value


class EncryptedFileSecretSource:
    """
    Reads secrets from encrypted YAML files.

    A reference has the form ``path`` (the whole decrypted document) or
    ``path#dotted.key`` (a scalar inside the decrypted YAML mapping). Paths
    are relative to ``base_dir``. Decryption is delegated to ``decrypt``,
    which receives the file bytes and returns plaintext.
    """

    def __init__(
        self,
        decrypt: Callable[[bytes], str | bytes],
        base_dir: Path | str = ".",
        encoding: str = "utf-8",
    ):
        self._decrypt = decrypt
        self.base_dir = Path(base_dir)
        self.encoding = encoding
        self._logger = logger.getChild(self.__class__.__name__)

    @staticmethod
    def split_reference(reference: str) -> tuple[str, str | None]:
        path, sep, key = reference.partition("#")
        return path, (key if sep else None)

    def knows(self, reference: str) -> bool:
        path, _ = self.split_reference(reference)
        return (self.base_dir / path).is_file()

    def resolve_secret(self, reference: str) -> str:
        path_str, key = self.split_reference(reference)
        if not path_str:
            raise SecretError(f"Secret reference '{reference}' has no file path")

        plaintext = self._decrypt_file(self.base_dir / path_str)
        if key is None:
            return plaintext

        document = self._parse_yaml(plaintext, path_str)
        return self._extract_key(document, key, path_str)

    def _decrypt_file(self, file_path: Path) -> str:
        try:
            ciphertext = file_path.read_bytes()
        except OSError as e:
            raise SecretError(f"Cannot read secret file {file_path}: {e}") from e

        try:
            plaintext = self._decrypt(ciphertext)
        except Exception as e:
            # decryption backends may fail transiently, callers may retry
            raise SecretError(
                f"Failed to decrypt {file_path.name}: {e}", retryable=True
            ) from e

        if isinstance(plaintext, bytes):
            try:
                plaintext = plaintext.decode(self.encoding)
            except UnicodeDecodeError as e:
                raise SecretError(
                    f"Decrypted {file_path.name} is not valid {self.encoding}"
                ) from e

        self._logger.debug("Decrypted secret file %s", file_path)
        return plaintext

    def _parse_yaml(self, plaintext: str, path_str: str) -> Any:
        try:
            return from_python(YAML(typ="safe").load(plaintext))
        except (YAMLError, TypeConversionError) as e:
            raise SecretError(f"Cannot parse decrypted {path_str} as YAML: {e}") from e

    def _extract_key(self, document: Any, key: str, path_str: str) -> str:
        current = document
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                raise SecretError(f"Secret file {path_str} has no key '{key}'")
            current = current[part]

        if type_of(current) not in (ValueType.STRING, ValueType.NUMBER, ValueType.BOOL):
            raise SecretError(
                f"Secret '{key}' in {path_str} is not a scalar value"
            )
        return to_string(current)


class ChainedSecretSource:
    """
    Asks each source in turn.

    Sources with a ``knows`` method are skipped when they do not know the
    reference. Other sources are tried directly, and a non-retryable
    SecretError passes the reference on to the next source.
    """

    def __init__(self, sources: list[SecretSource]):
        self._sources = list(sources)
        self._logger = logger.getChild(self.__class__.__name__)

    def knows(self, reference: str) -> bool:
        return any(
            getattr(source, "knows", lambda _: True)(reference)
            for source in self._sources
        )

    def resolve_secret(self, reference: str) -> str:
        failures = []
        for source in self._sources:
            knows = getattr(source, "knows", None)
            if knows is not None and not knows(reference):
                continue
            try:
                return source.resolve_secret(reference)
            except SecretError as e:
                if e.retryable:
                    raise
                failures.append(e.message)
                self._logger.debug(
                    "%s could not resolve a secret: %s",
                    type(source).__name__,
                    e.message,
                )

        message = f"No secret source knows reference '{reference}'"
        if failures:
            message += f" ({'; '.join(failures)})"
        raise SecretError(message)


__all__ = [
    "SecretSource",
    "EnvironmentSecretSource",
    "EncryptedFileSecretSource",
    "ChainedSecretSource",
]

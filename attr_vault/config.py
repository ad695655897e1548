"""
Vault Configuration — Keyring loading and validated settings.

Reads settings from environment variables:
    VAULT_KEYRING = <JSON list of {"id", "value", "created_at"}>
    VAULT_KEY_FIELD = <record key-id field name> (default ``key_id``)
    VAULT_CIPHER_BACKEND = aesgcm | chacha20 (default ``aesgcm``)

Security Note:
    Never log key material. Only log key IDs.
"""
import os
import logging
from typing import Union
from collections.abc import Iterable

from pydantic import BaseModel, Field, ValidationError, field_validator

from .binding import AttributeBinding, DEFAULT_KEY_FIELD, VaultSchema
from .crypto import CIPHER_BACKENDS
from .engine import VaultEngine
from .exceptions import ConfigurationError
from .keyring import Keyring

logger = logging.getLogger("attr_vault.config")


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    keyring: str
    key_field: str = Field(default=DEFAULT_KEY_FIELD)
    cipher_backend: str = Field(default="aesgcm")

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in CIPHER_BACKENDS:
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Raises:
            ConfigurationError: If VAULT_KEYRING is missing or a value is invalid.
        """
        keyring = os.environ.get("VAULT_KEYRING")
        if not keyring:
            raise ConfigurationError(
                "VAULT_KEYRING environment variable is not set"
            )
        try:
            return cls(
                keyring=keyring,
                key_field=os.environ.get("VAULT_KEY_FIELD", DEFAULT_KEY_FIELD),
                cipher_backend=os.environ.get("VAULT_CIPHER_BACKEND", "aesgcm"),
            )
        except ValidationError as err:
            raise ConfigurationError(f"Invalid vault configuration: {err}") from err

    def load_keyring(self) -> Keyring:
        return Keyring.load(self.keyring)

    def build_engine(
        self, bindings: Iterable[Union[AttributeBinding, str]]
    ) -> VaultEngine:
        """Return an engine for a record type declaring ``bindings``."""
        schema = VaultSchema(bindings, key_field=self.key_field)
        keyring = self.load_keyring()
        logger.info(
            "Vault configured: %d key(s), current=%s, cipher=%s",
            len(keyring), keyring.current().id, self.cipher_backend,
        )
        return VaultEngine(keyring, schema, cipher_backend=self.cipher_backend)

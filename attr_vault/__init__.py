"""Attr Vault — Transparent encryption of record attributes.

Security Note (Threat Model):
    Decrypted values live in process memory only while a record is
    materialized. Stored rows hold AEAD ciphertext, an HMAC tag per
    attribute and the id of the key that wrote them; never the key itself.
"""

from .version import __version__
from .exceptions import (
    VaultError,
    ConfigurationError,
    KeyringFormatError,
    EmptyKeyringError,
    KeyNotFoundError,
    DecryptionError,
)
from .keyring import Key, Keyring, generate_key
from .crypto import CipherCodec, tag, verify_tag
from .binding import AttributeBinding, VaultSchema, vault_attr
from .engine import EncodedValue, VaultEngine
from .record import VaultRecord
from .storage import MemoryStorage
from .rotation import rotate_stale_records
from .config import VaultConfig

__all__ = [
    "__version__",
    "VaultError",
    "ConfigurationError",
    "KeyringFormatError",
    "EmptyKeyringError",
    "KeyNotFoundError",
    "DecryptionError",
    "Key",
    "Keyring",
    "generate_key",
    "CipherCodec",
    "tag",
    "verify_tag",
    "AttributeBinding",
    "VaultSchema",
    "vault_attr",
    "EncodedValue",
    "VaultEngine",
    "VaultRecord",
    "MemoryStorage",
    "rotate_stale_records",
    "VaultConfig",
]

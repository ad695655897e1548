"""
VaultEngine — Transparent encode/decode of bound attributes with rotation.

Provides the lifecycle hooks a persistence layer calls:
- ``on_load(record)``     — decrypt every bound attribute into the plaintext shadow
- ``before_save(record)`` — rotate stale records, then encrypt assigned attributes

Rotation protocol:
    When a record's stored key id is not the keyring's current key id, the
    next save re-encrypts *every* bound attribute under the current key, even
    ones that were not assigned, so each persisted row converges on the
    current key without a separate migration job.

Key-id policy:
    The key id advances whenever at least one bound attribute is written with
    a non-nil value (``""`` included) during a save. Nil writes never touch it.

Security Note:
    Never log plaintext or ciphertext values. Only log key ids and attribute
    names.
"""
import logging
from typing import Any, NamedTuple, Optional, Union
from collections.abc import Iterable

from .binding import AttributeBinding, VaultSchema
from .crypto import CipherCodec, tag
from .exceptions import KeyNotFoundError
from .keyring import Key, Keyring

logger = logging.getLogger("attr_vault.engine")


class EncodedValue(NamedTuple):
    """Storage slots produced by encrypting one plaintext."""

    ciphertext: bytes
    tag: bytes
    key_id: str


class VaultEngine:
    """Orchestrates keyring, codec and tagger for one record type.

    The engine is persistence-agnostic: records only need to implement
    ``get_field``/``set_field``, ``get_plaintext``/``set_plaintext``,
    ``has_plaintext`` and ``dirty_attributes`` (see :class:`VaultRecord`).
    """

    def __init__(
        self,
        keyring: Keyring,
        schema: Union[VaultSchema, Iterable[AttributeBinding]],
        cipher_backend: str = "aesgcm",
    ):
        if not isinstance(schema, VaultSchema):
            schema = VaultSchema(schema)
        self._keyring = keyring
        self._schema = schema
        self._codec = CipherCodec(cipher_backend)
        # fail at configuration time on an empty keyring
        current = keyring.current()
        logger.debug(
            "Vault engine ready: current key=%s attributes=%s",
            current.id, list(schema),
        )

    @property
    def keyring(self) -> Keyring:
        return self._keyring

    @property
    def schema(self) -> VaultSchema:
        return self._schema

    @property
    def key_field(self) -> str:
        return self._schema.key_field

    @property
    def current_key_id(self) -> str:
        return self._keyring.current().id

    # ------------------------------------------------------------------
    # Value codec
    # ------------------------------------------------------------------

    def encode_value(
        self, plaintext: Optional[str], key: Optional[Key] = None
    ) -> Optional[EncodedValue]:
        """Encrypt and tag a single plaintext under ``key`` (current by default).

        Returns ``None`` for a ``None`` plaintext; nil never reaches the codec.
        """
        if plaintext is None:
            return None
        if key is None:
            key = self._keyring.current()
        ciphertext = self._codec.encrypt(key, plaintext)
        return EncodedValue(ciphertext, tag(key, ciphertext), key.id)

    def decode_value(self, ciphertext: Any, key_id: Optional[str]) -> Optional[str]:
        """Decrypt a stored blob written under ``key_id``.

        Raises:
            KeyNotFoundError: If ``key_id`` is not in the keyring.
            DecryptionError: If the blob fails authentication.
        """
        if ciphertext is None:
            return None
        if len(ciphertext) == 0:
            return ""
        if key_id is None:
            raise KeyNotFoundError(None)
        key = self._keyring.get(key_id)
        return self._codec.decrypt(key, ciphertext)

    # ------------------------------------------------------------------
    # Decode (on read)
    # ------------------------------------------------------------------

    def decode_attribute(self, record: Any, name: str) -> Optional[str]:
        """Decrypt one bound attribute from the record's storage fields."""
        binding = self._schema[name]
        return self.decode_value(
            record.get_field(binding.encrypted_field),
            record.get_field(self.key_field),
        )

    def on_load(self, record: Any) -> None:
        """Populate the plaintext shadow of every bound attribute.

        All-or-nothing: if any attribute fails, no shadow value is exposed.
        """
        decoded = {
            name: self.decode_attribute(record, name) for name in self._schema
        }
        for name, value in decoded.items():
            record.set_plaintext(name, value)

    # ------------------------------------------------------------------
    # Encode (on write)
    # ------------------------------------------------------------------

    def needs_rotation(self, record: Any) -> bool:
        """True if the record was stored under a key other than the current one."""
        stored = record.get_field(self.key_field)
        return stored is not None and stored != self.current_key_id

    def before_save(self, record: Any) -> None:
        """Encrypt assigned attributes, rotating the record if its key is stale.

        Storage fields are only mutated after every attribute was encoded,
        so a failure leaves the record as it was.
        """
        dirty = set(record.dirty_attributes())
        if self.needs_rotation(record):
            stale_id = record.get_field(self.key_field)
            # re-encryption needs the plaintext of attributes never loaded
            pending = {
                name: self.decode_attribute(record, name)
                for name in self._schema
                if name not in dirty and not record.has_plaintext(name)
            }
            for name, value in pending.items():
                record.set_plaintext(name, value)
            dirty.update(self._schema)
            logger.debug(
                "Rotating record from key %s to key %s (%d attribute(s))",
                stale_id, self.current_key_id, len(dirty),
            )
        if not dirty:
            return

        key = self._keyring.current()
        updates: dict[str, Any] = {}
        encrypted = False
        for name in self._schema:
            if name not in dirty:
                continue
            binding = self._schema[name]
            encoded = self.encode_value(record.get_plaintext(name), key)
            if encoded is None:
                updates[binding.encrypted_field] = None
                updates[binding.tag_field] = None
                continue
            updates[binding.encrypted_field] = encoded.ciphertext
            updates[binding.tag_field] = encoded.tag
            encrypted = True
        if encrypted:
            updates[self.key_field] = key.id

        for field, value in updates.items():
            record.set_field(field, value)

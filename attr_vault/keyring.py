"""
Vault Keyring — Versioned, immutable set of symmetric keys.

Keys are loaded from a serialized list of descriptors:
    [{"id": "<key id>", "value": "<base64 32-byte key>", "created_at": "<timestamp>"}]

``created_at`` is an ISO-8601 string, a datetime, or ``YYYY-MM-DD HH:MM:SS +HHMM``.

The *current* key is the one with the most recent ``created_at``; adding a
newer key is the whole rotation-initiation step. Ties on ``created_at`` are
broken by the lexicographically greatest id.

Security Note:
    Never log key material. Only log key IDs.
"""
import base64
import binascii
import secrets
import logging
from datetime import datetime, timezone
from typing import Any, Union
from collections.abc import Iterable, Iterator, Mapping

import orjson
from pydantic import BaseModel, ValidationError, field_validator

from .exceptions import EmptyKeyringError, KeyNotFoundError, KeyringFormatError

logger = logging.getLogger("attr_vault.keyring")

KEY_LENGTH = 32  # AES-256 / ChaCha20

RUBY_TIME_FORMAT = "%Y-%m-%d %H:%M:%S %z"


class KeyDescriptor(BaseModel):
    """Validated serialized form of a single key."""

    id: str
    value: str
    created_at: datetime

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not v:
            raise ValueError("Key id cannot be empty")
        return v

    @field_validator("value")
    @classmethod
    def validate_value(cls, v: str) -> str:
        """Value must be base64 decoding to exactly KEY_LENGTH bytes."""
        try:
            raw = base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError) as err:
            raise ValueError(f"Key value is not valid base64: {err}") from err
        if len(raw) != KEY_LENGTH:
            raise ValueError(
                f"Key value must decode to exactly {KEY_LENGTH} bytes, "
                f"got {len(raw)}"
            )
        return v

    @field_validator("created_at", mode="before")
    @classmethod
    def parse_created_at(cls, v: Any) -> Any:
        """Also accept ``YYYY-MM-DD HH:MM:SS +HHMM`` (Ruby ``Time#to_json``)."""
        if isinstance(v, str):
            try:
                return datetime.strptime(v, RUBY_TIME_FORMAT)
            except ValueError:
                return v
        return v

    @field_validator("created_at")
    @classmethod
    def validate_created_at(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class Key:
    """Immutable symmetric key with an opaque id."""

    __slots__ = ('_id', '_secret', '_created_at')

    def __init__(self, id: str, secret: bytes, created_at: datetime) -> None:
        if len(secret) != KEY_LENGTH:
            raise KeyringFormatError(
                f"Key {id!r} must be exactly {KEY_LENGTH} bytes, got {len(secret)}"
            )
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        object.__setattr__(self, '_id', id)
        object.__setattr__(self, '_secret', bytes(secret))
        object.__setattr__(self, '_created_at', created_at)

    def __setattr__(self, key: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    @property
    def id(self) -> str:
        return self._id

    @property
    def secret(self) -> bytes:
        return self._secret

    @property
    def created_at(self) -> datetime:
        return self._created_at

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Key):
            return NotImplemented
        return (
            self._id == other._id
            and secrets.compare_digest(self._secret, other._secret)
            and self._created_at == other._created_at
        )

    def __hash__(self) -> int:
        return hash((self._id, self._created_at))

    def __repr__(self) -> str:
        return f'<Key id={self._id!r} created_at={self._created_at.isoformat()}>'

    @classmethod
    def from_descriptor(cls, descriptor: KeyDescriptor) -> "Key":
        return cls(
            id=descriptor.id,
            secret=base64.b64decode(descriptor.value),
            created_at=descriptor.created_at,
        )


def _sort_key(key: Key) -> tuple:
    return (key.created_at, key.id)


class Keyring:
    """Ordered, read-only collection of :class:`Key` objects.

    Built once at configuration time; safe to share between threads.
    """

    def __init__(self, keys: Iterable[Key] = ()) -> None:
        by_id: dict[str, Key] = {}
        for key in keys:
            if key.id in by_id:
                raise KeyringFormatError(f"Duplicate key id {key.id!r} in keyring")
            by_id[key.id] = key
        self._keys: tuple[Key, ...] = tuple(sorted(by_id.values(), key=_sort_key))
        self._by_id = by_id

    @classmethod
    def load(
        cls,
        serialized_keys: Union[str, bytes, Iterable[Mapping[str, Any]]]
    ) -> "Keyring":
        """Build a keyring from its serialized form.

        Args:
            serialized_keys: JSON document (str or bytes) or a sequence of
                mappings with ``id``, ``value`` and ``created_at``.

        Returns:
            A new Keyring.

        Raises:
            KeyringFormatError: On malformed JSON, missing fields, invalid
                base64, wrong key length, or duplicate ids.
        """
        if isinstance(serialized_keys, (str, bytes, bytearray)):
            try:
                entries = orjson.loads(serialized_keys)
            except orjson.JSONDecodeError as err:
                raise KeyringFormatError(f"Keyring is not valid JSON: {err}") from err
        else:
            entries = serialized_keys
        if isinstance(entries, Mapping) or not isinstance(entries, Iterable):
            raise KeyringFormatError("Keyring must be a list of key descriptors")
        keys = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, Mapping):
                raise KeyringFormatError(
                    f"Keyring entry {index} is not a key descriptor"
                )
            try:
                descriptor = KeyDescriptor.model_validate(dict(entry))
            except ValidationError as err:
                raise KeyringFormatError(
                    f"Invalid keyring entry {index}: {err}"
                ) from err
            keys.append(Key.from_descriptor(descriptor))
        keyring = cls(keys)
        logger.debug("Loaded keyring with %d key(s): %s", len(keyring), keyring.ids())
        return keyring

    def current(self) -> Key:
        """Return the key used for all new encryptions.

        Raises:
            EmptyKeyringError: If the keyring holds no keys.
        """
        if not self._keys:
            raise EmptyKeyringError("Keyring is empty; provision at least one key")
        return self._keys[-1]

    def get(self, key_id: str) -> Key:
        """Return the key with ``key_id``.

        Raises:
            KeyNotFoundError: If no key has that id.
        """
        try:
            return self._by_id[key_id]
        except (KeyError, TypeError):
            raise KeyNotFoundError(key_id) from None

    def ids(self) -> list[str]:
        return [key.id for key in self._keys]

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[Key]:
        return iter(self._keys)

    def __contains__(self, key_id: object) -> bool:
        try:
            return key_id in self._by_id
        except TypeError:
            return False

    def __repr__(self) -> str:
        return f'<Keyring keys={self.ids()!r}>'


def generate_key() -> str:
    """Generate a random 32-byte key and return it as a base64 string.

    This is a utility for operators provisioning new keys.
    """
    return base64.b64encode(secrets.token_bytes(KEY_LENGTH)).decode("ascii")

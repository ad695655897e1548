"""
Attribute Bindings — Declarative mapping of logical attributes to storage slots.

Every bound attribute ``name`` is backed by:
    <encrypted_field>  (default ``<name>_encrypted``) — ciphertext blob
    <tag_field>        (default ``<name>_hmac``)      — integrity tag
and all attributes of one record type share a single key-id field
(default ``key_id``).

The table is built and validated eagerly; a bad declaration fails at setup,
never at read/write time.
"""
import logging
from typing import Optional, Union
from collections.abc import Iterable, Iterator, Mapping

from pydantic import BaseModel, ValidationError, field_validator, model_validator

from .exceptions import ConfigurationError

logger = logging.getLogger("attr_vault.binding")

DEFAULT_KEY_FIELD = "key_id"

# Names used by VaultRecord itself; bound attributes cannot shadow them.
RESERVED_NAMES = frozenset({
    'get', 'keys', 'items', 'values', 'pop', 'popitem', 'clear', 'update',
    'setdefault', 'get_field', 'set_field', 'get_plaintext', 'set_plaintext',
    'has_plaintext', 'dirty_attributes', 'mark_clean', 'durable_fields',
    'replace_fields',
    'schema', 'is_new', 'id',
})


def _check_identifier(value: str) -> str:
    if not value or not value.isidentifier():
        raise ValueError(f"{value!r} is not a valid field name")
    if value.startswith('_'):
        raise ValueError(f"{value!r} cannot start with '_'")
    if value in RESERVED_NAMES:
        raise ValueError(f"{value!r} is a reserved name")
    return value


class AttributeBinding(BaseModel):
    """A logical attribute and its encrypted/tag storage fields."""

    name: str
    encrypted_field: Optional[str] = None
    tag_field: Optional[str] = None

    model_config = {"frozen": True}

    @field_validator("name", "encrypted_field", "tag_field")
    @classmethod
    def validate_names(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _check_identifier(v)

    @model_validator(mode="before")
    @classmethod
    def default_fields(cls, data):
        """Fill ``<name>_encrypted`` / ``<name>_hmac`` when not given."""
        if isinstance(data, dict) and data.get("name"):
            data = dict(data)
            if not data.get("encrypted_field"):
                data["encrypted_field"] = f"{data['name']}_encrypted"
            if not data.get("tag_field"):
                data["tag_field"] = f"{data['name']}_hmac"
        return data

    @property
    def fields(self) -> tuple[str, str]:
        return (self.encrypted_field, self.tag_field)


def vault_attr(
    name: str,
    encrypted_field: Optional[str] = None,
    hmac_field: Optional[str] = None
) -> AttributeBinding:
    """Declare an encrypted attribute.

    Raises:
        ConfigurationError: If any name is not a valid, unreserved identifier.
    """
    try:
        return AttributeBinding(
            name=name,
            encrypted_field=encrypted_field,
            tag_field=hmac_field,
        )
    except ValidationError as err:
        raise ConfigurationError(f"Invalid vault attribute {name!r}: {err}") from err


class VaultSchema(Mapping[str, AttributeBinding]):
    """Immutable table of bindings for one record type (name → binding)."""

    def __init__(
        self,
        bindings: Iterable[Union[AttributeBinding, str]],
        key_field: str = DEFAULT_KEY_FIELD
    ) -> None:
        try:
            key_field = _check_identifier(key_field)
        except ValueError as err:
            raise ConfigurationError(f"Invalid key field: {err}") from err
        table: dict[str, AttributeBinding] = {}
        # every storage/logical name on the record type -> who declared it
        owners: dict[str, str] = {key_field: 'key field'}
        for binding in bindings:
            if isinstance(binding, str):
                binding = vault_attr(binding)
            if binding.name in table:
                raise ConfigurationError(
                    f"Vault attribute {binding.name!r} declared twice"
                )
            for field in (binding.name, *binding.fields):
                if field in owners:
                    raise ConfigurationError(
                        f"Field {field!r} of attribute {binding.name!r} "
                        f"collides with {owners[field]}"
                    )
                owners[field] = f"attribute {binding.name!r}"
            table[binding.name] = binding
        if not table:
            raise ConfigurationError("At least one vault attribute is required")
        self._table = table
        self._key_field = key_field
        logger.debug(
            "Vault schema: attributes=%s key_field=%s", list(table), key_field
        )

    @property
    def key_field(self) -> str:
        return self._key_field

    def storage_fields(self) -> list[str]:
        """All durable field names managed by the vault, key field last."""
        fields = []
        for binding in self._table.values():
            fields.extend(binding.fields)
        fields.append(self._key_field)
        return fields

    def __getitem__(self, name: str) -> AttributeBinding:
        return self._table[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def __repr__(self) -> str:
        return f'<VaultSchema attributes={list(self._table)} key_field={self._key_field!r}>'

from typing import Any, Optional
from collections.abc import Iterator, Mapping, MutableMapping
from .binding import VaultSchema


class VaultRecord(MutableMapping[str, Any]):
    """Record dict-like object.

    Holds the durable fields of one row (stored in _data and persisted) and
    a plaintext shadow of every bound attribute (stored in _plaintext, never
    persisted).

    Bound attributes assigned via record.key = value or record['key'] = value
    land in the shadow and are remembered as explicitly assigned until the
    next save, so an explicit ``None`` can be told apart from an untouched
    attribute.
    """

    # Internal attributes that should not be stored in _data or _plaintext
    _internal_attrs = frozenset({
        '_schema', '_data', '_plaintext', '_assigned', '_new'
    })

    def __init__(
        self,
        schema: VaultSchema,
        data: Optional[Mapping[str, Any]] = None,
        new: bool = True
    ) -> None:
        # Initialize internal storage first (before any attribute access)
        object.__setattr__(self, '_schema', schema)
        object.__setattr__(self, '_data', {})
        object.__setattr__(self, '_plaintext', {})
        object.__setattr__(self, '_assigned', set())
        self._new = new
        if data is not None:
            for key, value in data.items():
                self[key] = value

    def __repr__(self) -> str:
        return (
            f'<VaultRecord [new:{self._new}] '
            f'fields={list(self._data.keys())}, '
            f'attributes={list(self._schema)}>'
        )

    # --- Storage collaborator contract ---

    @property
    def schema(self) -> VaultSchema:
        return self._schema

    @property
    def is_new(self) -> bool:
        return self._new

    @is_new.setter
    def is_new(self, value: bool) -> None:
        self._new = value

    def get_field(self, name: str, default: Any = None) -> Any:
        """Return a durable (stored) field."""
        return self._data.get(name, default)

    def set_field(self, name: str, value: Any) -> None:
        """Set a durable (stored) field."""
        if name in self._schema:
            raise KeyError(f"{name!r} is a vault attribute, not a storage field")
        self._data[name] = value

    def replace_fields(self, data: Mapping[str, Any]) -> None:
        """Replace every durable field with ``data``."""
        self._data.clear()
        for name, value in data.items():
            self.set_field(name, value)

    def durable_fields(self) -> dict:
        """Return only durable data (for persistence)."""
        return dict(self._data)

    def has_plaintext(self, name: str) -> bool:
        return name in self._plaintext

    def get_plaintext(self, name: str) -> Optional[str]:
        return self._plaintext.get(name)

    def set_plaintext(self, name: str, value: Optional[str], assigned: bool = False) -> None:
        """Replace the shadow value of a bound attribute.

        ``assigned`` marks the attribute as explicitly written, so it is
        encrypted on the next save.
        """
        if name not in self._schema:
            raise KeyError(f"{name!r} is not a vault attribute")
        self._plaintext[name] = value
        if assigned:
            self._assigned.add(name)

    def dirty_attributes(self) -> frozenset:
        """Bound attributes explicitly assigned since load or last save."""
        return frozenset(self._assigned)

    def mark_clean(self) -> None:
        self._assigned.clear()
        self._new = False

    # --- Magic Methods ---

    def __len__(self) -> int:
        return len(self._data) + len(self._schema)

    def __iter__(self) -> Iterator[str]:
        yield from self._data
        yield from self._schema

    def __contains__(self, key: object) -> bool:
        return key in self._schema or key in self._data

    def __getitem__(self, key: str) -> Any:
        if key in self._schema:
            return self._plaintext.get(key)
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        if key in self._schema:
            self.set_plaintext(key, value, assigned=True)
        else:
            self._data[key] = value

    def __delitem__(self, key: str) -> None:
        if key in self._schema:
            # an explicit null
            self.set_plaintext(key, None, assigned=True)
        else:
            del self._data[key]

    def __getattr__(self, key: str) -> Any:
        # Avoid infinite recursion for internal attributes
        if key.startswith('_'):
            raise AttributeError(key)
        try:
            return self[key]
        except KeyError:
            raise AttributeError(key) from None

    def __setattr__(self, key: str, value: Any) -> None:
        # Handle internal attributes and properties normally
        if key in self._internal_attrs or key.startswith('_') or key == 'is_new':
            object.__setattr__(self, key, value)
        else:
            self[key] = value

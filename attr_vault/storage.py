"""
MemoryStorage — In-memory table that drives the vault lifecycle hooks.

A minimal persistence layer honouring the engine contract:
- rows are materialized into :class:`VaultRecord` and ``on_load`` runs
  before the record is returned;
- ``before_save`` runs after pending assignments are known and before the
  row is written.

Stored rows are copies, so mutating a live record never changes the table
until it is saved.
"""
import logging
from typing import Any, Optional
from collections.abc import Iterator

from .engine import VaultEngine
from .record import VaultRecord

logger = logging.getLogger("attr_vault.storage")


class MemoryStorage:
    """Dict-backed table keyed by an auto-increment ``id``."""

    def __init__(self, engine: VaultEngine, table: Optional[dict] = None) -> None:
        self._engine = engine
        # a shared table lets engines with different keyrings see the same rows
        self._rows: dict[int, dict] = table if table is not None else {}

    @property
    def engine(self) -> VaultEngine:
        return self._engine

    def new(self, **values: Any) -> VaultRecord:
        """Build an unsaved record."""
        return VaultRecord(self._engine.schema, data=values, new=True)

    def create(self, **values: Any) -> VaultRecord:
        """Build and save a record in one step."""
        record = self.new(**values)
        self.save(record)
        return record

    def _materialize(self, row: dict) -> VaultRecord:
        record = VaultRecord(self._engine.schema, new=False)
        for field, value in row.items():
            record.set_field(field, value)
        self._engine.on_load(record)
        return record

    def get(self, record_id: int) -> VaultRecord:
        """Load a record by primary key.

        Raises:
            KeyError: If no row has that id.
        """
        try:
            row = self._rows[record_id]
        except KeyError:
            raise KeyError(f"Record {record_id} not found") from None
        return self._materialize(dict(row))

    def save(self, record: VaultRecord) -> VaultRecord:
        """Run ``before_save`` and write the record's durable fields."""
        self._engine.before_save(record)
        row = record.durable_fields()
        if row.get('id') is None:
            row['id'] = max(self._rows, default=0) + 1
            record.set_field('id', row['id'])
        self._rows[row['id']] = row
        record.mark_clean()
        logger.debug("Saved record id=%s", row['id'])
        return record

    def update(self, record: VaultRecord, **values: Any) -> VaultRecord:
        """Assign ``values`` and save."""
        for key, value in values.items():
            record[key] = value
        return self.save(record)

    def reload(self, record: VaultRecord) -> VaultRecord:
        """Refresh ``record`` in place from its stored row."""
        fresh = self.get(record.get_field('id'))
        record.replace_fields(fresh.durable_fields())
        for name in self._engine.schema:
            record.set_plaintext(name, fresh.get_plaintext(name))
        record.mark_clean()
        return record

    def rows(self) -> Iterator[dict]:
        """Iterate over copies of the stored rows."""
        for row in self._rows.values():
            yield dict(row)

    def __len__(self) -> int:
        return len(self._rows)

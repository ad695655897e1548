"""
Vault Key Rotation — Batch sweep of rows still stored under an old key.

Rotation normally happens on the next save of each record. This sweep runs
the same load/save cycle over every stale row of a table so an old key can
be retired without waiting for organic writes. Each batch runs in its own
transaction; the operation is idempotent, since rotated rows drop out of the
query filter.

Rows are updated only if their vault fields still hold the values that were
read, so a concurrent application write is never overwritten.

Security Note:
    Plaintext exists in memory only during re-encryption of each row.
    Never log plaintext or ciphertext values.
"""
import logging
from typing import Any

from .engine import VaultEngine
from .exceptions import ConfigurationError, DecryptionError, KeyNotFoundError
from .record import VaultRecord

logger = logging.getLogger("attr_vault.rotation")


def _check_table(table: str) -> str:
    if not table or not all(part.isidentifier() for part in table.split('.')):
        raise ConfigurationError(f"Invalid table name: {table!r}")
    return table


def _select_batch(table: str, fields: list[str], key_field: str) -> str:
    columns = ", ".join(["id", *fields])
    return (
        f"SELECT {columns}\n"
        f"FROM {table}\n"
        f"WHERE {key_field} IS NOT NULL AND {key_field} <> $1 AND id > $2\n"
        f"ORDER BY id\n"
        f"LIMIT $3"
    )


def _update_row(table: str, fields: list[str], guards: list[str]) -> str:
    assignments = ", ".join(
        f"{field} = ${idx}" for idx, field in enumerate(fields, start=1)
    )
    offset = len(fields) + 1
    conditions = " AND ".join(
        [f"id = ${offset}"] + [
            f"{field} IS NOT DISTINCT FROM ${idx}"
            for idx, field in enumerate(guards, start=offset + 1)
        ]
    )
    return f"UPDATE {table}\nSET {assignments}\nWHERE {conditions}"


async def rotate_stale_records(
    db_pool: Any,
    engine: VaultEngine,
    table: str,
    batch_size: int = 100,
) -> dict:
    """Re-encrypt every row of ``table`` not stored under the current key.

    Args:
        db_pool: asyncpg-compatible connection pool.
        engine: Engine bound to the record type stored in ``table``.
        table: Table name, optionally schema-qualified.
        batch_size: Number of rows to process per batch/transaction.

    Returns:
        Stats dict with keys: total, rotated, errors, skipped.
    """
    table = _check_table(table)
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    schema = engine.schema
    fields = schema.storage_fields()
    guards = [schema[name].encrypted_field for name in schema] + [schema.key_field]
    select_sql = _select_batch(table, fields, schema.key_field)
    update_sql = _update_row(table, fields, guards)

    current_id = engine.current_key_id
    stats = {"total": 0, "rotated": 0, "errors": 0, "skipped": 0}
    last_id: Any = 0
    batch_num = 0

    logger.info(
        "Starting rotation sweep of %s to key %s (batch_size=%d)",
        table, current_id, batch_size,
    )

    while True:
        async with db_pool.acquire() as conn:
            rows = await conn.fetch(select_sql, current_id, last_id, batch_size)

        if not rows:
            break

        batch_num += 1
        logger.info("Processing batch %d (%d rows)", batch_num, len(rows))

        async with db_pool.acquire() as conn:
            tx = conn.transaction()
            await tx.start()
            try:
                for row in rows:
                    stats["total"] += 1
                    original = dict(row.items())
                    row_id = original["id"]
                    last_id = row_id

                    record = VaultRecord(schema, data=None, new=False)
                    for field, value in original.items():
                        record.set_field(field, value)
                    try:
                        engine.on_load(record)
                        engine.before_save(record)
                    except (KeyNotFoundError, DecryptionError) as err:
                        logger.error(
                            "Error rotating %s id=%s: %s", table, row_id, err,
                        )
                        stats["errors"] += 1
                        continue
                    if record.get_field(schema.key_field) != current_id:
                        # every vault attribute is nil, nothing to re-encrypt
                        stats["skipped"] += 1
                        continue

                    status = await conn.execute(
                        update_sql,
                        *[record.get_field(field) for field in fields],
                        row_id,
                        *[original.get(field) for field in guards],
                    )
                    if status == "UPDATE 0":
                        # changed by a concurrent writer since it was read
                        stats["skipped"] += 1
                    else:
                        stats["rotated"] += 1

                await tx.commit()
            except Exception:
                await tx.rollback()
                raise

    logger.info("Rotation sweep complete: %s", stats)
    return stats

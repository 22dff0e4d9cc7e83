"""Named text slots persisted in DuckDB."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from shelfrank.database.schema import SLOTS_TABLE, ensure_schema, to_db_timestamp, utcnow

if TYPE_CHECKING:
    from shelfrank.database.duckdb_manager import DuckDBStorageManager

logger = logging.getLogger(__name__)


class BlobStore:
    """Key/value store for small serialized documents (e.g. the sync queue)."""

    def __init__(self, storage: DuckDBStorageManager) -> None:
        self.storage = storage
        ensure_schema(storage)

    def get(self, key: str) -> str | None:
        row = self.storage.execute_query_single(f"SELECT value FROM {SLOTS_TABLE} WHERE slot = ?", [key])
        return None if row is None else row[0]

    def put(self, key: str, value: str) -> None:
        self.storage.execute_sql(
            f"""
            INSERT INTO {SLOTS_TABLE} (slot, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT (slot) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            [key, value, to_db_timestamp(utcnow())],
        )
        logger.debug("Stored slot %s (%d bytes)", key, len(value))

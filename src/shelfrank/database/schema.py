"""Table definitions for the local store.

Lists (tags, read dates) and snapshot payloads are stored as JSON text.
Timestamps are stored as naive UTC ``TIMESTAMP`` values.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shelfrank.database.duckdb_manager import DuckDBStorageManager

logger = logging.getLogger(__name__)

ITEMS_TABLE = "items"
COMPARISONS_TABLE = "comparisons"
SNAPSHOTS_TABLE = "ranking_snapshots"
SLOTS_TABLE = "kv_slots"

ITEMS_SEQUENCE = "items_seq"
COMPARISONS_SEQUENCE = "comparisons_seq"
SNAPSHOTS_SEQUENCE = "ranking_snapshots_seq"

SEQUENCES = (ITEMS_SEQUENCE, COMPARISONS_SEQUENCE, SNAPSHOTS_SEQUENCE)

TABLE_DDL = {
    ITEMS_TABLE: f"""
        CREATE TABLE IF NOT EXISTS {ITEMS_TABLE} (
            item_id BIGINT PRIMARY KEY DEFAULT nextval('{ITEMS_SEQUENCE}'),
            title VARCHAR NOT NULL,
            author VARCHAR NOT NULL,
            category VARCHAR,
            tags VARCHAR NOT NULL,
            rating DOUBLE,
            read_dates VARCHAR NOT NULL,
            external_row BIGINT,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL
        )
    """,
    COMPARISONS_TABLE: f"""
        CREATE TABLE IF NOT EXISTS {COMPARISONS_TABLE} (
            comparison_id BIGINT PRIMARY KEY DEFAULT nextval('{COMPARISONS_SEQUENCE}'),
            item_a BIGINT NOT NULL,
            item_b BIGINT NOT NULL,
            winner BIGINT NOT NULL,
            created_at TIMESTAMP NOT NULL,
            UNIQUE (item_a, item_b),
            CHECK (item_a < item_b),
            CHECK (winner = item_a OR winner = item_b)
        )
    """,
    SNAPSHOTS_TABLE: f"""
        CREATE TABLE IF NOT EXISTS {SNAPSHOTS_TABLE} (
            snapshot_id BIGINT PRIMARY KEY DEFAULT nextval('{SNAPSHOTS_SEQUENCE}'),
            created_at TIMESTAMP NOT NULL,
            entries VARCHAR NOT NULL,
            metadata VARCHAR NOT NULL
        )
    """,
    SLOTS_TABLE: f"""
        CREATE TABLE IF NOT EXISTS {SLOTS_TABLE} (
            slot VARCHAR PRIMARY KEY,
            value VARCHAR NOT NULL,
            updated_at TIMESTAMP NOT NULL
        )
    """,
}


def ensure_schema(storage: DuckDBStorageManager) -> None:
    """Create sequences and tables if they don't exist."""
    for sequence in SEQUENCES:
        storage.ensure_sequence(sequence)

    existing = set(storage.list_tables())
    for table_name, ddl in TABLE_DDL.items():
        if table_name in existing:
            continue
        storage.execute_sql(ddl)
        logger.info("Created %s table", table_name)


def utcnow() -> datetime:
    return datetime.now(UTC)


def to_db_timestamp(value: datetime) -> datetime:
    """Convert an aware datetime into the naive UTC value stored in DuckDB."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def from_db_timestamp(value: datetime) -> datetime:
    """Attach UTC to a naive timestamp read back from DuckDB."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)

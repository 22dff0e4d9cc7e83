"""Local DuckDB storage: connection management, schema and stores."""

from shelfrank.database.blob_store import BlobStore
from shelfrank.database.duckdb_manager import DuckDBStorageManager, quote_identifier
from shelfrank.database.item_store import ImportResult, ItemStore, validate_draft
from shelfrank.database.schema import ensure_schema
from shelfrank.database.snapshot_store import SnapshotStore

__all__ = [
    "BlobStore",
    "DuckDBStorageManager",
    "ImportResult",
    "ItemStore",
    "SnapshotStore",
    "ensure_schema",
    "quote_identifier",
    "validate_draft",
]

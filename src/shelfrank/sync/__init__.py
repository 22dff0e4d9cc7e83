"""Write-back of local items to the remote spreadsheet store."""

from shelfrank.sync.client import AppendResult, RemoteStoreClient, SheetsClient
from shelfrank.sync.conflicts import ConflictOutcome, ConflictResolver, RowMatch
from shelfrank.sync.connectivity import Connectivity
from shelfrank.sync.queue import (
    ProcessReport,
    QueueStatus,
    SyncKind,
    SyncOperation,
    SyncOutcome,
    SyncQueue,
)
from shelfrank.sync.rows import export_rows, item_to_row, parse_sheet_rows

__all__ = [
    "AppendResult",
    "ConflictOutcome",
    "ConflictResolver",
    "Connectivity",
    "ProcessReport",
    "QueueStatus",
    "RemoteStoreClient",
    "RowMatch",
    "SheetsClient",
    "SyncKind",
    "SyncOperation",
    "SyncOutcome",
    "SyncQueue",
    "export_rows",
    "item_to_row",
    "parse_sheet_rows",
]

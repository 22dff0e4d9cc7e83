"""Append-only persistence for ranking snapshots."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from ibis import _

from shelfrank.database.schema import SNAPSHOTS_TABLE, ensure_schema, from_db_timestamp, to_db_timestamp
from shelfrank.ranking.models import RankedItem, RankingSnapshot

if TYPE_CHECKING:
    from collections.abc import Mapping

    from shelfrank.database.duckdb_manager import DuckDBStorageManager

logger = logging.getLogger(__name__)


def _encode_entries(snapshot: RankingSnapshot) -> str:
    return json.dumps(
        [
            {"item_id": e.item_id, "title": e.title, "author": e.author, "rating": e.rating}
            for e in snapshot.entries
        ]
    )


def _row_to_snapshot(row: Mapping[str, Any]) -> RankingSnapshot:
    entries = tuple(
        RankedItem(
            item_id=int(entry["item_id"]),
            title=entry["title"],
            author=entry["author"],
            rating=float(entry["rating"]),
        )
        for entry in json.loads(row["entries"])
    )
    return RankingSnapshot(
        entries=entries,
        created_at=from_db_timestamp(row["created_at"]),
        metadata=json.loads(row["metadata"]),
        snapshot_id=int(row["snapshot_id"]),
    )


class SnapshotStore:
    """Stores ranking snapshots. Rows are never updated once written."""

    def __init__(self, storage: DuckDBStorageManager) -> None:
        self.storage = storage
        ensure_schema(storage)

    def save(self, snapshot: RankingSnapshot) -> RankingSnapshot:
        """Persist ``snapshot`` and return it with its assigned id."""
        row = self.storage.execute_query_single(
            f"""
            INSERT INTO {SNAPSHOTS_TABLE} (created_at, entries, metadata)
            VALUES (?, ?, ?)
            RETURNING snapshot_id
            """,
            [
                to_db_timestamp(snapshot.created_at),
                _encode_entries(snapshot),
                json.dumps(snapshot.metadata, default=str),
            ],
        )
        snapshot_id = int(row[0])  # type: ignore[index]
        logger.info("Saved ranking snapshot %s with %d entries", snapshot_id, len(snapshot.entries))
        return RankingSnapshot(
            entries=snapshot.entries,
            created_at=snapshot.created_at,
            metadata=dict(snapshot.metadata),
            snapshot_id=snapshot_id,
        )

    def get(self, snapshot_id: int) -> RankingSnapshot | None:
        table = self.storage.read_table(SNAPSHOTS_TABLE)
        rows = table.filter(_.snapshot_id == snapshot_id).limit(1).to_pyarrow().to_pylist()
        return _row_to_snapshot(rows[0]) if rows else None

    def history(self, limit: int | None = None) -> list[RankingSnapshot]:
        """Snapshots newest first. Equal timestamps are ordered by id, highest first."""
        table = self.storage.read_table(SNAPSHOTS_TABLE)
        query = table.order_by([_.created_at.desc(), _.snapshot_id.desc()])
        if limit is not None:
            query = query.limit(limit)
        return [_row_to_snapshot(row) for row in query.to_pyarrow().to_pylist()]

    def latest(self) -> RankingSnapshot | None:
        snapshots = self.history(limit=1)
        return snapshots[0] if snapshots else None

    def count(self) -> int:
        return int(self.storage.read_table(SNAPSHOTS_TABLE).count().execute())

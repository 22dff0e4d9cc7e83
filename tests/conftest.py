"""Shared fixtures: temporary DuckDB storage, stores and an in-memory remote sheet."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

import pytest

from shelfrank.database import BlobStore, DuckDBStorageManager, ItemStore, SnapshotStore
from shelfrank.ranking.calculator import RankingCalculator
from shelfrank.ranking.ledger import ComparisonLedger
from shelfrank.ranking.models import Item, ItemDraft
from shelfrank.sync.client import AppendResult
from shelfrank.sync.connectivity import Connectivity
from shelfrank.sync.queue import SyncQueue
from shelfrank.sync.rows import ROW_COLUMNS, parse_row_span


class FakeSheet:
    """In-memory ``RemoteStoreClient`` that records calls and can be told to fail."""

    def __init__(self, rows: Sequence[Sequence[Any]] | None = None) -> None:
        self.rows: list[list[Any]] = [list(ROW_COLUMNS)] + [list(row) for row in rows or []]
        self.writes: list[tuple[str, list[list[Any]]]] = []
        self.appends: list[tuple[str, list[list[Any]]]] = []
        self.reads = 0
        # target -> exception raised on every attempt
        self.failing: dict[str, Exception] = {}
        # exceptions raised once each, in order, by the next calls
        self.next_errors: list[Exception] = []

    def _maybe_fail(self, target: str) -> None:
        if self.next_errors:
            raise self.next_errors.pop(0)
        if target in self.failing:
            raise self.failing[target]

    async def write(self, identifier: str, rows: Sequence[Sequence[Any]]) -> None:
        self._maybe_fail(identifier)
        self.writes.append((identifier, [list(row) for row in rows]))
        span = parse_row_span(identifier)
        if span is not None:
            for offset, row in enumerate(rows):
                index = span[0] - 1 + offset
                while len(self.rows) <= index:
                    self.rows.append([])
                self.rows[index] = list(row)

    async def append(self, identifier: str, rows: Sequence[Sequence[Any]]) -> AppendResult:
        self._maybe_fail(identifier)
        self.appends.append((identifier, [list(row) for row in rows]))
        first = len(self.rows) + 1
        self.rows.extend(list(row) for row in rows)
        last = len(self.rows)
        return AppendResult(updated_range=f"{identifier}!A{first}:E{last}", first_row=first, last_row=last)

    async def read_all(self, identifier: str) -> list[list[Any]]:
        self._maybe_fail(identifier)
        self.reads += 1
        return [list(row) for row in self.rows]


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "shelfrank.duckdb"


@pytest.fixture
def storage(db_path: Path) -> Iterator[DuckDBStorageManager]:
    """DuckDB storage manager on a temporary file."""
    manager = DuckDBStorageManager(db_path=db_path)
    yield manager
    manager.close()


@pytest.fixture
def item_store(storage: DuckDBStorageManager) -> ItemStore:
    return ItemStore(storage)


@pytest.fixture
def ledger(storage: DuckDBStorageManager, item_store: ItemStore) -> ComparisonLedger:
    return ComparisonLedger(storage, item_exists=item_store.exists)


@pytest.fixture
def snapshot_store(storage: DuckDBStorageManager) -> SnapshotStore:
    return SnapshotStore(storage)


@pytest.fixture
def calculator(item_store: ItemStore, ledger: ComparisonLedger, snapshot_store: SnapshotStore) -> RankingCalculator:
    return RankingCalculator(item_store, ledger, snapshot_store)


@pytest.fixture
def blob_store(storage: DuckDBStorageManager) -> BlobStore:
    return BlobStore(storage)


@pytest.fixture
def sheet() -> FakeSheet:
    return FakeSheet()


@pytest.fixture
def connectivity() -> Connectivity:
    return Connectivity(online=True)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def sync_queue(sheet: FakeSheet, blob_store: BlobStore, connectivity: Connectivity, sleep: RecordingSleep) -> SyncQueue:
    queue = SyncQueue(sheet, blob_store, connectivity, sleep=sleep)
    queue.load()
    return queue


@pytest.fixture
def make_items(item_store: ItemStore):
    """Factory adding items titled after the given names."""

    def _make(*titles: str, author: str = "Author") -> list[Item]:
        return [item_store.add_item(ItemDraft(title=title, author=author)) for title in titles]

    return _make

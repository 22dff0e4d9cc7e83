"""Application root that builds and owns every engine component.

A UI layer creates one :class:`ShelfRank`, awaits :meth:`ShelfRank.init` and
calls :meth:`ShelfRank.shutdown` when done::

    async with ShelfRank(load_config()) as app:
        app.compare(1, 2, winner=1)
        await app.recompute()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Self

from shelfrank.config import ShelfRankConfig
from shelfrank.database import BlobStore, DuckDBStorageManager, ItemStore, SnapshotStore
from shelfrank.ranking.calculator import RankingCalculator
from shelfrank.ranking.ledger import ComparisonLedger
from shelfrank.sync.client import SheetsClient
from shelfrank.sync.conflicts import ConflictResolver
from shelfrank.sync.connectivity import Connectivity
from shelfrank.sync.queue import SyncKind, SyncOperation, SyncOutcome, SyncQueue
from shelfrank.sync.rows import export_rows, parse_sheet_rows

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping, Sequence

    from shelfrank.database.item_store import ImportResult
    from shelfrank.exceptions import RemoteStoreError
    from shelfrank.ranking.calculator import ReplayResult
    from shelfrank.ranking.elo import IntegrityReport
    from shelfrank.ranking.models import Comparison, Item, ItemDraft, RankingSnapshot
    from shelfrank.sync.client import AppendResult, RemoteStoreClient
    from shelfrank.sync.conflicts import ConflictOutcome
    from shelfrank.sync.queue import ProcessReport, QueueStatus
    from shelfrank.sync.rows import Cell

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RecomputeResult:
    """Outcome of :meth:`ShelfRank.recompute`."""

    replay: ReplayResult
    snapshot: RankingSnapshot | None
    sync: tuple[SyncOutcome, ...] = ()


class ShelfRank:
    """Owns storage, ledger, calculator, sync queue and remote client."""

    def __init__(  # noqa: PLR0913
        self,
        config: ShelfRankConfig | None = None,
        *,
        client: RemoteStoreClient | None = None,
        connectivity: Connectivity | None = None,
        storage: DuckDBStorageManager | None = None,
        base_dir: Path | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_permanent_failure: Callable[[SyncOperation, RemoteStoreError], None] | None = None,
    ) -> None:
        self.config = config or ShelfRankConfig()
        self.connectivity = connectivity or Connectivity()
        self._client = client
        self._storage = storage
        self._base_dir = base_dir
        self._sleep = sleep
        self._on_permanent_failure = on_permanent_failure
        self._unsubscribe: Callable[[], None] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._initialized = False

    async def init(self) -> None:
        """Open storage, restore the sync queue and start listening for reconnects."""
        if self._initialized:
            return

        if self._storage is None:
            self._storage = DuckDBStorageManager.from_setting(
                self.config.database.path, base_dir=self._base_dir or Path.cwd()
            )
        if self._client is None:
            self._client = SheetsClient.from_settings(self.config.remote)

        self.storage = self._storage
        self.client = self._client
        self.items = ItemStore(self.storage)
        self.ledger = ComparisonLedger(self.storage, item_exists=self.items.exists)
        self.snapshots = SnapshotStore(self.storage)
        self.calculator = RankingCalculator(self.items, self.ledger, self.snapshots, self.config.rating)
        self.queue = SyncQueue(
            self.client,
            BlobStore(self.storage),
            self.connectivity,
            self.config.sync,
            sleep=self._sleep,
            on_success=self._after_sync,
            on_permanent_failure=self._on_permanent_failure,
        )
        self.resolver = ConflictResolver(self.queue, self.config.remote.sheet_name)

        self.queue.load()
        self._unsubscribe = self.connectivity.subscribe(self._on_reconnect)
        self._initialized = True
        logger.info("ShelfRank initialized")

    async def shutdown(self) -> None:
        """Persist the queue and release connections."""
        if not self._initialized:
            return
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self.queue.save()
        if isinstance(self.client, SheetsClient):
            await self.client.aclose()
        self.storage.close()
        self._initialized = False
        logger.info("ShelfRank shut down")

    async def __aenter__(self) -> Self:
        await self.init()
        return self

    async def __aexit__(self, _exc_type: object, _exc_val: object, _exc_tb: object) -> None:
        await self.shutdown()

    # Items

    def add_item(self, draft: ItemDraft) -> Item:
        return self.items.add_item(draft)

    def import_items(self, drafts: Sequence[ItemDraft]) -> ImportResult:
        return self.items.import_items(drafts)

    async def import_from_remote(self) -> ImportResult:
        """Read the remote sheet, import its rows and remember each item's row."""
        rows = await self.client.read_all(self.config.remote.sheet_name)
        result = self.items.import_items(parse_sheet_rows(rows))
        self._link_rows(rows)
        return result

    # Ranking

    def compare(self, item_a: int, item_b: int, winner: int) -> Comparison:
        """Record a user decision. Ratings change on the next :meth:`recompute`."""
        return self.ledger.record(item_a, item_b, winner)

    async def recompute(self, metadata: Mapping[str, Any] | None = None) -> RecomputeResult:
        """Replay the ledger, snapshot the ranking and push changed ratings."""
        replay = self.calculator.replay_all()
        snapshot = self.calculator.snapshot(metadata) if self._has_rated_items() else None

        outcomes: list[SyncOutcome] = []
        to_append: list[Item] = []
        queued_appends = self._queued_append_ids()
        sheet = self.config.remote.sheet_name
        for item_id in replay.changed_ids:
            item = self.items.get_item(item_id)
            if item.external_row is not None:
                outcomes.append(await self.queue.submit(SyncOperation.update_item(sheet, item.external_row, item)))
            elif item_id in queued_appends:
                self.queue.refresh_item(item)
            else:
                to_append.append(item)
        if to_append:
            outcomes.append(await self.queue.submit(SyncOperation.append_items(sheet, to_append)))

        return RecomputeResult(replay=replay, snapshot=snapshot, sync=tuple(outcomes))

    def ranking(self) -> RankingSnapshot | None:
        return self.calculator.latest()

    def integrity(self) -> IntegrityReport:
        return self.calculator.integrity()

    def export(self) -> list[list[Cell]]:
        """Rows for a spreadsheet export of the whole collection."""
        return export_rows(self.items.list_items(), self.ledger.counts_by_item())

    # Sync

    async def push_unsynced_items(self) -> SyncOutcome | None:
        """Append every item that has no remote row and is not already queued."""
        queued = self._queued_append_ids()
        unsynced = [item for item in self.items.list_items() if item.external_row is None and item.item_id not in queued]
        if not unsynced:
            return None
        logger.info("Pushing %d items without a remote row", len(unsynced))
        return await self.queue.submit(SyncOperation.append_items(self.config.remote.sheet_name, unsynced))

    async def resolve_conflicts(self) -> list[ConflictOutcome]:
        """Read the remote sheet back and overwrite differing ratings with local ones."""
        rows = await self.client.read_all(self.config.remote.sheet_name)
        self._link_rows(rows)
        return await self.resolver.resolve(self.items.list_items(), rows)

    async def sync(self) -> ProcessReport:
        return await self.queue.process()

    async def reauthenticated(self) -> ProcessReport:
        """Lift the auth hold after the user signed in and drain the queue."""
        self.queue.resume_after_reauth()
        return await self.queue.process()

    def sync_status(self) -> QueueStatus:
        return self.queue.status()

    # Internals

    def _has_rated_items(self) -> bool:
        _, rated = self.items.counts()
        return rated > 0

    def _queued_append_ids(self) -> set[int]:
        return {
            item_id
            for operation in self.queue.pending
            if operation.kind is SyncKind.APPEND
            for item_id in operation.item_ids
        }

    def _link_rows(self, rows: Sequence[Sequence[Any]]) -> None:
        for match in self.resolver.link_rows(self.items.list_items(), rows):
            self.items.assign_external_row(match.item_id, match.row_number)

    def _after_sync(self, operation: SyncOperation, result: AppendResult | None) -> None:
        if operation.kind is not SyncKind.APPEND or result is None:
            return
        for item_id, row_number in zip(operation.item_ids, result.row_numbers(len(operation.item_ids)), strict=True):
            if row_number is not None and self.items.assign_external_row(item_id, row_number):
                logger.debug("Item %s is remote row %s", item_id, row_number)

    def _on_reconnect(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Back online outside an event loop; queue will drain on the next sync()")
            return
        task = loop.create_task(self.queue.process())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

"""Reconcile local items with rows read back from the remote store.

Local data always wins: a differing remote rating is overwritten with the
local one through the sync queue. Conflicts are detected only for ratings.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from shelfrank.sync.queue import SyncOperation, SyncOutcome
from shelfrank.sync.rows import RATING_COLUMN, parse_rating, row_key

if TYPE_CHECKING:
    from collections.abc import Sequence

    from shelfrank.ranking.models import Item
    from shelfrank.sync.queue import SyncQueue

logger = logging.getLogger(__name__)

LOCAL_PREFERRED = "local_preferred"


@dataclass(frozen=True, slots=True)
class ConflictOutcome:
    """One rating conflict and how its write-back went."""

    item_id: int
    title: str
    author: str
    row_number: int
    local_rating: float
    remote_rating: float
    status: SyncOutcome
    resolution: str = LOCAL_PREFERRED

    @property
    def succeeded(self) -> bool:
        return self.status is SyncOutcome.SYNCED


@dataclass(frozen=True, slots=True)
class RowMatch:
    """A local item found on the remote sheet at ``row_number``."""

    item_id: int
    row_number: int


def index_remote_rows(remote_rows: Sequence[Sequence[Any]]) -> dict[str, tuple[int, Sequence[Any]]]:
    """Composite key -> (1-based row number, row). The header row is skipped."""
    lookup: dict[str, tuple[int, Sequence[Any]]] = {}
    for row_number, row in enumerate(remote_rows[1:], start=2):
        key = row_key(row)
        if key is None or key in lookup:
            continue
        lookup[key] = (row_number, row)
    return lookup


class ConflictResolver:
    """Finds rating mismatches and pushes the local value to the remote row."""

    def __init__(self, queue: SyncQueue, sheet_name: str) -> None:
        self.queue = queue
        self.sheet_name = sheet_name

    def find_conflicts(
        self,
        local_items: Sequence[Item],
        remote_rows: Sequence[Sequence[Any]],
    ) -> list[tuple[Item, int, float]]:
        """Items whose remote rating differs: (item, row number, remote rating)."""
        lookup = index_remote_rows(remote_rows)
        conflicts: list[tuple[Item, int, float]] = []
        for item in local_items:
            match = lookup.get(item.key)
            if match is None or item.rating is None:
                continue
            row_number, row = match
            remote_rating = parse_rating(row[RATING_COLUMN]) if len(row) > RATING_COLUMN else None
            if remote_rating is None or math.isclose(item.rating, remote_rating):
                continue
            conflicts.append((item, row_number, remote_rating))
        return conflicts

    async def resolve(
        self,
        local_items: Sequence[Item],
        remote_rows: Sequence[Sequence[Any]],
    ) -> list[ConflictOutcome]:
        """Overwrite every conflicting remote rating with the local one."""
        outcomes: list[ConflictOutcome] = []
        for item, row_number, remote_rating in self.find_conflicts(local_items, remote_rows):
            logger.info(
                "Rating conflict for %r by %s (row %d): local %s, remote %s; keeping local",
                item.title,
                item.author,
                row_number,
                item.rating,
                remote_rating,
            )
            status = await self.queue.submit(SyncOperation.update_item(self.sheet_name, row_number, item))
            outcomes.append(
                ConflictOutcome(
                    item_id=item.item_id,
                    title=item.title,
                    author=item.author,
                    row_number=row_number,
                    local_rating=float(item.rating),  # type: ignore[arg-type]
                    remote_rating=remote_rating,
                    status=status,
                )
            )

        if outcomes:
            logger.info(
                "Resolved %d conflicts (%d written now)",
                len(outcomes),
                sum(1 for outcome in outcomes if outcome.succeeded),
            )
        return outcomes

    def link_rows(self, local_items: Sequence[Item], remote_rows: Sequence[Sequence[Any]]) -> list[RowMatch]:
        """Remote rows of local items that do not know their row yet."""
        lookup = index_remote_rows(remote_rows)
        return [
            RowMatch(item_id=item.item_id, row_number=lookup[item.key][0])
            for item in local_items
            if item.external_row is None and item.key in lookup
        ]

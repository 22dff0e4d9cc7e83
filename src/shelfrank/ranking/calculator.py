"""Derive ratings and ranking snapshots from the comparison ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from shelfrank.database.schema import utcnow
from shelfrank.exceptions import NoRatedItemsError, SnapshotNotFoundError
from shelfrank.ranking.elo import (
    DEFAULT_RATING,
    K_FACTOR,
    MAX_SANE_RATING,
    MIN_SANE_RATING,
    SCALE,
    IntegrityReport,
    apply_outcome,
    check_integrity,
    initialize_rating,
    rank_items,
)
from shelfrank.ranking.models import RankedItem, RankingSnapshot

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from shelfrank.config.settings import RatingSettings
    from shelfrank.database.item_store import ItemStore
    from shelfrank.database.snapshot_store import SnapshotStore
    from shelfrank.ranking.ledger import ComparisonLedger

logger = logging.getLogger(__name__)

CALCULATION_METHOD = "elo-rating-sort"


@dataclass(frozen=True, slots=True)
class ReplayResult:
    """What a full ledger replay did."""

    processed: int
    skipped: int
    updated_items: int
    changed_ids: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class RankingHistoryStats:
    """Summary of all stored snapshots.

    ``movement`` is the net number of positions each item moved between
    consecutive snapshots, positive when it climbed.
    """

    snapshot_count: int
    oldest: datetime | None
    newest: datetime | None
    movement: dict[int, int] = field(default_factory=dict)


class RankingCalculator:
    """Replays the ledger into item ratings and materialises rankings."""

    def __init__(
        self,
        items: ItemStore,
        ledger: ComparisonLedger,
        snapshots: SnapshotStore,
        settings: RatingSettings | None = None,
    ) -> None:
        self.items = items
        self.ledger = ledger
        self.snapshots = snapshots
        if settings is None:
            self.default_rating = DEFAULT_RATING
            self.k_factor: float = K_FACTOR
            self.scale = SCALE
            self.min_sane_rating = MIN_SANE_RATING
            self.max_sane_rating = MAX_SANE_RATING
        else:
            self.default_rating = settings.default_rating
            self.k_factor = settings.k_factor
            self.scale = settings.scale
            self.min_sane_rating = settings.min_sane_rating
            self.max_sane_rating = settings.max_sane_rating

    def replay_all(self) -> ReplayResult:
        """Recompute ratings by replaying every comparison in insertion order.

        Every item referenced by the ledger starts unrated and receives the
        default rating on its first comparison. Ratings are computed in memory
        and written in one transaction. Items that never took part in a
        comparison keep their stored rating. Items whose every comparison was
        skipped are reset to unrated.
        """
        comparisons = self.ledger.all()
        known = {item.item_id: item for item in self.items.list_items()}
        logger.info("Replaying %d comparisons over %d items", len(comparisons), len(known))

        ratings: dict[int, float | None] = {}
        referenced: set[int] = set()
        processed = 0
        skipped = 0
        for comparison in comparisons:
            referenced.update(item_id for item_id in (comparison.item_a, comparison.item_b) if item_id in known)
            missing = [item_id for item_id in (comparison.item_a, comparison.item_b) if item_id not in known]
            if missing:
                logger.error(
                    "Skipping comparison %s: item(s) %s no longer exist",
                    comparison.comparison_id,
                    ", ".join(str(item_id) for item_id in missing),
                )
                skipped += 1
                continue

            rating_a = initialize_rating(ratings.get(comparison.item_a), default=self.default_rating)
            rating_b = initialize_rating(ratings.get(comparison.item_b), default=self.default_rating)
            new_a, new_b = apply_outcome(
                rating_a,
                rating_b,
                comparison.outcome,
                k_factor=self.k_factor,
                scale=self.scale,
            )
            ratings[comparison.item_a] = float(new_a)
            ratings[comparison.item_b] = float(new_b)
            processed += 1

        rated = len(ratings)
        for item_id in sorted(referenced - ratings.keys()):
            ratings[item_id] = None
        changed = tuple(item_id for item_id, rating in ratings.items() if known[item_id].rating != rating)
        self.items.update_ratings(ratings)

        result = ReplayResult(
            processed=processed,
            skipped=skipped,
            updated_items=rated,
            changed_ids=changed,
        )
        logger.info(
            "Replay finished: %d processed, %d skipped, %d items rated, %d changed",
            result.processed,
            result.skipped,
            result.updated_items,
            len(result.changed_ids),
        )
        return result

    def snapshot(self, metadata: Mapping[str, Any] | None = None) -> RankingSnapshot:
        """Persist the current ordering of rated items.

        Raises:
            NoRatedItemsError: If no item has a rating yet

        """
        items = self.items.list_items()
        ranked = rank_items(items)
        if not ranked:
            raise NoRatedItemsError

        snapshot = RankingSnapshot(
            entries=tuple(RankedItem.from_item(item) for item in ranked),
            created_at=utcnow(),
            metadata={
                **dict(metadata or {}),
                "total_items": len(items),
                "rated_items": len(ranked),
                "unrated_items": len(items) - len(ranked),
                "method": CALCULATION_METHOD,
            },
        )
        return self.snapshots.save(snapshot)

    def latest(self) -> RankingSnapshot | None:
        return self.snapshots.latest()

    def history(self, limit: int | None = None) -> list[RankingSnapshot]:
        return self.snapshots.history(limit)

    def get(self, snapshot_id: int) -> RankingSnapshot:
        snapshot = self.snapshots.get(snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(snapshot_id)
        return snapshot

    def history_stats(self) -> RankingHistoryStats:
        snapshots = list(reversed(self.snapshots.history()))
        if not snapshots:
            return RankingHistoryStats(snapshot_count=0, oldest=None, newest=None)

        movement: dict[int, int] = {}
        for previous, current in zip(snapshots, snapshots[1:], strict=False):
            for position, entry in enumerate(current.entries, start=1):
                before = previous.rank_of(entry.item_id)
                if before is None:
                    continue
                movement[entry.item_id] = movement.get(entry.item_id, 0) + before - position

        return RankingHistoryStats(
            snapshot_count=len(snapshots),
            oldest=snapshots[0].created_at,
            newest=snapshots[-1].created_at,
            movement=movement,
        )

    def integrity(self) -> IntegrityReport:
        """Check stored ratings against the sanity range."""
        return check_integrity(
            self.items.list_items(),
            minimum=self.min_sane_rating,
            maximum=self.max_sane_rating,
        )

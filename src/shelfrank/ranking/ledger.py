"""Append-only ledger of pairwise comparisons.

Each unordered pair of items is compared at most once. Pairs are stored in
canonical order (smaller id first) and the ``UNIQUE (item_a, item_b)``
constraint makes the duplicate check and the insert a single statement.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import duckdb
from ibis import _

from shelfrank.database.schema import (
    COMPARISONS_TABLE,
    ensure_schema,
    from_db_timestamp,
    to_db_timestamp,
    utcnow,
)
from shelfrank.exceptions import (
    ComparisonNotFoundError,
    DuplicatePairError,
    InvalidComparisonError,
    ItemNotFoundError,
)
from shelfrank.ranking.models import Comparison

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from shelfrank.database.duckdb_manager import DuckDBStorageManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LedgerStatistics:
    """Aggregate view of the ledger."""

    total_comparisons: int
    unique_pairs: int
    items_compared: int
    most_active_item: int | None
    most_active_count: int
    frequency: dict[int, int] = field(default_factory=dict)


def canonical_pair(item_a: int, item_b: int) -> tuple[int, int]:
    return (item_a, item_b) if item_a < item_b else (item_b, item_a)


def _row_to_comparison(row: Mapping[str, Any]) -> Comparison:
    return Comparison(
        item_a=int(row["item_a"]),
        item_b=int(row["item_b"]),
        winner=int(row["winner"]),
        created_at=from_db_timestamp(row["created_at"]),
        comparison_id=int(row["comparison_id"]),
    )


class ComparisonLedger:
    """Records user decisions. Never touches ratings."""

    def __init__(
        self,
        storage: DuckDBStorageManager,
        *,
        item_exists: Callable[[int], bool] | None = None,
    ) -> None:
        """Initialize the ledger.

        Args:
            storage: The central DuckDB storage manager.
            item_exists: Predicate used to reject comparisons of unknown items.
                When omitted, item ids are not checked.

        """
        self.storage = storage
        self._item_exists = item_exists
        ensure_schema(storage)

    def record(self, item_a: int, item_b: int, winner: int) -> Comparison:
        """Record that ``winner`` was preferred in the pair (item_a, item_b).

        Raises:
            InvalidComparisonError: Self-comparison or winner outside the pair
            ItemNotFoundError: Either item does not exist
            DuplicatePairError: The unordered pair was already compared

        """
        if item_a == item_b:
            raise InvalidComparisonError(item_a, item_b, winner, "an item cannot be compared with itself")
        if winner not in (item_a, item_b):
            raise InvalidComparisonError(item_a, item_b, winner, "winner must be one of the compared items")
        if self._item_exists is not None:
            for item_id in (item_a, item_b):
                if not self._item_exists(item_id):
                    raise ItemNotFoundError(item_id)

        first, second = canonical_pair(item_a, item_b)
        created_at = utcnow()
        try:
            row = self.storage.execute_query_single(
                f"""
                INSERT INTO {COMPARISONS_TABLE} (item_a, item_b, winner, created_at)
                VALUES (?, ?, ?, ?)
                RETURNING comparison_id
                """,
                [first, second, winner, to_db_timestamp(created_at)],
            )
        except duckdb.ConstraintException as exc:
            raise DuplicatePairError(first, second) from exc

        comparison = Comparison(
            item_a=first,
            item_b=second,
            winner=winner,
            created_at=created_at,
            comparison_id=int(row[0]),  # type: ignore[index]
        )
        logger.info("Recorded comparison %s: %s beat %s", comparison.comparison_id, winner, comparison.loser)
        return comparison

    def all(self) -> list[Comparison]:
        """Every comparison in insertion order."""
        table = self.storage.read_table(COMPARISONS_TABLE)
        rows = table.order_by(_.comparison_id).to_pyarrow().to_pylist()
        return [_row_to_comparison(row) for row in rows]

    def pair(self, item_a: int, item_b: int) -> Comparison | None:
        first, second = canonical_pair(item_a, item_b)
        table = self.storage.read_table(COMPARISONS_TABLE)
        rows = table.filter((_.item_a == first) & (_.item_b == second)).limit(1).to_pyarrow().to_pylist()
        return _row_to_comparison(rows[0]) if rows else None

    def history(self, item_id: int, limit: int | None = None) -> list[Comparison]:
        """Comparisons involving ``item_id``, newest first."""
        table = self.storage.read_table(COMPARISONS_TABLE)
        query = table.filter((_.item_a == item_id) | (_.item_b == item_id)).order_by(
            [_.created_at.desc(), _.comparison_id.desc()]
        )
        if limit is not None:
            query = query.limit(limit)
        return [_row_to_comparison(row) for row in query.to_pyarrow().to_pylist()]

    def remove(self, item_a: int, item_b: int) -> Comparison:
        """Delete the comparison of a pair so it can be compared again.

        Raises:
            ComparisonNotFoundError: If the pair was never compared

        """
        existing = self.pair(item_a, item_b)
        if existing is None:
            raise ComparisonNotFoundError(item_a, item_b)
        self.storage.execute_sql(
            f"DELETE FROM {COMPARISONS_TABLE} WHERE comparison_id = ?",
            [existing.comparison_id],
        )
        logger.info("Removed comparison %s (%s vs %s)", existing.comparison_id, existing.item_a, existing.item_b)
        return existing

    def count(self) -> int:
        return int(self.storage.read_table(COMPARISONS_TABLE).count().execute())

    def counts_by_item(self) -> dict[int, int]:
        """Number of comparisons each item took part in."""
        counter: Counter[int] = Counter()
        for comparison in self.all():
            counter[comparison.item_a] += 1
            counter[comparison.item_b] += 1
        return dict(counter)

    def statistics(self) -> LedgerStatistics:
        """Totals and the most frequently compared item.

        When several items share the highest count, the one encountered first
        while walking the ledger in insertion order is reported.
        """
        comparisons = self.all()
        frequency: dict[int, int] = {}
        for comparison in comparisons:
            for item_id in (comparison.item_a, comparison.item_b):
                frequency[item_id] = frequency.get(item_id, 0) + 1

        most_active_item: int | None = None
        most_active_count = 0
        for item_id, count in frequency.items():
            if count > most_active_count:
                most_active_item = item_id
                most_active_count = count

        return LedgerStatistics(
            total_comparisons=len(comparisons),
            unique_pairs=len({(c.item_a, c.item_b) for c in comparisons}),
            items_compared=len(frequency),
            most_active_item=most_active_item,
            most_active_count=most_active_count,
            frequency=frequency,
        )

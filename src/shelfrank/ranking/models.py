"""Domain records for items, comparisons and ranking snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any


def composite_key(title: str, author: str) -> str:
    """Case-insensitive identity shared with the remote store."""
    return f"{title.strip().lower()}|{author.strip().lower()}"


@dataclass(frozen=True, slots=True)
class Item:
    """A ranked entity of the collection."""

    item_id: int
    title: str
    author: str
    category: str | None = None
    tags: tuple[str, ...] = ()
    rating: float | None = None
    read_dates: tuple[str, ...] = ()
    external_row: int | None = None

    @property
    def key(self) -> str:
        return composite_key(self.title, self.author)

    @property
    def last_read(self) -> str | None:
        """Most recent read date. ISO dates sort lexically."""
        return max(self.read_dates) if self.read_dates else None

    def with_rating(self, rating: float | None) -> Item:
        return replace(self, rating=rating)


@dataclass(frozen=True, slots=True)
class ItemDraft:
    """An item that has not been stored yet (no id)."""

    title: str
    author: str
    category: str | None = None
    tags: tuple[str, ...] = ()
    read_dates: tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return composite_key(self.title, self.author)


@dataclass(frozen=True, slots=True)
class Comparison:
    """Immutable record of a pairwise preference.

    ``item_a`` is always the smaller id.
    """

    item_a: int
    item_b: int
    winner: int
    created_at: datetime
    comparison_id: int | None = None

    @property
    def loser(self) -> int:
        return self.item_b if self.winner == self.item_a else self.item_a

    @property
    def outcome(self) -> float:
        """Score of ``item_a``: 1.0 when it won, 0.0 otherwise."""
        return 1.0 if self.winner == self.item_a else 0.0

    def involves(self, first: int, second: int | None = None) -> bool:
        pair = (self.item_a, self.item_b)
        if second is None:
            return first in pair
        return first in pair and second in pair


@dataclass(frozen=True, slots=True)
class RankedItem:
    """Copy of an item as it stood when a snapshot was taken."""

    item_id: int
    title: str
    author: str
    rating: float

    @classmethod
    def from_item(cls, item: Item) -> RankedItem:
        if item.rating is None:
            msg = f"Item {item.item_id} ({item.title}) has no rating"
            raise ValueError(msg)
        return cls(item_id=item.item_id, title=item.title, author=item.author, rating=float(item.rating))


@dataclass(frozen=True, slots=True)
class RankingSnapshot:
    """Point-in-time ordering of all rated items, highest rating first."""

    entries: tuple[RankedItem, ...]
    created_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)
    snapshot_id: int | None = None

    def rank_of(self, item_id: int) -> int | None:
        """1-based position of ``item_id``, or None when absent."""
        for index, entry in enumerate(self.entries):
            if entry.item_id == item_id:
                return index + 1
        return None

    def item_at(self, position: int) -> RankedItem | None:
        """Entry at the 1-based ``position``, or None when out of range."""
        if 1 <= position <= len(self.entries):
            return self.entries[position - 1]
        return None

    def top(self, n: int) -> tuple[RankedItem, ...]:
        return self.entries[: max(n, 0)]

    def stats(self) -> dict[str, float | int]:
        if not self.entries:
            return {"total_items": 0}
        ratings = [entry.rating for entry in self.entries]
        highest = max(ratings)
        lowest = min(ratings)
        return {
            "total_items": len(ratings),
            "highest_rating": highest,
            "lowest_rating": lowest,
            "average_rating": round(sum(ratings) / len(ratings), 2),
            "rating_range": highest - lowest,
        }

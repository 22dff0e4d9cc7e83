"""Persistence for collection items."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ibis import _

from shelfrank.database.duckdb_manager import DuckDBStorageManager
from shelfrank.database.schema import ITEMS_TABLE, ensure_schema, to_db_timestamp, utcnow
from shelfrank.exceptions import InvalidItemError, ItemNotFoundError
from shelfrank.ranking.models import Item, ItemDraft

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ImportResult:
    """Counts reported by :meth:`ItemStore.import_items`."""

    total: int
    added: int
    updated: int
    skipped: int
    errors: int

    @property
    def succeeded(self) -> int:
        return self.added + self.updated


def validate_draft(draft: ItemDraft) -> list[str]:
    """Return a list of problems with ``draft`` (empty when valid)."""
    errors: list[str] = []
    if not isinstance(draft.title, str) or not draft.title.strip():
        errors.append("Title is required and must be a non-empty string")
    if not isinstance(draft.author, str) or not draft.author.strip():
        errors.append("Author is required and must be a non-empty string")
    if draft.category is not None and not isinstance(draft.category, str):
        errors.append("Category must be a string if provided")
    for index, value in enumerate(draft.read_dates):
        if not isinstance(value, str):
            errors.append(f"read_dates[{index}] must be a string")
    for index, value in enumerate(draft.tags):
        if not isinstance(value, str):
            errors.append(f"tags[{index}] must be a string")
    return errors


def _clean_strings(values: Iterable[str]) -> tuple[str, ...]:
    cleaned: list[str] = []
    for value in values:
        value = value.strip()
        if value and value not in cleaned:
            cleaned.append(value)
    return tuple(cleaned)


def _row_to_item(row: Mapping[str, Any]) -> Item:
    return Item(
        item_id=int(row["item_id"]),
        title=row["title"],
        author=row["author"],
        category=row["category"],
        tags=tuple(json.loads(row["tags"])),
        rating=None if row["rating"] is None else float(row["rating"]),
        read_dates=tuple(json.loads(row["read_dates"])),
        external_row=None if row["external_row"] is None else int(row["external_row"]),
    )


class ItemStore:
    """DuckDB-backed item collection."""

    def __init__(self, storage: DuckDBStorageManager) -> None:
        self.storage = storage
        ensure_schema(storage)

    def add_item(self, draft: ItemDraft) -> Item:
        """Validate and store a new item, assigning the next id.

        Raises:
            InvalidItemError: If the draft fails validation

        """
        errors = validate_draft(draft)
        if errors:
            raise InvalidItemError(errors)

        now = to_db_timestamp(utcnow())
        row = self.storage.execute_query_single(
            f"""
            INSERT INTO {ITEMS_TABLE}
                (title, author, category, tags, rating, read_dates, external_row, created_at, updated_at)
            VALUES (?, ?, ?, ?, NULL, ?, NULL, ?, ?)
            RETURNING item_id
            """,
            [
                draft.title.strip(),
                draft.author.strip(),
                draft.category.strip() if draft.category else None,
                json.dumps(list(_clean_strings(draft.tags))),
                json.dumps(list(_clean_strings(draft.read_dates))),
                now,
                now,
            ],
        )
        item_id = int(row[0])  # type: ignore[index]
        logger.debug("Added item %s: %s by %s", item_id, draft.title, draft.author)
        return self.get_item(item_id)

    def find_item(self, item_id: int) -> Item | None:
        items = self.storage.read_table(ITEMS_TABLE)
        rows = items.filter(_.item_id == item_id).limit(1).to_pyarrow().to_pylist()
        return _row_to_item(rows[0]) if rows else None

    def get_item(self, item_id: int) -> Item:
        """Return the item with ``item_id``.

        Raises:
            ItemNotFoundError: If no such item exists

        """
        item = self.find_item(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def exists(self, item_id: int) -> bool:
        row = self.storage.execute_query_single(
            f"SELECT 1 FROM {ITEMS_TABLE} WHERE item_id = ?",
            [item_id],
        )
        return row is not None

    def list_items(self) -> list[Item]:
        """All items, ordered by id."""
        items = self.storage.read_table(ITEMS_TABLE)
        return [_row_to_item(row) for row in items.order_by(_.item_id).to_pyarrow().to_pylist()]

    def find_by_key(self, key: str) -> Item | None:
        """Look up an item by its composite title|author key."""
        for item in self.list_items():
            if item.key == key:
                return item
        return None

    def delete_item(self, item_id: int) -> None:
        """Remove an item. Comparisons that reference it are left in the ledger."""
        if not self.exists(item_id):
            raise ItemNotFoundError(item_id)
        self.storage.execute_sql(f"DELETE FROM {ITEMS_TABLE} WHERE item_id = ?", [item_id])
        logger.info("Deleted item %s", item_id)

    def counts(self) -> tuple[int, int]:
        """Return (total items, items with a rating)."""
        items = self.storage.read_table(ITEMS_TABLE)
        total = int(items.count().execute())
        rated = int(items.filter(_.rating.notnull()).count().execute())
        return total, rated

    def update_ratings(self, ratings: Mapping[int, float | None]) -> None:
        """Persist several ratings in a single transaction. ``None`` marks an item unrated."""
        if not ratings:
            return
        now = to_db_timestamp(utcnow())
        with self.storage.transaction() as conn:
            for item_id, rating in ratings.items():
                conn.execute(
                    f"UPDATE {ITEMS_TABLE} SET rating = ?, updated_at = ? WHERE item_id = ?",
                    [None if rating is None else float(rating), now, item_id],
                )
        logger.debug("Updated ratings for %d items", len(ratings))

    def assign_external_row(self, item_id: int, row_number: int) -> bool:
        """Record the remote row of an item, only if it has none yet.

        Returns:
            True when the reference was assigned

        """
        row = self.storage.execute_query_single(
            f"""
            UPDATE {ITEMS_TABLE}
            SET external_row = ?, updated_at = ?
            WHERE item_id = ? AND external_row IS NULL
            RETURNING item_id
            """,
            [row_number, to_db_timestamp(utcnow()), item_id],
        )
        return row is not None

    def merge_read_dates(self, item: Item, dates: Iterable[str]) -> Item:
        """Add read dates the item does not have yet."""
        new_dates = [date for date in _clean_strings(dates) if date not in item.read_dates]
        if not new_dates:
            return item
        merged = [*item.read_dates, *new_dates]
        self.storage.execute_sql(
            f"UPDATE {ITEMS_TABLE} SET read_dates = ?, updated_at = ? WHERE item_id = ?",
            [json.dumps(merged), to_db_timestamp(utcnow()), item.item_id],
        )
        return self.get_item(item.item_id)

    def import_items(self, drafts: Sequence[ItemDraft]) -> ImportResult:
        """Import drafts, merging read dates into items with the same title and author."""
        logger.info("Importing %d items", len(drafts))
        existing = {item.key: item for item in self.list_items()}

        added = updated = skipped = errors = 0
        for draft in drafts:
            problems = validate_draft(draft)
            if problems:
                logger.error("Skipping invalid item %r by %r: %s", draft.title, draft.author, "; ".join(problems))
                errors += 1
                continue

            current = existing.get(draft.key)
            if current is None:
                existing[draft.key] = self.add_item(draft)
                added += 1
                continue

            merged = self.merge_read_dates(current, draft.read_dates)
            if merged is current:
                skipped += 1
            else:
                existing[draft.key] = merged
                updated += 1

        result = ImportResult(total=len(drafts), added=added, updated=updated, skipped=skipped, errors=errors)
        logger.info(
            "Import finished: %d added, %d updated, %d unchanged, %d errors",
            result.added,
            result.updated,
            result.skipped,
            result.errors,
        )
        return result

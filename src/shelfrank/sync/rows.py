"""Conversion between items and spreadsheet rows.

Remote rows use a fixed column order: title, author, most recent read date,
category, rating.
"""

from __future__ import annotations

import logging
import math
import re
from typing import TYPE_CHECKING, Any

from shelfrank.ranking.elo import rank_items
from shelfrank.ranking.models import ItemDraft, composite_key

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from shelfrank.ranking.models import Item

logger = logging.getLogger(__name__)

ROW_COLUMNS = ("Title", "Author", "Date Read", "Category", "Rating")
FIRST_COLUMN = "A"
LAST_COLUMN = "E"
RATING_COLUMN = ROW_COLUMNS.index("Rating")
UNRATED = "Unrated"

EXPORT_HEADERS = (
    "Title",
    "Author",
    "Genre",
    "Dates Read",
    "Read Count",
    "Elo Rating",
    "Comparisons",
    "Rating Rank",
    "Book ID",
)

_RANGE_RE = re.compile(r"\$?[A-Z]+\$?(?P<start>\d+)(?::\$?[A-Z]+\$?(?P<end>\d+))?$")

Cell = str | int | float


def item_to_row(item: Item) -> list[Cell]:
    """Serialize ``item`` into its remote row."""
    return [
        item.title,
        item.author,
        item.last_read or "",
        item.category or "",
        item.rating if item.rating is not None else UNRATED,
    ]


def row_key(row: Sequence[Any]) -> str | None:
    """Composite key of a remote row, or None when title and author are blank."""
    title = str(row[0]).strip() if len(row) > 0 and row[0] is not None else ""
    author = str(row[1]).strip() if len(row) > 1 and row[1] is not None else ""
    if not title and not author:
        return None
    return composite_key(title, author)


def parse_rating(value: Any) -> float | None:
    """Read a rating cell. Blank, "Unrated" and unparseable cells have no value."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    text = str(value).strip()
    if not text or text.lower() == UNRATED.lower():
        return None
    try:
        return float(text)
    except ValueError:
        logger.debug("Ignoring non-numeric rating cell %r", value)
        return None


def quote_sheet_name(sheet: str) -> str:
    if re.fullmatch(r"[A-Za-z0-9_]+", sheet):
        return sheet
    escaped = sheet.replace("'", "''")
    return f"'{escaped}'"


def row_range(sheet: str, row_number: int) -> str:
    """A1 range covering one full item row, e.g. ``Sheet1!A7:E7``."""
    if row_number < 1:
        msg = f"Sheet rows are 1-based, got {row_number}"
        raise ValueError(msg)
    return f"{quote_sheet_name(sheet)}!{FIRST_COLUMN}{row_number}:{LAST_COLUMN}{row_number}"


def parse_row_span(a1_range: str) -> tuple[int, int] | None:
    """First and last row numbers of an A1 range such as ``Sheet1!A7:E9``."""
    cells = a1_range.rsplit("!", 1)[-1]
    match = _RANGE_RE.match(cells)
    if match is None:
        return None
    start = int(match.group("start"))
    end = int(match.group("end") or start)
    return start, end


def parse_sheet_rows(rows: Sequence[Sequence[Any]]) -> list[ItemDraft]:
    """Turn raw sheet rows into item drafts.

    The first row is a header. Rows with fewer than two cells or with a blank
    title and author are skipped. Rows sharing a composite key are merged into
    one draft holding every distinct read date.
    """
    if len(rows) < 2:
        logger.warning("Sheet data is empty or has no data rows")
        return []

    drafts: dict[str, ItemDraft] = {}
    for index, row in enumerate(rows[1:], start=2):
        if len(row) < 2:
            logger.warning("Skipping invalid row %d: %r", index, row)
            continue
        key = row_key(row)
        if key is None:
            logger.warning("Skipping empty row %d", index)
            continue

        title = str(row[0] or "").strip()
        author = str(row[1] or "").strip()
        date_read = str(row[2]).strip() if len(row) > 2 and row[2] is not None else ""
        category = str(row[3]).strip() if len(row) > 3 and row[3] is not None else ""

        existing = drafts.get(key)
        if existing is None:
            drafts[key] = ItemDraft(
                title=title,
                author=author,
                category=category or None,
                read_dates=(date_read,) if date_read else (),
            )
            continue

        if date_read and date_read not in existing.read_dates:
            drafts[key] = ItemDraft(
                title=existing.title,
                author=existing.author,
                category=existing.category or category or None,
                tags=existing.tags,
                read_dates=(*existing.read_dates, date_read),
            )
            logger.debug("Added read date %s to %s by %s", date_read, title, author)

    logger.info("Parsed %d unique items from %d sheet rows", len(drafts), len(rows) - 1)
    return list(drafts.values())


def export_rows(items: Iterable[Item], comparison_counts: Mapping[int, int]) -> list[list[Cell]]:
    """Spreadsheet export: header, rated items by rank, then unrated items."""
    items = list(items)
    ranked = rank_items(items)
    ranked_ids = {item.item_id for item in ranked}
    unrated = [item for item in items if item.item_id not in ranked_ids]

    table: list[list[Cell]] = [list(EXPORT_HEADERS)]
    for position, item in enumerate(ranked, start=1):
        table.append(
            [
                item.title,
                item.author,
                item.category or "",
                "; ".join(item.read_dates),
                len(item.read_dates),
                round(item.rating),  # type: ignore[arg-type]
                comparison_counts.get(item.item_id, 0),
                position,
                item.item_id,
            ]
        )
    for item in unrated:
        table.append(
            [
                item.title,
                item.author,
                item.category or "",
                "; ".join(item.read_dates),
                len(item.read_dates),
                UNRATED,
                comparison_counts.get(item.item_id, 0),
                "N/A",
                item.item_id,
            ]
        )
    logger.info("Prepared export of %d items (%d rated)", len(items), len(ranked))
    return table

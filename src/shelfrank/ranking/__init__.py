"""Elo rating math and the domain records it operates on.

The stateful parts live in :mod:`shelfrank.ranking.ledger` and
:mod:`shelfrank.ranking.calculator`.
"""

from shelfrank.ranking.elo import (
    DEFAULT_RATING,
    K_FACTOR,
    SCALE,
    IntegrityReport,
    apply_outcome,
    check_integrity,
    expected_score,
    initialize_rating,
    is_valid_rating,
    rank_items,
)
from shelfrank.ranking.models import Comparison, Item, ItemDraft, RankedItem, RankingSnapshot, composite_key

__all__ = [
    "DEFAULT_RATING",
    "K_FACTOR",
    "SCALE",
    "Comparison",
    "IntegrityReport",
    "Item",
    "ItemDraft",
    "RankedItem",
    "RankingSnapshot",
    "apply_outcome",
    "check_integrity",
    "composite_key",
    "expected_score",
    "initialize_rating",
    "is_valid_rating",
    "rank_items",
]

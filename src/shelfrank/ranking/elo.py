"""Elo math for pairwise item comparisons.

Pure functions only; nothing in here touches storage.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from shelfrank.exceptions import ValidationError

if TYPE_CHECKING:
    from shelfrank.ranking.models import Item

logger = logging.getLogger(__name__)

DEFAULT_RATING = 1500.0
K_FACTOR = 32
SCALE = 400.0

# Sanity range used by integrity checks only. Updates are never clamped.
MIN_SANE_RATING = 0.0
MAX_SANE_RATING = 4000.0

VALID_OUTCOMES = (0.0, 0.5, 1.0)


def expected_score(rating_a: float, rating_b: float, *, scale: float = SCALE) -> float:
    """Probability that A beats B."""
    return 1.0 / (1.0 + 10.0 ** ((rating_b - rating_a) / scale))


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def apply_outcome(
    rating_a: float,
    rating_b: float,
    outcome: float,
    *,
    k_factor: float = K_FACTOR,
    scale: float = SCALE,
) -> tuple[int, int]:
    """Compute new ratings after A and B met.

    Args:
        rating_a: Current rating of A
        rating_b: Current rating of B
        outcome: 1 if A won, 0 if B won, 0.5 for a draw
        k_factor: Maximum movement for a single comparison
        scale: Logistic scale of the expected-score curve

    Returns:
        (new_rating_a, new_rating_b), each rounded to the nearest integer

    Raises:
        ValidationError: If ``outcome`` is not one of 0, 0.5 or 1

    """
    if outcome not in VALID_OUTCOMES:
        msg = f"Outcome must be one of {VALID_OUTCOMES}, got {outcome!r}"
        raise ValidationError(msg)

    expected_a = expected_score(rating_a, rating_b, scale=scale)
    expected_b = 1.0 - expected_a

    new_rating_a = rating_a + k_factor * (outcome - expected_a)
    new_rating_b = rating_b + k_factor * ((1.0 - outcome) - expected_b)
    return _round_half_up(new_rating_a), _round_half_up(new_rating_b)


def has_rating(rating: float | None) -> bool:
    """Return True when ``rating`` is a real number (not unset, not NaN)."""
    return isinstance(rating, (int, float)) and not isinstance(rating, bool) and not math.isnan(rating)


def initialize_rating(rating: float | None, *, default: float = DEFAULT_RATING) -> float:
    """Return ``rating`` unchanged when set, ``default`` otherwise."""
    if has_rating(rating):
        return float(rating)  # type: ignore[arg-type]
    return default


def is_valid_rating(
    rating: float | None,
    *,
    minimum: float = MIN_SANE_RATING,
    maximum: float = MAX_SANE_RATING,
) -> bool:
    """Check a rating against the sanity range."""
    return has_rating(rating) and minimum <= rating <= maximum  # type: ignore[operator]


def rank_items(items: Iterable[Item]) -> list[Item]:
    """Rated items sorted by rating, highest first.

    The sort is stable: items with equal ratings keep their input order.
    """
    rated = [item for item in items if has_rating(item.rating)]
    return sorted(rated, key=lambda item: item.rating, reverse=True)


@dataclass(frozen=True, slots=True)
class IntegrityReport:
    """Summary of the ratings currently stored for a collection."""

    total_items: int
    rated_items: int
    unrated_items: int
    valid_ratings: int
    invalid_ratings: int
    min_rating: float | None
    max_rating: float | None
    average_rating: float

    @property
    def ok(self) -> bool:
        return self.invalid_ratings == 0


def check_integrity(
    items: Sequence[Item],
    *,
    minimum: float = MIN_SANE_RATING,
    maximum: float = MAX_SANE_RATING,
) -> IntegrityReport:
    """Count rated, unrated and out-of-range ratings.

    Unrated items are normal for freshly imported collections.
    """
    valid: list[float] = []
    invalid = 0
    unrated = 0
    for item in items:
        if item.rating is None:
            unrated += 1
        elif is_valid_rating(item.rating, minimum=minimum, maximum=maximum):
            valid.append(float(item.rating))
        else:
            invalid += 1
            logger.warning("Invalid rating for item %s %r: %s", item.item_id, item.title, item.rating)

    return IntegrityReport(
        total_items=len(items),
        rated_items=len(items) - unrated,
        unrated_items=unrated,
        valid_ratings=len(valid),
        invalid_ratings=invalid,
        min_rating=min(valid) if valid else None,
        max_rating=max(valid) if valid else None,
        average_rating=sum(valid) / len(valid) if valid else 0.0,
    )

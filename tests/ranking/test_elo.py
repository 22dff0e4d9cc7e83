"""Tests for the Elo rating math."""

import math

import pytest

from shelfrank.exceptions import ValidationError
from shelfrank.ranking.elo import (
    DEFAULT_RATING,
    apply_outcome,
    check_integrity,
    expected_score,
    initialize_rating,
    is_valid_rating,
    rank_items,
)
from shelfrank.ranking.models import Item


def _item(item_id, rating=None, title=None):
    return Item(item_id=item_id, title=title or f"Book {item_id}", author="Author", rating=rating)


class TestExpectedScore:
    """Expected score of one item against another."""

    def test_equal_ratings_give_half(self):
        assert expected_score(1500, 1500) == pytest.approx(0.5)

    @pytest.mark.parametrize(("a", "b"), [(1500, 1500), (1600, 1400), (1200, 2000), (0, 4000)])
    def test_scores_are_complementary(self, a, b):
        """Both sides' expectations add up to one."""
        assert expected_score(a, b) + expected_score(b, a) == pytest.approx(1.0)

    def test_stronger_item_is_favoured(self):
        assert expected_score(1700, 1500) > 0.5
        assert 0.0 < expected_score(1000, 3000) < 0.5

    def test_400_point_gap_is_ten_to_one(self):
        assert expected_score(1900, 1500) == pytest.approx(10 / 11)


class TestApplyOutcome:
    """Rating updates after a single comparison."""

    def test_first_comparison_between_defaults(self):
        assert apply_outcome(1500, 1500, 1) == (1516, 1484)

    def test_loss_mirrors_win(self):
        assert apply_outcome(1500, 1500, 0) == (1484, 1516)

    def test_draw_between_equals_changes_nothing(self):
        assert apply_outcome(1500, 1500, 0.5) == (1500, 1500)

    def test_returns_integers(self):
        new_a, new_b = apply_outcome(1516, 1484, 1)
        assert isinstance(new_a, int)
        assert isinstance(new_b, int)

    def test_upset_moves_more_than_expected_win(self):
        favourite_win = apply_outcome(1800, 1500, 1)[0] - 1800
        underdog_win = apply_outcome(1500, 1800, 1)[0] - 1500
        assert underdog_win > favourite_win > 0

    def test_custom_k_factor(self):
        assert apply_outcome(1500, 1500, 1, k_factor=16) == (1508, 1492)

    def test_half_rounds_up(self):
        # 1500 + 1 * (1 - 0.5) = 1500.5
        assert apply_outcome(1500, 1500, 1, k_factor=1) == (1501, 1500)

    @pytest.mark.parametrize("outcome", [2, -1, 0.25, "1"])
    def test_rejects_invalid_outcome(self, outcome):
        with pytest.raises(ValidationError):
            apply_outcome(1500, 1500, outcome)


class TestInitializeRating:
    """Lazy initialisation never overwrites an existing rating."""

    def test_unset_gets_default(self):
        assert initialize_rating(None) == DEFAULT_RATING

    def test_nan_counts_as_unset(self):
        assert initialize_rating(math.nan) == DEFAULT_RATING

    def test_existing_rating_is_kept(self):
        assert initialize_rating(1623.0) == 1623.0

    def test_zero_is_a_rating(self):
        assert initialize_rating(0.0, default=1200.0) == 0.0

    def test_custom_default(self):
        assert initialize_rating(None, default=1000.0) == 1000.0


class TestValidityAndOrdering:
    """Sanity range checks and ordering of items."""

    @pytest.mark.parametrize(("value", "valid"), [(0, True), (4000, True), (1500.5, True), (-1, False), (4001, False), (None, False)])
    def test_is_valid_rating(self, value, valid):
        assert is_valid_rating(value) is valid

    def test_rank_items_sorts_descending_and_drops_unrated(self):
        items = [_item(1, 1400.0), _item(2, None), _item(3, 1600.0), _item(4, 1500.0)]
        assert [item.item_id for item in rank_items(items)] == [3, 4, 1]

    def test_rank_items_keeps_input_order_for_ties(self):
        items = [_item(1, 1500.0), _item(2, 1500.0), _item(3, 1500.0)]
        assert [item.item_id for item in rank_items(items)] == [1, 2, 3]

    def test_rank_items_empty(self):
        assert rank_items([]) == []


class TestCheckIntegrity:
    """Integrity report over stored ratings."""

    def test_counts_rated_unrated_and_invalid(self):
        items = [_item(1, 1500.0), _item(2, None), _item(3, 5000.0), _item(4, 1300.0)]
        report = check_integrity(items)

        assert report.total_items == 4
        assert report.rated_items == 3
        assert report.unrated_items == 1
        assert report.valid_ratings == 2
        assert report.invalid_ratings == 1
        assert report.min_rating == 1300.0
        assert report.max_rating == 1500.0
        assert report.average_rating == pytest.approx(1400.0)
        assert not report.ok

    def test_all_unrated_is_ok(self):
        report = check_integrity([_item(1), _item(2)])
        assert report.ok
        assert report.min_rating is None
        assert report.average_rating == 0.0

"""Centralized exceptions for the shelfrank engine."""

from __future__ import annotations


class ShelfRankError(Exception):
    """Base exception for all shelfrank errors."""


class ValidationError(ShelfRankError):
    """Raised when input to an engine operation is malformed."""


class InvalidComparisonError(ValidationError):
    """Raised for self-comparisons or a winner outside the compared pair."""

    def __init__(self, item_a: int, item_b: int, winner: int, reason: str) -> None:
        self.item_a = item_a
        self.item_b = item_b
        self.winner = winner
        self.reason = reason
        super().__init__(f"Invalid comparison ({item_a}, {item_b}, winner={winner}): {reason}")


class InvalidItemError(ValidationError):
    """Raised when an item draft fails validation."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__(f"Invalid item: {'; '.join(errors)}")


class DuplicatePairError(ShelfRankError):
    """Raised when an unordered pair has already been compared."""

    def __init__(self, item_a: int, item_b: int) -> None:
        self.item_a = min(item_a, item_b)
        self.item_b = max(item_a, item_b)
        super().__init__(f"Items {self.item_a} and {self.item_b} have already been compared")


class NotFoundError(ShelfRankError):
    """Base for missing item, comparison or snapshot references."""


class ItemNotFoundError(NotFoundError):
    """Raised when an item id does not exist."""

    def __init__(self, item_id: int) -> None:
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found")


class ComparisonNotFoundError(NotFoundError):
    """Raised when no comparison exists for a pair."""

    def __init__(self, item_a: int, item_b: int) -> None:
        self.item_a = min(item_a, item_b)
        self.item_b = max(item_a, item_b)
        super().__init__(f"No comparison recorded for items {self.item_a} and {self.item_b}")


class SnapshotNotFoundError(NotFoundError):
    """Raised when a ranking snapshot id does not exist."""

    def __init__(self, snapshot_id: int) -> None:
        self.snapshot_id = snapshot_id
        super().__init__(f"Ranking snapshot {snapshot_id} not found")


class NoRatedItemsError(ShelfRankError):
    """Raised when a snapshot is requested but no item has a rating yet."""

    def __init__(self) -> None:
        super().__init__("No items with ratings found. Replay the comparison ledger first.")


class RemoteStoreError(ShelfRankError):
    """Base exception for failures reported by the remote record store."""

    retryable = False

    def __init__(self, message: str, *, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class AuthError(RemoteStoreError):
    """401/403 from the remote store. Held until the user re-authenticates."""


class RemoteNotFoundError(RemoteStoreError):
    """The spreadsheet, sheet or range does not exist."""


class TransientError(RemoteStoreError):
    """Network failure, timeout, throttling or 5xx. Safe to retry."""

    retryable = True


__all__ = [
    "AuthError",
    "ComparisonNotFoundError",
    "DuplicatePairError",
    "InvalidComparisonError",
    "InvalidItemError",
    "ItemNotFoundError",
    "NoRatedItemsError",
    "NotFoundError",
    "RemoteNotFoundError",
    "RemoteStoreError",
    "ShelfRankError",
    "SnapshotNotFoundError",
    "TransientError",
    "ValidationError",
]

"""shelfrank - pairwise Elo ranking engine with offline-tolerant spreadsheet sync."""

from shelfrank.app import ShelfRank

__version__ = "0.1.0"

__all__ = ["ShelfRank", "__version__"]

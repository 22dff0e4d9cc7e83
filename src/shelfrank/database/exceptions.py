"""Custom exceptions for database operations."""

from shelfrank.exceptions import ShelfRankError


class DatabaseError(ShelfRankError):
    """Base exception for database-related errors."""


class TableNotFoundError(DatabaseError):
    """Raised when a table is not found in the database."""

    def __init__(self, table_name: str) -> None:
        self.table_name = table_name
        super().__init__(f"Table '{table_name}' not found in database")


class InvalidIdentifierError(DatabaseError):
    """Raised when a table, column or sequence name cannot be quoted safely."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Invalid SQL identifier: '{identifier}'")


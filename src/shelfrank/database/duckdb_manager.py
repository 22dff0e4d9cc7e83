"""Centralized storage manager for DuckDB + Ibis operations."""

from __future__ import annotations

import contextlib
import logging
import re
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Self

import duckdb
import ibis

from shelfrank.database.exceptions import InvalidIdentifierError, TableNotFoundError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from ibis.expr.types import Table

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_identifier(identifier: str) -> str:
    """Quote a SQL identifier after checking it is a plain name."""
    if not _IDENTIFIER_RE.match(identifier):
        raise InvalidIdentifierError(identifier)
    return f'"{identifier}"'


class DuckDBStorageManager:
    """Centralized DuckDB connection + Ibis helpers.

    Manages database connections on a per-thread basis. All components of one
    application share a single manager so they see the same connection and
    transactions.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        """Initialize storage manager.

        Args:
            db_path: DuckDB file. ``None`` keeps everything in memory.

        """
        self.db_path = db_path
        self._thread_local = threading.local()
        if db_path is not None:
            db_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info("DuckDBStorageManager initialized (db=%s)", "memory" if db_path is None else db_path)

    @classmethod
    def from_setting(cls, path: str, base_dir: Path | None = None) -> Self:
        """Build a manager from a ``database.path`` config value."""
        if path == MEMORY_DATABASE:
            return cls(db_path=None)
        db_path = Path(path)
        if not db_path.is_absolute() and base_dir is not None:
            db_path = base_dir / db_path
        return cls(db_path=db_path)

    def _get_thread_connections(self) -> tuple[duckdb.DuckDBPyConnection, ibis.BaseBackend]:
        """Get or create a connection and Ibis backend for the current thread."""
        ibis_conn = getattr(self._thread_local, "ibis_conn", None)
        if ibis_conn is None:
            db_str = str(self.db_path) if self.db_path else MEMORY_DATABASE
            ibis_conn = ibis.duckdb.connect(database=db_str, read_only=False)
            self._thread_local.conn = ibis_conn.con
            self._thread_local.ibis_conn = ibis_conn

        return self._thread_local.conn, self._thread_local.ibis_conn

    @property
    def _conn(self) -> duckdb.DuckDBPyConnection:
        conn, _ = self._get_thread_connections()
        return conn

    @property
    def ibis_conn(self) -> ibis.BaseBackend:
        """Thread-local Ibis backend."""
        _, ibis_conn = self._get_thread_connections()
        return ibis_conn

    def execute_sql(self, sql: str, params: Sequence[Any] | None = None) -> None:
        """Execute a raw SQL statement without returning results."""
        self._conn.execute(sql, list(params or []))

    def execute_query(self, sql: str, params: Sequence[Any] | None = None) -> list[tuple]:
        """Execute a raw SQL query and return all results."""
        return self._conn.execute(sql, list(params or [])).fetchall()

    def execute_query_single(self, sql: str, params: Sequence[Any] | None = None) -> tuple | None:
        """Execute a raw SQL query and return a single result row."""
        return self._conn.execute(sql, list(params or [])).fetchone()

    @contextlib.contextmanager
    def transaction(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """Run the enclosed statements in one transaction.

        Rolls back and re-raises on any exception, leaving stored data untouched.
        """
        conn = self._conn
        conn.execute("BEGIN TRANSACTION")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            logger.debug("Transaction rolled back")
            raise
        conn.execute("COMMIT")

    def read_table(self, name: str) -> Table:
        """Read table as Ibis expression."""
        if not self.table_exists(name):
            raise TableNotFoundError(name)
        return self.ibis_conn.table(name)

    def list_tables(self) -> list[str]:
        """List all tables in database."""
        return sorted(self.ibis_conn.list_tables())

    def table_exists(self, name: str) -> bool:
        """Check if table exists in database."""
        rows = self.execute_query(
            "SELECT table_name FROM information_schema.tables WHERE table_name = ?",
            [name],
        )
        return len(rows) > 0

    def ensure_sequence(self, name: str, *, start: int = 1) -> None:
        """Create a sequence if it does not exist."""
        self.execute_sql(f"CREATE SEQUENCE IF NOT EXISTS {quote_identifier(name)} START {int(start)}")

    def close(self) -> None:
        """Close database connection for the current thread."""
        ibis_conn = getattr(self._thread_local, "ibis_conn", None)
        if ibis_conn is None:
            return
        ibis_conn.disconnect()
        del self._thread_local.ibis_conn
        del self._thread_local.conn
        logger.info("DuckDB connection closed for thread %s", threading.get_ident())

    def __enter__(self) -> Self:
        return self

    def __exit__(self, _exc_type: object, _exc_val: object, _exc_tb: object) -> None:
        self.close()


__all__ = [
    "DuckDBStorageManager",
    "quote_identifier",
]

"""DB-API adapter implementation for the core database port."""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Iterator, Mapping

from ...core.types import MaybeRow, QueryParams, RowMapping, Rows
from ...errors import BackendError
from .dialects import Dialect, SQLiteDialect

logger = logging.getLogger(__name__)


class Database:
    """Thin DB-API wrapper that normalizes execute and row mapping behavior.

    Driver exceptions are re-raised as `BackendError` with the original
    exception chained.
    """

    def __init__(
        self,
        conn: Any,
        dialect: Dialect,
        *,
        log_sql: bool = False,
        slow_query_threshold_ms: int | None = None,
    ):
        """Create database adapter.

        Args:
            conn: DB-API connection object.
            dialect: Concrete SQL dialect instance.
            log_sql: Log every statement and its parameters at DEBUG.
            slow_query_threshold_ms: Log statements slower than this at WARNING.
        """

        self.conn: Any | None = conn
        self.dialect = dialect
        self.log_sql = log_sql
        self.slow_query_threshold_ms = slow_query_threshold_ms
        self._closed = False
        self._tx_depth = 0

    def _require_open_connection(self) -> Any:
        if self._closed or self.conn is None:
            raise BackendError("connection is closed")
        return self.conn

    def _should_begin_sqlite_transaction(self, conn: Any) -> bool:
        if getattr(self.dialect, "name", "").lower() != "sqlite":
            return False
        if getattr(conn, "isolation_level", None) is not None:
            return False
        return not bool(getattr(conn, "in_transaction", False))

    @property
    def in_transaction(self) -> bool:
        return self._tx_depth > 0

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        """Provide commit/rollback transaction scope.

        Nested blocks join the outermost transaction; only the outermost
        block commits or rolls back.
        """

        conn = self._require_open_connection()
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield
            finally:
                self._tx_depth -= 1
            return

        self._tx_depth = 1
        try:
            if self._should_begin_sqlite_transaction(conn):
                conn.execute("BEGIN")
            yield
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            self._tx_depth = 0

    def execute(self, sql: str, params: QueryParams = None) -> Any:
        """Execute SQL with optional parameters and return cursor."""

        conn = self._require_open_connection()
        if self.log_sql:
            logger.debug("SQL %s | params=%r", sql, params)

        started = time.perf_counter()
        try:
            cur = conn.cursor()
            if params is None:
                cur.execute(sql)
            else:
                cur.execute(sql, params)
        except Exception as exc:
            if isinstance(exc, BackendError):
                raise
            raise BackendError(f"{type(exc).__name__}: {exc}", sql=sql) from exc

        elapsed_ms = (time.perf_counter() - started) * 1000
        threshold = self.slow_query_threshold_ms
        if threshold is not None and elapsed_ms > threshold:
            logger.warning("Slow SQL (%.1f ms): %s", elapsed_ms, sql)
        return cur

    def _row_to_mapping(self, cursor: Any, row: Any) -> RowMapping:
        """Normalize row object to mapping.

        Supports mapping rows, `sqlite3.Row`, and tuple/list rows via
        `cursor.description`.
        """

        if isinstance(row, Mapping):
            return row

        if isinstance(row, sqlite3.Row):
            return {key: row[key] for key in row.keys()}

        if isinstance(row, (tuple, list)):
            desc = getattr(cursor, "description", None)
            if not desc:
                raise TypeError(
                    "Cursor has no description; cannot map tuple rows to dict."
                )
            cols = [d[0] for d in desc]
            return dict(zip(cols, row))

        raise TypeError(f"Unsupported row type: {type(row)}")

    def fetchone(self, sql: str, params: QueryParams = None) -> MaybeRow:
        """Execute query and return one normalized row mapping."""

        cur = self.execute(sql, params)
        row = cur.fetchone()
        if row is None:
            return None
        return self._row_to_mapping(cur, row)

    def fetchall(self, sql: str, params: QueryParams = None) -> Rows:
        """Execute query and return all rows as normalized mappings."""

        cur = self.execute(sql, params)
        rows = cur.fetchall()
        return [self._row_to_mapping(cur, r) for r in rows]

    def close(self) -> None:
        """Commit pending work and close the underlying connection."""

        if self._closed:
            return
        conn = self.conn
        self._closed = True
        self.conn = None
        if conn is None:
            return
        if getattr(conn, "in_transaction", False):
            conn.commit()
        close = getattr(conn, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()


def connect_sqlite(
    path: str | Path = ":memory:",
    *,
    foreign_keys: bool = True,
    log_sql: bool = False,
    slow_query_threshold_ms: int | None = None,
) -> Database:
    """Open a SQLite database file (parent directories are created)."""

    target = str(path)
    if target != ":memory:":
        Path(target).parent.mkdir(parents=True, exist_ok=True)
    try:
        conn = sqlite3.connect(target)
    except sqlite3.Error as exc:
        raise BackendError(f"Failed to connect to {target!r}: {exc}") from exc
    if foreign_keys:
        conn.execute("PRAGMA foreign_keys = ON;")
    return Database(
        conn,
        SQLiteDialect(),
        log_sql=log_sql,
        slow_query_threshold_ms=slow_query_threshold_ms,
    )

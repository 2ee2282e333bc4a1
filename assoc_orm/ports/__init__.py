"""Public port exports for concrete adapter implementations."""

from .db_api import Database, Dialect, PostgresDialect, SQLiteDialect, connect_sqlite

__all__ = [
    "Database",
    "Dialect",
    "SQLiteDialect",
    "PostgresDialect",
    "connect_sqlite",
]

"""DB-API adapter and dialect exports."""

from .database import Database, connect_sqlite
from .dialects import Dialect, PostgresDialect, SQLiteDialect

__all__ = [
    "Database",
    "Dialect",
    "PostgresDialect",
    "SQLiteDialect",
    "connect_sqlite",
]

"""Core port contracts used by the backend adapter and the query layer."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, List, Optional, Protocol

from .types import MaybeRow, QueryParams, RowMapping


class DialectPort(Protocol):
    """Dialect behavior required by query compilation and DDL generation."""

    name: str
    paramstyle: str
    supports_returning: bool

    def q(self, ident: str) -> str: ...

    def placeholder(self, key: str) -> str: ...

    def auto_pk_sql(self, pk_name: str) -> str: ...

    def returning_clause(self, pk_name: str) -> str: ...

    def get_lastrowid(self, cursor: Any) -> Optional[int]: ...


class DatabasePort(Protocol):
    """Execution backend behavior required by the core."""

    dialect: DialectPort

    def transaction(self) -> AbstractContextManager[None]: ...

    def execute(self, sql: str, params: QueryParams = None) -> Any: ...

    def fetchone(self, sql: str, params: QueryParams = None) -> MaybeRow: ...

    def fetchall(self, sql: str, params: QueryParams = None) -> List[RowMapping]: ...


class ReportingSink(Protocol):
    """Line-oriented output target for formatted records."""

    def emit(self, line: str) -> None: ...

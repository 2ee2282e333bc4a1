"""Column SQL helpers used by migration DDL generation."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, get_args, get_origin

from .contracts import DialectPort
from .schema import FieldDef


def column_sql(
    field: FieldDef,
    dialect: DialectPort,
    *,
    references: Optional[tuple[str, str]] = None,
) -> str:
    """Build one column definition SQL fragment."""

    if field.primary_key and field.auto:
        return dialect.auto_pk_sql(field.name)

    sql_parts = [dialect.q(field.name), resolve_sql_type(field)]
    sql_parts.append("NULL" if field.is_nullable else "NOT NULL")

    if field.primary_key:
        sql_parts.append("PRIMARY KEY")
    if references is not None:
        ref_table, ref_column = references
        sql_parts.append(f"REFERENCES {dialect.q(ref_table)} ({dialect.q(ref_column)})")

    return " ".join(sql_parts)


def resolve_sql_type(field: FieldDef) -> str:
    """Map a field's Python type (and size/text options) to a SQL type."""

    base_type = unwrap_optional(field.type)

    if isinstance(base_type, type) and issubclass(base_type, Enum):
        values = [member.value for member in base_type]
        base_type = int if all(isinstance(v, int) for v in values) else str

    if base_type is bool:
        return "BOOLEAN"
    if base_type is datetime:
        return "TIMESTAMP"
    if base_type is date:
        return "DATE"
    if base_type is time:
        return "TIME"
    if base_type is Decimal:
        return "NUMERIC"
    if base_type in {bytes, bytearray, memoryview}:
        return "BLOB"
    if base_type is int:
        return "BIGINT" if field.primary_key and not field.auto else "INTEGER"
    if base_type is float:
        return "REAL"
    if field.size is not None and not field.text:
        return f"VARCHAR({field.size})"
    return "TEXT"


def unwrap_optional(annotation: Any) -> Any:
    """Extract wrapped type from `Optional[T]` style annotations."""

    origin = get_origin(annotation)
    if origin is None:
        return annotation

    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if len(args) == 1:
        return args[0]
    return annotation

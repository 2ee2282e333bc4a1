"""SQL fragment builders for filtering, sorting, and paging.

This module centralizes SQL string compilation from predicate descriptors.
It keeps the loader and context focused on orchestration while making SQL
generation reusable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .conditions import (
    BINARY_OPERATORS,
    SET_OPERATORS,
    UNARY_OPERATORS,
    Condition,
    ConditionGroup,
    NotCondition,
    OrderBy,
    WhereExpression,
)
from .contracts import DialectPort
from .types import NamedParams, PositionalParams, QueryParams


WhereInput = Optional[Sequence[WhereExpression] | WhereExpression]


@dataclass(frozen=True)
class CompiledFragment:
    """Represents a compiled SQL fragment with its bound parameters."""

    sql: str
    params: QueryParams


class _ParamNameGenerator:
    """Generates safe, unique parameter names for named SQL styles."""

    def __init__(self) -> None:
        self._counter = 0

    def next(self, base: str) -> str:
        """Return a deterministic parameter name based on a column hint."""

        self._counter += 1
        safe = "".join(ch if ch.isalnum() or ch == "_" else "_" for ch in base)
        return f"{safe}_{self._counter}"


def normalize_where(where: WhereInput) -> Optional[WhereExpression]:
    """Collapse a where input into one expression (lists are ANDed)."""

    if where is None:
        return None
    if isinstance(where, (Condition, ConditionGroup, NotCondition)):
        return where

    items = tuple(where)
    if not items:
        return None
    if len(items) == 1:
        return items[0]
    return ConditionGroup(operator="AND", items=items)


def compile_where(where: WhereInput, dialect: DialectPort) -> CompiledFragment:
    """Compile one or many expressions into a SQL `WHERE` fragment.

    Multiple top-level expressions are combined using `AND`.

    Args:
        where: One expression, a list of expressions, or `None`.
        dialect: SQL dialect used for identifier quoting and placeholders.

    Returns:
        A compiled SQL fragment and parameters. Empty fragment if no condition.
    """

    expr = normalize_where(where)
    if expr is None:
        return CompiledFragment("", None)

    generator = _ParamNameGenerator()
    params: QueryParams = _empty_params(dialect)
    clause = _compile_expression(expr, dialect, generator, params, top_level=True)
    return CompiledFragment(f" WHERE {clause}", params)


def compile_order_by(
    order_by: Optional[Sequence[OrderBy]], dialect: DialectPort
) -> str:
    """Compile `ORDER BY` clause from ordering inputs."""

    if not order_by:
        return ""

    ordered_cols = ", ".join(
        f"{dialect.q(item.col)} {'DESC' if item.desc else 'ASC'}" for item in order_by
    )
    return f" ORDER BY {ordered_cols}"


def append_limit_offset(
    sql: str,
    params: QueryParams,
    *,
    limit: Optional[int],
    offset: Optional[int],
    dialect: DialectPort,
) -> Tuple[str, QueryParams]:
    """Append pagination clauses and merge parameters.

    SQLite requires `LIMIT` whenever `OFFSET` is present, so `LIMIT -1` is
    emitted for an offset without limit.
    """

    if offset is not None and limit is None:
        limit = -1

    if dialect.paramstyle == "named":
        named_params: NamedParams = {}
        if isinstance(params, dict):
            named_params.update(params)
        if limit is not None:
            named_params["__limit"] = limit
            sql += " LIMIT :__limit"
        if offset is not None:
            named_params["__offset"] = offset
            sql += " OFFSET :__offset"
        return sql, named_params if named_params else None

    positional_params: PositionalParams = []
    if isinstance(params, list):
        positional_params.extend(params)
    if limit is not None:
        sql += f" LIMIT {dialect.placeholder('limit')}"
        positional_params.append(limit)
    if offset is not None:
        sql += f" OFFSET {dialect.placeholder('offset')}"
        positional_params.append(offset)
    return sql, positional_params if positional_params else None


def _compile_expression(
    expr: WhereExpression,
    dialect: DialectPort,
    generator: _ParamNameGenerator,
    params: QueryParams,
    *,
    top_level: bool = False,
) -> str:
    if isinstance(expr, Condition):
        return _compile_condition(expr, dialect, generator, params)

    if isinstance(expr, NotCondition):
        inner = _compile_expression(expr.item, dialect, generator, params)
        return f"NOT ({inner})"

    if isinstance(expr, ConditionGroup):
        if expr.operator not in ("AND", "OR"):
            raise ValueError(f"Unsupported group operator: {expr.operator!r}")
        parts = [
            _compile_expression(item, dialect, generator, params)
            for item in expr.items
        ]
        joined = f" {expr.operator} ".join(parts)
        if top_level or len(parts) == 1:
            return joined
        return f"({joined})"

    raise TypeError("Expression must be Condition, ConditionGroup, or NotCondition.")


def _compile_condition(
    condition: Condition,
    dialect: DialectPort,
    generator: _ParamNameGenerator,
    params: QueryParams,
) -> str:
    """Compile one condition into SQL, appending its parameters."""

    col_sql = dialect.q(condition.col)

    if condition.is_unary or condition.op in UNARY_OPERATORS:
        return f"{col_sql} {condition.op}"

    if condition.op in SET_OPERATORS:
        values = list(condition.values or ())
        if not values:
            return "1=0" if condition.op == "IN" else "1=1"

        keys = [generator.next(condition.col) for _ in values]
        if isinstance(params, dict):
            params.update(zip(keys, values))
            placeholders = ", ".join(f":{key}" for key in keys)
        else:
            assert params is not None
            params.extend(values)
            placeholders = ", ".join(dialect.placeholder(key) for key in keys)
        return f"{col_sql} {condition.op} ({placeholders})"

    if condition.op not in BINARY_OPERATORS:
        raise ValueError(f"Unsupported operator: {condition.op!r}")

    key = generator.next(condition.col)
    escape = f" ESCAPE '{condition.escape}'" if condition.escape else ""
    if isinstance(params, dict):
        params[key] = condition.value
        return f"{col_sql} {condition.op} :{key}{escape}"

    assert params is not None
    params.append(condition.value)
    return f"{col_sql} {condition.op} {dialect.placeholder(key)}{escape}"


def _empty_params(dialect: DialectPort) -> QueryParams:
    """Return empty parameters matching dialect param style."""

    return {} if dialect.paramstyle == "named" else []

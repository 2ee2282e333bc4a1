"""Immutable predicate descriptors for filtering and sorting."""

from __future__ import annotations

from collections.abc import Sequence as SequenceABC
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Sequence

BINARY_OPERATORS = frozenset({"=", "<>", "<", "<=", ">", ">=", "LIKE", "NOT LIKE"})
UNARY_OPERATORS = frozenset({"IS NULL", "IS NOT NULL"})
SET_OPERATORS = frozenset({"IN", "NOT IN"})


@dataclass(frozen=True)
class Condition:
    """Represents one SQL condition expression.

    Attributes:
        col: Raw column name.
        op: SQL operator (for example `=`, `IN`, `IS NULL`).
        value: Scalar value for binary operators.
        values: Tuple of values for `IN`.
        is_unary: Whether the operator is unary (`IS NULL`, `IS NOT NULL`).
        escape: Escape character for `LIKE` patterns, if any.
    """

    col: str
    op: str
    value: Any = None
    values: Optional[tuple[Any, ...]] = None
    is_unary: bool = False
    escape: Optional[str] = None


@dataclass(frozen=True)
class ConditionGroup:
    """Represents a grouped logical expression (`AND`/`OR`)."""

    operator: str
    items: tuple["WhereExpression", ...]


@dataclass(frozen=True)
class NotCondition:
    """Represents a negated expression."""

    item: "WhereExpression"


WhereExpression = Condition | ConditionGroup | NotCondition


class C:
    """Fluent condition factory methods."""

    @staticmethod
    def eq(col: str, val: Any) -> Condition:
        """Build `col = value` condition."""

        return Condition(col=col, op="=", value=val)

    @staticmethod
    def ne(col: str, val: Any) -> Condition:
        """Build `col <> value` condition."""

        return Condition(col=col, op="<>", value=val)

    @staticmethod
    def lt(col: str, val: Any) -> Condition:
        return Condition(col=col, op="<", value=val)

    @staticmethod
    def le(col: str, val: Any) -> Condition:
        return Condition(col=col, op="<=", value=val)

    @staticmethod
    def gt(col: str, val: Any) -> Condition:
        return Condition(col=col, op=">", value=val)

    @staticmethod
    def ge(col: str, val: Any) -> Condition:
        return Condition(col=col, op=">=", value=val)

    @staticmethod
    def like(col: str, pattern: str, escape: Optional[str] = None) -> Condition:
        """Build `col LIKE pattern` condition (optionally with `ESCAPE`)."""

        if escape is not None and (len(escape) != 1 or escape == "'"):
            raise ValueError("LIKE escape must be a single character other than a quote.")
        return Condition(col=col, op="LIKE", value=pattern, escape=escape)

    @staticmethod
    def is_null(col: str) -> Condition:
        return Condition(col=col, op="IS NULL", is_unary=True)

    @staticmethod
    def is_not_null(col: str) -> Condition:
        return Condition(col=col, op="IS NOT NULL", is_unary=True)

    @staticmethod
    def in_(col: str, values: Sequence[Any]) -> Condition:
        """Build `col IN (...)` condition."""

        return Condition(col=col, op="IN", values=tuple(values))

    @staticmethod
    def and_(*items: WhereExpression | Sequence[WhereExpression]) -> ConditionGroup:
        """Build a grouped `AND` expression."""

        normalized = C._normalize_group_items(items)
        return ConditionGroup(operator="AND", items=normalized)

    @staticmethod
    def or_(*items: WhereExpression | Sequence[WhereExpression]) -> ConditionGroup:
        """Build a grouped `OR` expression."""

        normalized = C._normalize_group_items(items)
        return ConditionGroup(operator="OR", items=normalized)

    @staticmethod
    def not_(item: WhereExpression) -> NotCondition:
        """Build a negated expression (`NOT (...)`)."""

        C._ensure_expr(item)
        return NotCondition(item=item)

    @staticmethod
    def _normalize_group_items(
        items: Sequence[WhereExpression | Sequence[WhereExpression]],
    ) -> tuple[WhereExpression, ...]:
        normalized_input: Sequence[WhereExpression | Sequence[WhereExpression]]
        if (
            len(items) == 1
            and isinstance(items[0], SequenceABC)
            and not isinstance(
                items[0], (str, bytes, Condition, ConditionGroup, NotCondition)
            )
        ):
            normalized_input = items[0]
        else:
            normalized_input = items

        normalized: list[WhereExpression] = []
        for item in normalized_input:
            C._ensure_expr(item)
            normalized.append(item)

        if not normalized:
            raise ValueError("Grouped condition must contain at least one expression.")
        return tuple(normalized)

    @staticmethod
    def _ensure_expr(item: Any) -> None:
        if not isinstance(item, (Condition, ConditionGroup, NotCondition)):
            raise TypeError(
                "Expression must be Condition, ConditionGroup, or NotCondition."
            )


@dataclass(frozen=True)
class OrderBy:
    """Represents one ordering expression."""

    col: str
    desc: bool = False


def conjoin(
    left: Optional[WhereExpression], right: Optional[WhereExpression]
) -> Optional[WhereExpression]:
    """AND two optional expressions, flattening nested `AND` groups."""

    if left is None:
        return right
    if right is None:
        return left

    items: list[WhereExpression] = []
    for expr in (left, right):
        if isinstance(expr, ConditionGroup) and expr.operator == "AND":
            items.extend(expr.items)
        else:
            items.append(expr)
    return ConditionGroup(operator="AND", items=tuple(items))


def iter_conditions(expr: WhereExpression) -> Iterator[Condition]:
    """Yield every leaf `Condition` in an expression tree."""

    if isinstance(expr, Condition):
        yield expr
    elif isinstance(expr, ConditionGroup):
        for item in expr.items:
            yield from iter_conditions(item)
    elif isinstance(expr, NotCondition):
        yield from iter_conditions(expr.item)
    else:
        raise TypeError(
            "Expression must be Condition, ConditionGroup, or NotCondition."
        )


def expression_to_dict(expr: WhereExpression) -> dict[str, Any]:
    """Serialize an expression tree into plain JSON-friendly data."""

    if isinstance(expr, Condition):
        data: dict[str, Any] = {"col": expr.col, "op": expr.op}
        if expr.op in SET_OPERATORS:
            data["values"] = list(expr.values or ())
        elif not expr.is_unary:
            data["value"] = expr.value
        if expr.escape is not None:
            data["escape"] = expr.escape
        return data
    if isinstance(expr, ConditionGroup):
        return {
            "op": expr.operator,
            "items": [expression_to_dict(item) for item in expr.items],
        }
    if isinstance(expr, NotCondition):
        return {"op": "NOT", "item": expression_to_dict(expr.item)}
    raise TypeError("Expression must be Condition, ConditionGroup, or NotCondition.")


def expression_from_dict(data: dict[str, Any]) -> WhereExpression:
    """Rebuild an expression tree produced by `expression_to_dict`."""

    op = data.get("op")
    if op in ("AND", "OR"):
        items = tuple(expression_from_dict(item) for item in data.get("items", ()))
        if not items:
            raise ValueError("Grouped condition must contain at least one expression.")
        return ConditionGroup(operator=op, items=items)
    if op == "NOT":
        return NotCondition(item=expression_from_dict(data["item"]))
    if op in UNARY_OPERATORS:
        return Condition(col=data["col"], op=op, is_unary=True)
    if op in SET_OPERATORS:
        return Condition(col=data["col"], op=op, values=tuple(data.get("values", ())))
    if op in BINARY_OPERATORS:
        return Condition(
            col=data["col"], op=op, value=data.get("value"), escape=data.get("escape")
        )
    raise ValueError(f"Unsupported operator in serialized expression: {op!r}")

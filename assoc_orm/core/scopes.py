"""Reusable, composable query scopes.

A `Scope` is an immutable predicate descriptor. Applying it to a predicate
ANDs its condition onto that predicate, so scopes compose in any order and
can be shared between queries. Factories such as `field_ends_with` return
new `Scope` values and hold no state beyond their arguments.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from ..errors import InvalidPredicateError
from .conditions import (
    BINARY_OPERATORS,
    SET_OPERATORS,
    UNARY_OPERATORS,
    C,
    Condition,
    ConditionGroup,
    NotCondition,
    WhereExpression,
    conjoin,
    expression_from_dict,
    expression_to_dict,
    iter_conditions,
)
from .schema import EntityDefinition

Predicate = Optional[WhereExpression]
LIKE_ESCAPE = "\\"


@dataclass(frozen=True)
class Scope:
    """Named predicate transformer: `predicate -> predicate AND condition`."""

    name: str
    condition: WhereExpression

    def __post_init__(self) -> None:
        if not isinstance(self.condition, (Condition, ConditionGroup, NotCondition)):
            raise TypeError(
                f"Scope {self.name!r} condition must be Condition, "
                "ConditionGroup, or NotCondition."
            )

    def apply(self, predicate: Predicate) -> WhereExpression:
        result = conjoin(predicate, self.condition)
        assert result is not None
        return result

    def __call__(self, predicate: Predicate) -> WhereExpression:
        return self.apply(predicate)

    def columns(self) -> set[str]:
        return {item.col for item in iter_conditions(self.condition)}

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "condition": expression_to_dict(self.condition)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Scope:
        return cls(name=data["name"], condition=expression_from_dict(data["condition"]))


def combine(*scopes: Scope | Iterable[Scope], base: Predicate = None) -> Predicate:
    """Apply every scope once, ANDing each onto the accumulated predicate."""

    predicate = base
    for scope in _flatten(scopes):
        predicate = scope.apply(predicate)
    return predicate


def validate_predicate(definition: EntityDefinition, predicate: Predicate) -> None:
    """Fail fast when a predicate references unknown columns or operators."""

    if predicate is None:
        return
    for item in iter_conditions(predicate):
        if not definition.has_column(item.col):
            raise InvalidPredicateError(
                f"Unknown column {item.col!r} on {definition.name}. "
                f"Columns: {', '.join(definition.columns)}"
            )
        known = BINARY_OPERATORS | UNARY_OPERATORS | SET_OPERATORS
        if item.op not in known:
            raise InvalidPredicateError(f"Unsupported operator {item.op!r}.")


def validate_scope(definition: EntityDefinition, scope: Scope) -> None:
    """Check that a scope can filter `definition`."""

    try:
        validate_predicate(definition, scope.condition)
    except InvalidPredicateError as exc:
        raise InvalidPredicateError(f"Scope {scope.name!r}: {exc}") from exc


def where(name: str, *conditions: WhereExpression) -> Scope:
    """Build a scope from one or more conditions (ANDed)."""

    if not conditions:
        raise ValueError("where() needs at least one condition.")
    condition = conditions[0] if len(conditions) == 1 else C.and_(*conditions)
    return Scope(name=name, condition=condition)


def field_equals(field: str, value: Any) -> Scope:
    return Scope(name=f"{field}_equals", condition=C.eq(field, value))


def field_greater_than(field: str, value: Any) -> Scope:
    return Scope(name=f"{field}_greater_than", condition=C.gt(field, value))


def field_like(field: str, pattern: str) -> Scope:
    return Scope(name=f"{field}_like", condition=C.like(field, pattern))


def field_ends_with(field: str, suffix: str) -> Scope:
    """Match values ending with `suffix` taken literally.

    `%` and `_` in the suffix are escaped, so only the leading wildcard
    matches.
    """

    escaped = escape_like(suffix)
    escape = LIKE_ESCAPE if escaped != suffix else None
    return Scope(
        name=f"{field}_ends_with",
        condition=C.like(field, f"%{escaped}", escape=escape),
    )


def escape_like(text: str) -> str:
    """Escape LIKE wildcards in `text` with `LIKE_ESCAPE`."""

    for char in (LIKE_ESCAPE, "%", "_"):
        text = text.replace(char, LIKE_ESCAPE + char)
    return text


def _flatten(items: Iterable[Scope | Iterable[Scope]]) -> Iterable[Scope]:
    for item in items:
        if isinstance(item, Scope):
            yield item
        elif isinstance(item, (str, bytes)):
            raise TypeError("Scopes must be Scope instances.")
        else:
            for nested in item:
                if not isinstance(nested, Scope):
                    raise TypeError("Scopes must be Scope instances.")
                yield nested

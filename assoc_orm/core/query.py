"""Immutable query values with scopes, preloads, ordering, and paging."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Optional, Sequence

from ..errors import InvalidPredicateError
from .conditions import C, OrderBy, WhereExpression, conjoin
from .query_builder import normalize_where
from .schema import EntityDefinition, SchemaRegistry
from .scopes import Predicate, Scope, combine, validate_predicate, validate_scope


@dataclass(frozen=True)
class Preload:
    """One requested relation path and the scopes filtering its last segment."""

    path: str
    scopes: tuple[Scope, ...] = ()

    @property
    def segments(self) -> list[str]:
        return self.path.split(".")


@dataclass
class PreloadNode:
    """Relation to load on a set of records, with nested relations below it."""

    name: str
    scopes: list[Scope] = field(default_factory=list)
    children: dict[str, "PreloadNode"] = field(default_factory=dict)


@dataclass(frozen=True)
class Query:
    """Description of a root query; every builder method returns a new value."""

    entity: str | type
    conditions: tuple[WhereExpression, ...] = ()
    scope_list: tuple[Scope, ...] = ()
    preloads: tuple[Preload, ...] = ()
    ordering: tuple[OrderBy, ...] = ()
    limit_value: Optional[int] = None
    offset_value: Optional[int] = None
    include_deleted: bool = False

    def where(self, *conditions: WhereExpression | Sequence[WhereExpression]) -> Query:
        added: list[WhereExpression] = []
        for item in conditions:
            expr = normalize_where(item)  # type: ignore[arg-type]
            if expr is not None:
                added.append(expr)
        return replace(self, conditions=self.conditions + tuple(added))

    def filter_by(self, **values: Any) -> Query:
        """Shortcut for equality conditions (`filter_by(name="Alex")`)."""

        return self.where(*(C.eq(col, value) for col, value in values.items()))

    def scopes(self, *scopes: Scope) -> Query:
        for scope in scopes:
            if not isinstance(scope, Scope):
                raise TypeError("scopes() expects Scope instances.")
        return replace(self, scope_list=self.scope_list + tuple(scopes))

    def preload(self, path: str, *scopes: Scope) -> Query:
        """Eager-load `path` (dotted for nested relations).

        Scopes filter the related records of the last path segment only;
        root selection is unaffected.
        """

        if not isinstance(path, str) or not path or any(
            not part for part in path.split(".")
        ):
            raise TypeError("preload path must be a non-empty dotted relation name.")
        for scope in scopes:
            if not isinstance(scope, Scope):
                raise TypeError("preload() scopes must be Scope instances.")
        return replace(self, preloads=self.preloads + (Preload(path, tuple(scopes)),))

    def order_by(self, *items: str | OrderBy) -> Query:
        """Add ordering; a leading `-` on a column name sorts descending."""

        parsed: list[OrderBy] = []
        for item in items:
            if isinstance(item, OrderBy):
                parsed.append(item)
            elif isinstance(item, str) and item:
                desc = item.startswith("-")
                parsed.append(OrderBy(item.lstrip("-"), desc=desc))
            else:
                raise TypeError("order_by() expects column names or OrderBy.")
        return replace(self, ordering=self.ordering + tuple(parsed))

    def limit(self, count: Optional[int]) -> Query:
        if count is not None and count < 0:
            raise ValueError("limit must be >= 0.")
        return replace(self, limit_value=count)

    def offset(self, count: Optional[int]) -> Query:
        if count is not None and count < 0:
            raise ValueError("offset must be >= 0.")
        return replace(self, offset_value=count)

    def with_deleted(self) -> Query:
        return replace(self, include_deleted=True)

    def predicate(self) -> Predicate:
        """Return the root predicate: explicit conditions AND every scope."""

        base: Predicate = None
        for item in self.conditions:
            base = conjoin(base, item)
        return combine(self.scope_list, base=base)

    def preload_tree(self) -> dict[str, PreloadNode]:
        """Merge preload paths into a tree keyed by relation name."""

        roots: dict[str, PreloadNode] = {}
        for item in self.preloads:
            level = roots
            node: PreloadNode | None = None
            for segment in item.segments:
                node = level.get(segment)
                if node is None:
                    node = PreloadNode(segment)
                    level[segment] = node
                level = node.children
            assert node is not None
            node.scopes.extend(item.scopes)
        return roots

    def validate(self, registry: SchemaRegistry) -> EntityDefinition:
        """Resolve the entity and check columns, relations, and scopes.

        Raises:
            UnknownEntityError: Entity is not registered.
            InvalidPredicateError: Unknown column in a condition, scope, or
                ordering.
            RelationNotFoundError: A preload path names an unknown relation.
        """

        definition = registry.resolve(self.entity)
        validate_predicate(definition, self.predicate())
        for order in self.ordering:
            if not definition.has_column(order.col):
                raise InvalidPredicateError(
                    f"Cannot order {definition.name} by unknown column {order.col!r}."
                )
        _validate_preload_tree(registry, definition, self.preload_tree())
        return definition


def _validate_preload_tree(
    registry: SchemaRegistry,
    owner: EntityDefinition,
    nodes: dict[str, PreloadNode],
) -> None:
    for node in nodes.values():
        spec = owner.relation(node.name)
        target = registry.target_of(spec)
        for scope in node.scopes:
            validate_scope(target, scope)
        _validate_preload_tree(registry, target, node.children)

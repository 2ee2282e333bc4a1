"""Batch association loading for loaded result sets.

Every relation is resolved with a fixed number of queries regardless of how
many root records are passed in:

- `belongs_to` / `has_one`: one `WHERE key IN (...)` query on the target.
- `has_many`: one `WHERE foreign_key IN (...)` query on the target.
- `many_to_many`: one query on the join table, one on the target.

Related objects are shallow-copied per attachment so each root owns the
values it was given.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Iterable, Mapping, Sequence

from .conditions import C, OrderBy
from .contracts import DatabasePort
from .crud import select, select_join_rows
from .query import PreloadNode
from .records import LoadedRecord
from .schema import (
    EntityDefinition,
    JoinTableDef,
    RelationDescriptor,
    RelationKind,
    SchemaRegistry,
)
from .scopes import Scope, combine, validate_scope

logger = logging.getLogger(__name__)


class AssociationLoader:
    """Attaches related records to `LoadedRecord`s of one entity."""

    def __init__(self, db: DatabasePort, registry: SchemaRegistry) -> None:
        self.db = db
        self.registry = registry

    def load_relation(
        self,
        records: Sequence[LoadedRecord[Any]],
        relation_name: str,
        scope: Scope | Sequence[Scope] | None = None,
        *,
        include_deleted: bool = False,
    ) -> list[LoadedRecord[Any]]:
        """Load one relation onto `records` and return the attached records.

        Args:
            records: Root records, all of the same entity.
            relation_name: Relation declared on the root entity.
            scope: Optional scope(s) filtering the related records only.
            include_deleted: Keep soft-deleted related rows.

        Raises:
            RelationNotFoundError: `relation_name` is not declared on the entity.
        """

        if not records:
            return []

        owner = self._owner_definition(records)
        spec = owner.relation(relation_name)
        target = self.registry.target_of(spec)
        scopes = _as_scope_list(scope)
        for item in scopes:
            validate_scope(target, item)

        if spec.kind is RelationKind.MANY_TO_MANY:
            load = self._load_many_to_many
        elif spec.kind is RelationKind.HAS_MANY:
            load = self._load_has_many
        else:
            load = self._load_single
        attached = load(owner, spec, target, records, scopes, include_deleted)

        logger.debug(
            "Loaded %s.%s (%s) for %d record(s): %d attached",
            owner.name,
            spec.name,
            spec.kind.value,
            len(records),
            len(attached),
        )
        return attached

    def load_path(
        self,
        records: Sequence[LoadedRecord[Any]],
        path: str,
        scope: Scope | Sequence[Scope] | None = None,
        *,
        include_deleted: bool = False,
    ) -> list[LoadedRecord[Any]]:
        """Load a dotted relation path; `scope` applies to the last segment.

        The whole path and the scopes are checked before the first query, so
        a bad segment leaves `records` untouched.

        Raises:
            RelationNotFoundError: A segment is not declared on its owner.
            InvalidPredicateError: A scope references unknown columns.
        """

        if not records:
            return []

        segments = path.split(".")
        target = self._owner_definition(records)
        for segment in segments:
            target = self.registry.target_of(target.relation(segment))
        for item in _as_scope_list(scope):
            validate_scope(target, item)

        current: Sequence[LoadedRecord[Any]] = records
        for index, segment in enumerate(segments):
            last = index == len(segments) - 1
            current = self.load_relation(
                current,
                segment,
                scope if last else None,
                include_deleted=include_deleted,
            )
        return list(current)

    def load_tree(
        self,
        records: Sequence[LoadedRecord[Any]],
        nodes: Mapping[str, PreloadNode],
        *,
        include_deleted: bool = False,
    ) -> None:
        """Load a preload tree built by `Query.preload_tree()`."""

        for node in nodes.values():
            attached = self.load_relation(
                records,
                node.name,
                node.scopes,
                include_deleted=include_deleted,
            )
            if node.children and attached:
                self.load_tree(attached, node.children, include_deleted=include_deleted)

    def _owner_definition(
        self, records: Sequence[LoadedRecord[Any]]
    ) -> EntityDefinition:
        entities = {record.entity for record in records}
        if len(entities) != 1:
            raise ValueError(
                f"load_relation() needs records of one entity, got {sorted(entities)}."
            )
        return self.registry.resolve(entities.pop())

    def _load_single(
        self,
        owner: EntityDefinition,
        spec: RelationDescriptor,
        target: EntityDefinition,
        records: Sequence[LoadedRecord[Any]],
        scopes: list[Scope],
        include_deleted: bool,
    ) -> list[LoadedRecord[Any]]:
        owner_key = self.registry.owner_key(owner, spec)
        target_key = self.registry.target_key(spec)
        keys = _dedupe_non_null(getattr(record.obj, owner_key) for record in records)

        mapped: dict[Any, Any] = {}
        if keys:
            rows = self._fetch_targets(
                target, target_key, keys, scopes, include_deleted
            )
            for row in rows:
                # has_one keeps the first row per key (lowest primary key).
                mapped.setdefault(getattr(row, target_key), row)

        attached: list[LoadedRecord[Any]] = []
        for record in records:
            found = mapped.get(getattr(record.obj, owner_key))
            if found is None:
                record.relations[spec.name] = None
                continue
            child = LoadedRecord(obj=copy.copy(found), entity=target.name)
            record.relations[spec.name] = child
            attached.append(child)
        return attached

    def _load_has_many(
        self,
        owner: EntityDefinition,
        spec: RelationDescriptor,
        target: EntityDefinition,
        records: Sequence[LoadedRecord[Any]],
        scopes: list[Scope],
        include_deleted: bool,
    ) -> list[LoadedRecord[Any]]:
        owner_key = self.registry.owner_key(owner, spec)
        foreign_key = self.registry.target_key(spec)
        keys = _dedupe_non_null(getattr(record.obj, owner_key) for record in records)

        grouped: dict[Any, list[Any]] = {}
        if keys:
            rows = self._fetch_targets(
                target, foreign_key, keys, scopes, include_deleted
            )
            for row in rows:
                grouped.setdefault(getattr(row, foreign_key), []).append(row)

        attached: list[LoadedRecord[Any]] = []
        for record in records:
            children = [
                LoadedRecord(obj=copy.copy(row), entity=target.name)
                for row in grouped.get(getattr(record.obj, owner_key), [])
            ]
            record.relations[spec.name] = children
            attached.extend(children)
        return attached

    def _load_many_to_many(
        self,
        owner: EntityDefinition,
        spec: RelationDescriptor,
        target: EntityDefinition,
        records: Sequence[LoadedRecord[Any]],
        scopes: list[Scope],
        include_deleted: bool,
    ) -> list[LoadedRecord[Any]]:
        assert spec.join_table and spec.join_owner_column and spec.join_target_column
        owner_key = self.registry.owner_key(owner, spec)
        target_key = self.registry.target_key(spec)
        keys = _dedupe_non_null(getattr(record.obj, owner_key) for record in records)

        pairs: list[tuple[Any, Any]] = []
        if keys:
            join = self._join_table(spec.join_table)
            pairs = select_join_rows(
                self.db,
                join,
                owner_column=spec.join_owner_column,
                target_column=spec.join_target_column,
                owner_keys=keys,
            )

        targets: dict[Any, Any] = {}
        target_keys = _dedupe_non_null(target for _, target in pairs)
        if target_keys:
            for row in self._fetch_targets(
                target, target_key, target_keys, scopes, include_deleted
            ):
                targets[getattr(row, target_key)] = row

        grouped: dict[Any, list[Any]] = {}
        for owner_value, target_value in pairs:
            row = targets.get(target_value)
            if row is not None:
                grouped.setdefault(owner_value, []).append(row)

        attached: list[LoadedRecord[Any]] = []
        for record in records:
            children = [
                LoadedRecord(obj=copy.copy(row), entity=target.name)
                for row in grouped.get(getattr(record.obj, owner_key), [])
            ]
            record.relations[spec.name] = children
            attached.extend(children)
        return attached

    def _fetch_targets(
        self,
        target: EntityDefinition,
        key_column: str,
        keys: list[Any],
        scopes: list[Scope],
        include_deleted: bool,
    ) -> list[Any]:
        predicate = combine(scopes, base=C.in_(key_column, keys))
        order = [OrderBy(key_column)]
        if key_column != target.pk.name:
            order.append(OrderBy(target.pk.name))
        return select(
            self.db,
            target,
            where=predicate,
            order_by=order,
            include_deleted=include_deleted,
        )

    def _join_table(self, name: str) -> JoinTableDef:
        for join in self.registry.join_tables():
            if join.name == name:
                return join
        raise ValueError(f"Join table {name!r} is not declared.")  # pragma: no cover


def _as_scope_list(scope: Scope | Sequence[Scope] | None) -> list[Scope]:
    if scope is None:
        return []
    if isinstance(scope, Scope):
        return [scope]
    return list(scope)


def _dedupe_non_null(values: Iterable[Any]) -> list[Any]:
    deduped: list[Any] = []
    seen: set[Any] = set()
    for value in values:
        if value is None or value in seen:
            continue
        seen.add(value)
        deduped.append(value)
    return deduped

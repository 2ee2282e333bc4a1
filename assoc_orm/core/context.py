"""Explicit context object tying backend, registry, loader, and planner."""

from __future__ import annotations

import contextlib
import logging
from typing import Any, Iterable, Iterator, Optional, Sequence, TypeVar

from ..config import Settings
from ..errors import RecordNotFoundError, RelationNotFoundError
from ..ports.db_api.database import Database, connect_sqlite
from . import crud
from .conditions import C
from .contracts import DatabasePort
from .loader import AssociationLoader
from .migration import MigrationPlanner
from .query import Query
from .records import LoadedRecord, LoadedResultSet
from .schema import EntityDefinition, RelationKind, SchemaRegistry
from .scopes import Scope

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OrmContext:
    """Owns one backend connection and the schema it is queried with.

    Every component receives its collaborators from here; nothing is kept
    in module-level state.
    """

    def __init__(
        self,
        db: DatabasePort,
        definitions: Iterable[EntityDefinition] = (),
        *,
        owns_db: bool = False,
    ) -> None:
        self.db = db
        self.registry = SchemaRegistry(definitions)
        self.loader = AssociationLoader(db, self.registry)
        self.planner = MigrationPlanner(db, self.registry)
        self._owns_db = owns_db
        self._closed = False
        self._validated = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        definitions: Iterable[EntityDefinition] = (),
    ) -> OrmContext:
        db = connect_sqlite(
            ":memory:" if settings.in_memory else settings.database_path,
            foreign_keys=settings.foreign_keys,
            log_sql=settings.log_sql,
            slow_query_threshold_ms=settings.slow_query_threshold_ms,
        )
        logger.debug("Opened database %s", settings.database_path)
        return cls(db, definitions, owns_db=True)

    def register(self, definition: EntityDefinition) -> EntityDefinition:
        self._validated = False
        return self.registry.register(definition)

    def migrate(self, definitions: Optional[Sequence[EntityDefinition]] = None) -> list[str]:
        statements = self.planner.migrate(definitions)
        self._validated = True
        return statements

    def validate(self) -> None:
        """Check relation keys and join tables once, before the first query.

        Raises:
            UnknownEntityError: A relation targets an unregistered entity.
            InvalidPredicateError: A relation key column is not declared.
        """

        if self._validated:
            return
        self.registry.validate()
        self._validated = True

    @contextlib.contextmanager
    def transaction(self) -> Iterator[OrmContext]:
        """Run operations in one commit/rollback block."""

        with self.db.transaction():
            yield self

    def query(self, entity: str | type) -> Query:
        return Query(entity)

    def find(self, query: Query) -> LoadedResultSet[Any]:
        """Run a query and eager-load its preloads.

        Everything is validated before the first statement is issued.
        """

        self.validate()
        definition = query.validate(self.registry)
        objects = crud.select(
            self.db,
            definition,
            where=query.predicate(),
            order_by=list(query.ordering) or None,
            limit=query.limit_value,
            offset=query.offset_value,
            include_deleted=query.include_deleted,
        )
        result = LoadedResultSet.wrap(definition.name, objects)
        tree = query.preload_tree()
        if tree and len(result):
            self.loader.load_tree(
                result.records, tree, include_deleted=query.include_deleted
            )
        return result

    def take(self, query: Query) -> Optional[LoadedRecord[Any]]:
        """Return the first matching record in query order, or `None`."""

        found = self.find(query.limit(1))
        return found[0] if len(found) else None

    def first(self, query: Query) -> LoadedRecord[Any]:
        """Return the first record ordered by primary key.

        Raises:
            RecordNotFoundError: No row matches.
        """

        definition = self.registry.resolve(query.entity)
        ordered = query if query.ordering else query.order_by(definition.pk.name)
        record = self.take(ordered)
        if record is None:
            raise RecordNotFoundError(definition.name, query.predicate())
        return record

    def count(self, query: Query) -> int:
        self.validate()
        definition = query.validate(self.registry)
        return crud.count(
            self.db,
            definition,
            where=query.predicate(),
            include_deleted=query.include_deleted,
        )

    def get(self, entity: str | type, pk_value: Any) -> Optional[Any]:
        """Fetch one object by primary key, or `None`."""

        self.validate()
        definition = self.registry.resolve(entity)
        rows = crud.select(
            self.db, definition, where=C.eq(definition.pk.name, pk_value), limit=1
        )
        return rows[0] if rows else None

    def get_or_raise(self, entity: str | type, pk_value: Any) -> Any:
        found = self.get(entity, pk_value)
        if found is None:
            definition = self.registry.resolve(entity)
            raise RecordNotFoundError(definition.name, {definition.pk.name: pk_value})
        return found

    def load(
        self,
        records: LoadedResultSet[Any] | Sequence[LoadedRecord[Any]],
        path: str,
        *scopes: Scope,
        include_deleted: bool = False,
    ) -> list[LoadedRecord[Any]]:
        """Eager-load a relation path onto already loaded records."""

        self.validate()
        return self.loader.load_path(
            list(records), path, list(scopes), include_deleted=include_deleted
        )

    def insert(self, obj: T) -> T:
        definition = self.registry.resolve(type(obj))
        with self.db.transaction():
            return crud.insert(self.db, definition, obj)

    def insert_many(self, objects: Sequence[T]) -> list[T]:
        with self.db.transaction():
            return [self.insert(obj) for obj in objects]

    def update(self, obj: Any) -> int:
        definition = self.registry.resolve(type(obj))
        with self.db.transaction():
            return crud.update(self.db, definition, obj)

    def delete(self, obj: Any, *, hard: bool = False) -> int:
        """Delete a record (soft-delete entities only get `deleted_at`)."""

        definition = self.registry.resolve(type(obj))
        with self.db.transaction():
            return crud.delete(self.db, definition, obj, hard=hard)

    def soft_delete(self, obj: Any) -> int:
        return self.delete(obj)

    def link(self, owner: Any, relation: str, targets: Sequence[Any]) -> int:
        """Add many-to-many pairs between `owner` and `targets`.

        Returns:
            Number of join rows created; already linked pairs are skipped.
        """

        definition, spec, join = self._join_for(owner, relation)
        target_key = self.registry.target_key(spec)
        assert spec.join_owner_column and spec.join_target_column
        with self.db.transaction():
            return crud.link(
                self.db,
                join,
                owner_column=spec.join_owner_column,
                target_column=spec.join_target_column,
                owner_key=getattr(owner, self.registry.owner_key(definition, spec)),
                target_keys=[getattr(target, target_key) for target in targets],
            )

    def unlink(
        self, owner: Any, relation: str, targets: Optional[Sequence[Any]] = None
    ) -> int:
        """Remove many-to-many pairs (all of the owner's when `targets` is None)."""

        definition, spec, join = self._join_for(owner, relation)
        target_key = self.registry.target_key(spec)
        assert spec.join_owner_column and spec.join_target_column
        keys = None if targets is None else [getattr(t, target_key) for t in targets]
        with self.db.transaction():
            return crud.unlink(
                self.db,
                join,
                owner_column=spec.join_owner_column,
                target_column=spec.join_target_column,
                owner_key=getattr(owner, self.registry.owner_key(definition, spec)),
                target_keys=keys,
            )

    def _join_for(self, owner: Any, relation: str):
        self.validate()
        definition = self.registry.resolve(type(owner))
        spec = definition.relation(relation)
        if spec.kind is not RelationKind.MANY_TO_MANY:
            raise RelationNotFoundError(
                definition.name,
                relation,
                [
                    item.name
                    for item in definition.relations
                    if item.kind is RelationKind.MANY_TO_MANY
                ],
            )
        join = next(
            item for item in self.registry.join_tables() if item.name == spec.join_table
        )
        return definition, spec, join

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._owns_db and isinstance(self.db, Database):
            self.db.close()

    def __enter__(self) -> OrmContext:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()


@contextlib.contextmanager
def open_context(
    settings: Settings,
    definitions: Iterable[EntityDefinition] = (),
    *,
    migrate: bool = True,
) -> Iterator[OrmContext]:
    """Open a context from settings, migrate, and close it on exit."""

    ctx = OrmContext.from_settings(settings, definitions)
    try:
        if migrate:
            ctx.migrate()
        yield ctx
    finally:
        ctx.close()

"""Additive, idempotent schema migration derived from the registry.

The planner creates missing tables, columns, indexes, and join tables. It
never drops or alters existing columns; type differences on existing
columns are logged and left alone.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Sequence

from ..errors import BackendError, MigrationError
from .contracts import DatabasePort, DialectPort
from .schema import (
    EntityDefinition,
    FieldDef,
    JoinTableDef,
    RelationKind,
    SchemaRegistry,
)
from .schema_columns import column_sql, resolve_sql_type

logger = logging.getLogger(__name__)


class MigrationState(str, Enum):
    UNMIGRATED = "unmigrated"
    MIGRATED = "migrated"


@dataclass(frozen=True)
class IndexDef:
    """One single-column index on an entity table."""

    name: str
    table: str
    column: str
    unique: bool = False


class MigrationPlanner:
    """Derives and applies create-if-missing DDL for registered entities."""

    def __init__(self, db: DatabasePort, registry: SchemaRegistry) -> None:
        self.db = db
        self.registry = registry
        self.state = MigrationState.UNMIGRATED

    @property
    def migrated(self) -> bool:
        return self.state is MigrationState.MIGRATED

    def plan(
        self, definitions: Optional[Sequence[EntityDefinition]] = None
    ) -> list[str]:
        """Return the DDL `migrate()` would run against the current database."""

        self.registry.validate()
        try:
            return self._plan(self._definitions(definitions))
        except BackendError as exc:
            raise MigrationError(f"Schema introspection failed: {exc}") from exc

    def migrate(
        self, definitions: Optional[Sequence[EntityDefinition]] = None
    ) -> list[str]:
        """Bring the database in line with the definitions (additive only).

        Returns:
            The executed statements. Empty when already migrated or when the
            database already matches.

        Raises:
            MigrationError: A statement failed or a missing column cannot be
                added safely.
        """

        if self.migrated and definitions is None:
            return []

        self.registry.validate()
        try:
            with self.db.transaction():
                statements = self._plan(self._definitions(definitions))
                for sql in statements:
                    logger.info("Migrating: %s", _one_line(sql))
                    self.db.execute(sql)
        except BackendError as exc:
            raise MigrationError(f"Migration failed: {exc}") from exc

        if definitions is None:
            self.state = MigrationState.MIGRATED
        if not statements:
            logger.debug("Schema already up to date.")
        return statements

    def _definitions(
        self, definitions: Optional[Sequence[EntityDefinition]]
    ) -> list[EntityDefinition]:
        if definitions is None:
            return list(self.registry)
        return [self.registry.resolve(item.name) for item in definitions]

    def _plan(self, definitions: list[EntityDefinition]) -> list[str]:
        d = self.db.dialect
        references = foreign_key_references(self.registry)
        statements: list[str] = []

        for definition in creation_order(definitions, references):
            table = definition.table_name
            table_refs = references.get(table, {})
            if not self._table_exists(table):
                statements.append(create_table_sql(definition, d, table_refs))
            else:
                statements.extend(self._missing_column_sql(definition, table_refs))

            existing_indexes = self._existing_indexes(table)
            for index in index_defs(definition):
                if index.name not in existing_indexes:
                    statements.append(create_index_sql(index, d))

        wanted = {definition.name for definition in definitions}
        for join in self._join_tables_for(wanted):
            if not self._table_exists(join.name):
                statements.append(create_join_table_sql(join, d))
                continue
            existing = self._existing_columns(join.name)
            missing = [col for col in join.columns if col not in existing]
            if missing:
                raise MigrationError(
                    f"Join table {join.name!r} exists without columns {missing}."
                )
        return statements

    def _join_tables_for(self, entity_names: set[str]) -> list[JoinTableDef]:
        names = {
            spec.join_table
            for owner in self.registry
            if owner.name in entity_names
            for spec in owner.relations
            if spec.kind is RelationKind.MANY_TO_MANY
        }
        return [join for join in self.registry.join_tables() if join.name in names]

    def _missing_column_sql(
        self,
        definition: EntityDefinition,
        table_refs: dict[str, tuple[str, str]],
    ) -> list[str]:
        d = self.db.dialect
        table = definition.table_name
        existing = self._existing_columns(table)
        statements: list[str] = []
        for field in definition.fields:
            current = existing.get(field.name)
            if current is None:
                if field.primary_key or not field.is_nullable:
                    raise MigrationError(
                        f"Column {table}.{field.name} is missing and cannot be added "
                        "automatically (primary key or NOT NULL without default)."
                    )
                statements.append(
                    f"ALTER TABLE {d.q(table)} ADD COLUMN "
                    f"{column_sql(field, d, references=table_refs.get(field.name))};"
                )
                continue
            expected = _normalize_type(resolve_sql_type(field))
            if field.primary_key and field.auto:
                continue
            if not _types_compatible(expected, current):
                logger.warning(
                    "Column %s.%s has type %s, expected %s; left unchanged.",
                    table,
                    field.name,
                    current,
                    expected,
                )
        return statements

    def _table_exists(self, table: str) -> bool:
        d = self.db.dialect
        ph = d.placeholder("table")
        if d.name == "sqlite":
            sql = (
                "SELECT 1 AS exists_flag FROM sqlite_master "
                f"WHERE type = 'table' AND name = {ph} LIMIT 1;"
            )
        else:
            sql = (
                "SELECT 1 AS exists_flag FROM information_schema.tables "
                f"WHERE table_schema = current_schema() AND table_name = {ph} LIMIT 1;"
            )
        return self.db.fetchone(sql, _one_param(d, "table", table)) is not None

    def _existing_columns(self, table: str) -> dict[str, str]:
        d = self.db.dialect
        if d.name == "sqlite":
            rows = self.db.fetchall(f"PRAGMA table_info({d.q(table)});")
            return {
                str(_row_get(row, "name")): _normalize_type(_row_get(row, "type"))
                for row in rows
            }

        ph = d.placeholder("table")
        sql = (
            "SELECT column_name, data_type FROM information_schema.columns "
            f"WHERE table_schema = current_schema() AND table_name = {ph} "
            "ORDER BY ordinal_position;"
        )
        rows = self.db.fetchall(sql, _one_param(d, "table", table))
        return {
            str(_row_get(row, "column_name")): _normalize_type(_row_get(row, "data_type"))
            for row in rows
        }

    def _existing_indexes(self, table: str) -> set[str]:
        d = self.db.dialect
        if d.name == "sqlite":
            rows = self.db.fetchall(f"PRAGMA index_list({d.q(table)});")
            return {str(_row_get(row, "name")) for row in rows}

        ph = d.placeholder("table")
        sql = (
            "SELECT indexname FROM pg_indexes "
            f"WHERE schemaname = current_schema() AND tablename = {ph};"
        )
        rows = self.db.fetchall(sql, _one_param(d, "table", table))
        return {str(_row_get(row, "indexname")) for row in rows}


def foreign_key_references(
    registry: SchemaRegistry,
) -> dict[str, dict[str, tuple[str, str]]]:
    """Map `table -> column -> (referenced table, referenced column)`."""

    refs: dict[str, dict[str, tuple[str, str]]] = defaultdict(dict)
    for owner in registry:
        for spec in owner.relations:
            target = registry.target_of(spec)
            if spec.kind is RelationKind.BELONGS_TO:
                assert spec.foreign_key is not None
                refs[owner.table_name][spec.foreign_key] = (
                    target.table_name,
                    registry.target_key(spec),
                )
            elif spec.kind in (RelationKind.HAS_ONE, RelationKind.HAS_MANY):
                assert spec.foreign_key is not None
                refs[target.table_name][spec.foreign_key] = (
                    owner.table_name,
                    registry.owner_key(owner, spec),
                )
    return dict(refs)


def creation_order(
    definitions: Iterable[EntityDefinition],
    references: dict[str, dict[str, tuple[str, str]]],
) -> list[EntityDefinition]:
    """Order definitions so referenced tables are created first where possible."""

    pending = list(definitions)
    ordered: list[EntityDefinition] = []
    placed: set[str] = set()
    pending_tables = {item.table_name for item in pending}
    while pending:
        progressed = False
        for definition in list(pending):
            deps = {
                ref_table
                for ref_table, _ in references.get(definition.table_name, {}).values()
                if ref_table != definition.table_name and ref_table in pending_tables
            }
            if deps <= placed:
                ordered.append(definition)
                placed.add(definition.table_name)
                pending.remove(definition)
                progressed = True
        if not progressed:
            # Reference cycle: keep declaration order for the rest.
            ordered.extend(pending)
            break
    return ordered


def create_table_sql(
    definition: EntityDefinition,
    dialect: DialectPort,
    references: Optional[dict[str, tuple[str, str]]] = None,
) -> str:
    """Build `CREATE TABLE IF NOT EXISTS` for one entity."""

    references = references or {}
    column_definitions = [
        column_sql(field, dialect, references=references.get(field.name))
        for field in definition.fields
    ]
    return (
        f"CREATE TABLE IF NOT EXISTS {dialect.q(definition.table_name)} (\n  "
        + ",\n  ".join(column_definitions)
        + "\n);"
    )


def index_defs(definition: EntityDefinition) -> list[IndexDef]:
    table = definition.table_name
    indexes: list[IndexDef] = []
    for field in definition.fields:
        if field.primary_key or not (field.index or field.unique):
            continue
        prefix = "uidx" if field.unique else "idx"
        indexes.append(
            IndexDef(
                name=f"{prefix}_{table}_{field.name}",
                table=table,
                column=field.name,
                unique=field.unique,
            )
        )
    return indexes


def create_index_sql(index: IndexDef, dialect: DialectPort) -> str:
    prefix = "CREATE UNIQUE INDEX" if index.unique else "CREATE INDEX"
    return (
        f"{prefix} IF NOT EXISTS {dialect.q(index.name)} "
        f"ON {dialect.q(index.table)} ({dialect.q(index.column)});"
    )


def create_join_table_sql(join: JoinTableDef, dialect: DialectPort) -> str:
    """Build the join table: two FK columns and a composite primary key."""

    first, second = join.columns
    columns = []
    for name in join.columns:
        ref_table, ref_column = join.references[name]
        key_field = FieldDef(name, join.types[name], nullable=False)
        sql_type = resolve_sql_type(key_field)
        columns.append(
            f"{dialect.q(name)} {sql_type} NOT NULL "
            f"REFERENCES {dialect.q(ref_table)} ({dialect.q(ref_column)}) ON DELETE CASCADE"
        )
    columns.append(f"PRIMARY KEY ({dialect.q(first)}, {dialect.q(second)})")
    return (
        f"CREATE TABLE IF NOT EXISTS {dialect.q(join.name)} (\n  "
        + ",\n  ".join(columns)
        + "\n);"
    )


_TYPE_ALIASES = {
    "INT": "INTEGER",
    "BIGINT": "INTEGER",
    "SMALLINT": "INTEGER",
    "BIGSERIAL": "INTEGER",
    "SERIAL": "INTEGER",
    "BOOL": "BOOLEAN",
    "DATETIME": "TIMESTAMP",
    "VARCHAR": "TEXT",
    "CHARACTER": "TEXT",
    "CHAR": "TEXT",
    "DOUBLE": "REAL",
    "FLOAT": "REAL",
    "DECIMAL": "NUMERIC",
    "BYTEA": "BLOB",
}


def _normalize_type(raw: Any) -> str:
    tokens = str(raw or "").upper().replace("(", " ").replace(")", " ").split()
    if not tokens:
        return ""
    if tokens[:2] == ["DOUBLE", "PRECISION"]:
        return "REAL"
    if tokens[0] == "TIMESTAMP":
        return "TIMESTAMP"
    return _TYPE_ALIASES.get(tokens[0], tokens[0])


def _types_compatible(expected: str, current: str) -> bool:
    return not current or _normalize_type(expected) == _normalize_type(current)


def _row_get(row: Any, *keys: str, default: Any = None) -> Any:
    lowered = {str(key).lower(): value for key, value in row.items()}
    for key in keys:
        if key.lower() in lowered:
            return lowered[key.lower()]
    return default


def _one_param(dialect: DialectPort, key: str, value: Any) -> Any:
    if dialect.paramstyle == "named":
        return {key: value}
    return [value]


def _one_line(sql: str) -> str:
    return " ".join(sql.split())

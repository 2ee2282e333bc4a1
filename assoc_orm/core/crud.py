"""Low-level row reads and writes used by the context and the loader."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from .codecs import model_to_row, row_to_model, serialize_expression, serialize_value
from .conditions import C, OrderBy, conjoin
from .contracts import DatabasePort
from .query_builder import (
    WhereInput,
    append_limit_offset,
    compile_order_by,
    compile_where,
    normalize_where,
)
from .schema import EntityDefinition, FieldDef, JoinTableDef


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def insert(db: DatabasePort, definition: EntityDefinition, obj: Any) -> Any:
    """Insert an object and populate its auto primary key."""

    d = db.dialect
    pk = definition.pk
    if definition.soft_delete:
        now = utcnow()
        if getattr(obj, "created_at", None) is None:
            obj.created_at = now
        if getattr(obj, "updated_at", None) is None:
            obj.updated_at = now

    data = model_to_row(definition, obj, dialect_name=d.name)
    columns = definition.columns
    auto_pk = pk.name if pk.auto else None
    if auto_pk and data.get(auto_pk) is None:
        columns = [name for name in columns if name != auto_pk]

    table_sql = d.q(definition.table_name)
    if columns:
        column_sql = ", ".join(d.q(name) for name in columns)
        if d.paramstyle == "named":
            placeholders = ", ".join(f":{name}" for name in columns)
            params: Any = {name: data[name] for name in columns}
        else:
            placeholders = ", ".join(d.placeholder(name) for name in columns)
            params = [data[name] for name in columns]
        sql = f"INSERT INTO {table_sql} ({column_sql}) VALUES ({placeholders})"
    else:
        sql = f"INSERT INTO {table_sql} DEFAULT VALUES"
        params = None

    if auto_pk and getattr(obj, auto_pk) is None and d.supports_returning:
        row = db.fetchone(sql + d.returning_clause(auto_pk) + ";", params)
        if row and auto_pk in row:
            setattr(obj, auto_pk, row[auto_pk])
        return obj

    cursor = db.execute(sql + ";", params)
    if auto_pk and getattr(obj, auto_pk) is None:
        new_id = d.get_lastrowid(cursor)
        if new_id is not None:
            setattr(obj, auto_pk, new_id)
    return obj


def insert_many(
    db: DatabasePort, definition: EntityDefinition, objects: Sequence[Any]
) -> list[Any]:
    """Insert many objects and return inserted objects."""

    return [insert(db, definition, obj) for obj in objects]


def update(db: DatabasePort, definition: EntityDefinition, obj: Any) -> int:
    """Update one row identified by primary key; returns affected rows."""

    d = db.dialect
    pk = definition.pk.name
    pk_value = getattr(obj, pk)
    if pk_value is None:
        raise ValueError("Cannot UPDATE without PK set on object.")
    if definition.soft_delete:
        obj.updated_at = utcnow()

    data = model_to_row(definition, obj, dialect_name=d.name)
    writable = [name for name in definition.columns if name != pk]
    if not writable:
        raise ValueError(
            "Cannot UPDATE model with no writable columns besides primary key."
        )

    table_sql = d.q(definition.table_name)
    if d.paramstyle == "named":
        set_clause = ", ".join(f"{d.q(name)} = :{name}" for name in writable)
        sql = f"UPDATE {table_sql} SET {set_clause} WHERE {d.q(pk)} = :{pk};"
        params: Any = {name: data[name] for name in writable}
        params[pk] = data[pk]
    else:
        set_clause = ", ".join(f"{d.q(name)} = {d.placeholder(name)}" for name in writable)
        sql = f"UPDATE {table_sql} SET {set_clause} WHERE {d.q(pk)} = {d.placeholder(pk)};"
        params = [data[name] for name in writable] + [data[pk]]
    return db.execute(sql, params).rowcount


def delete(
    db: DatabasePort, definition: EntityDefinition, obj: Any, *, hard: bool = False
) -> int:
    """Delete one row; soft-delete entities only get `deleted_at` stamped."""

    pk = definition.pk.name
    pk_value = getattr(obj, pk)
    if pk_value is None:
        raise ValueError("Cannot DELETE without PK set on object.")

    if definition.soft_delete and not hard:
        obj.deleted_at = utcnow()
        return update(db, definition, obj)

    d = db.dialect
    where = compile_where(C.eq(pk, pk_value), d)
    sql = f"DELETE FROM {d.q(definition.table_name)}{where.sql};"
    return db.execute(sql, where.params).rowcount


def select(
    db: DatabasePort,
    definition: EntityDefinition,
    *,
    where: WhereInput = None,
    order_by: Optional[Sequence[OrderBy]] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    include_deleted: bool = False,
) -> list[Any]:
    """Select rows of one entity and map them to model objects."""

    d = db.dialect
    expr = _visible(definition, normalize_where(where), include_deleted)
    if expr is not None:
        expr = serialize_expression(definition, expr, dialect_name=d.name)

    sql = f"SELECT * FROM {d.q(definition.table_name)}"
    where_fragment = compile_where(expr, d)
    sql += where_fragment.sql
    sql += compile_order_by(order_by, d)
    sql, params = append_limit_offset(
        sql,
        where_fragment.params,
        limit=limit,
        offset=offset,
        dialect=d,
    )
    rows = db.fetchall(sql + ";", params)
    return [row_to_model(definition, row) for row in rows]


def count(
    db: DatabasePort,
    definition: EntityDefinition,
    *,
    where: WhereInput = None,
    include_deleted: bool = False,
) -> int:
    """Count rows matching optional conditions."""

    d = db.dialect
    expr = _visible(definition, normalize_where(where), include_deleted)
    if expr is not None:
        expr = serialize_expression(definition, expr, dialect_name=d.name)

    where_fragment = compile_where(expr, d)
    sql = f'SELECT COUNT(*) AS "__count" FROM {d.q(definition.table_name)}'
    row = db.fetchone(sql + where_fragment.sql + ";", where_fragment.params)
    if not row:
        return 0
    return int(row["__count"])


def select_join_rows(
    db: DatabasePort,
    join: JoinTableDef,
    *,
    owner_column: str,
    target_column: str,
    owner_keys: Sequence[Any],
) -> list[tuple[Any, Any]]:
    """Return `(owner_key, target_key)` pairs for the given owners."""

    d = db.dialect
    where = compile_where(C.in_(owner_column, owner_keys), d)
    sql = (
        f"SELECT {d.q(owner_column)}, {d.q(target_column)} FROM {d.q(join.name)}"
        f"{where.sql}"
        f" ORDER BY {d.q(owner_column)} ASC, {d.q(target_column)} ASC;"
    )
    rows = db.fetchall(sql, where.params)
    return [(row[owner_column], row[target_column]) for row in rows]


def link(
    db: DatabasePort,
    join: JoinTableDef,
    *,
    owner_column: str,
    target_column: str,
    owner_key: Any,
    target_keys: Sequence[Any],
) -> int:
    """Insert missing join rows; existing pairs are left untouched."""

    if not target_keys:
        return 0

    existing = {
        target
        for _, target in select_join_rows(
            db,
            join,
            owner_column=owner_column,
            target_column=target_column,
            owner_keys=[owner_key],
        )
    }
    d = db.dialect
    owner_type_field = join.types[owner_column]
    target_type_field = join.types[target_column]
    sql = (
        f"INSERT INTO {d.q(join.name)} ({d.q(owner_column)}, {d.q(target_column)}) "
        f"VALUES ({d.placeholder('owner')}, {d.placeholder('target')});"
    )
    created = 0
    for target_key in target_keys:
        if target_key in existing:
            continue
        existing.add(target_key)
        owner_value = _encode_key(owner_type_field, owner_key, d.name)
        target_value = _encode_key(target_type_field, target_key, d.name)
        params: Any = (
            {"owner": owner_value, "target": target_value}
            if d.paramstyle == "named"
            else [owner_value, target_value]
        )
        db.execute(sql, params)
        created += 1
    return created


def unlink(
    db: DatabasePort,
    join: JoinTableDef,
    *,
    owner_column: str,
    target_column: str,
    owner_key: Any,
    target_keys: Optional[Sequence[Any]] = None,
) -> int:
    """Delete join rows of one owner (all of them when `target_keys` is None)."""

    condition = C.eq(owner_column, owner_key)
    if target_keys is not None:
        condition = C.and_(condition, C.in_(target_column, target_keys))
    where = compile_where(condition, db.dialect)
    sql = f"DELETE FROM {db.dialect.q(join.name)}{where.sql};"
    return db.execute(sql, where.params).rowcount


def _visible(
    definition: EntityDefinition,
    expr: Any,
    include_deleted: bool,
) -> Any:
    if definition.soft_delete and not include_deleted:
        return conjoin(expr, C.is_null("deleted_at"))
    return expr


def _encode_key(type_: Any, value: Any, dialect_name: str) -> Any:
    return serialize_value(FieldDef("key", type_), value, dialect_name=dialect_name)

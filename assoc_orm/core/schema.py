"""Schema registry: entity definitions, field definitions, and relations.

Definitions are explicit values built with `EntityDefinition(...)` and the
helper constructors below. Nothing is discovered from type annotations;
the bound model class is only used to construct records.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, fields, is_dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Optional

from ..errors import (
    DuplicateEntityError,
    InvalidPredicateError,
    RelationNotFoundError,
    UnknownEntityError,
)

SOFT_DELETE_COLUMNS = ("created_at", "updated_at", "deleted_at")


class RelationKind(str, Enum):
    """Supported association kinds."""

    HAS_ONE = "has_one"
    HAS_MANY = "has_many"
    BELONGS_TO = "belongs_to"
    MANY_TO_MANY = "many_to_many"


@dataclass(frozen=True)
class FieldDef:
    """One typed column of an entity.

    Attributes:
        name: Column and model attribute name.
        type: Python type used for SQL type resolution and value codecs.
        primary_key: Whether the column is the primary key.
        auto: Auto-increment primary key.
        size: Emit `VARCHAR(size)` for string columns.
        nullable: Allow NULL (ignored for primary keys).
        index: Create a non-unique index on the column.
        unique: Create a unique index on the column.
        text: Force `TEXT` for string columns.
    """

    name: str
    type: Any = str
    primary_key: bool = False
    auto: bool = False
    size: Optional[int] = None
    nullable: bool = True
    index: bool = False
    unique: bool = False
    text: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise TypeError("Field name must be a non-empty string.")
        if self.auto and not self.primary_key:
            raise ValueError(f"Field {self.name!r}: auto requires primary_key.")
        if self.size is not None and self.size <= 0:
            raise ValueError(f"Field {self.name!r}: size must be positive.")

    @property
    def is_nullable(self) -> bool:
        return self.nullable and not self.primary_key


@dataclass(frozen=True)
class RelationDescriptor:
    """Normalized association from an owner entity to a target entity.

    Key columns by kind:
    - `has_one` / `has_many`: `foreign_key` lives on the target and points
      at `owner_key` on the owner.
    - `belongs_to`: `foreign_key` lives on the owner and points at
      `target_key` on the target.
    - `many_to_many`: `join_table` holds `join_owner_column` (-> owner_key)
      and `join_target_column` (-> target_key).
    """

    name: str
    kind: RelationKind
    target: str
    foreign_key: Optional[str] = None
    owner_key: Optional[str] = None
    target_key: Optional[str] = None
    join_table: Optional[str] = None
    join_owner_column: Optional[str] = None
    join_target_column: Optional[str] = None

    @property
    def many(self) -> bool:
        return self.kind in (RelationKind.HAS_MANY, RelationKind.MANY_TO_MANY)


@dataclass(frozen=True)
class JoinTableDef:
    """Join table backing one or two symmetric many-to-many relations."""

    name: str
    columns: tuple[str, str]
    references: Mapping[str, tuple[str, str]]
    types: Mapping[str, Any]


@dataclass(frozen=True)
class EntityDefinition:
    """Declarative description of one entity and its table.

    Relation key defaults are filled in from the entity names, so
    `has_many("Notes", "Note")` on `User` uses `note.user_id -> user.id`.
    """

    name: str
    model: type
    fields: tuple[FieldDef, ...]
    relations: tuple[RelationDescriptor, ...] = ()
    table: Optional[str] = None
    soft_delete: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise TypeError("Entity name must be a non-empty string.")
        if not is_dataclass(self.model):
            raise TypeError(f"{self.name}: model must be a dataclass type.")

        declared = tuple(self.fields)
        if self.soft_delete:
            present = {item.name for item in declared}
            declared += tuple(
                FieldDef(name, datetime, index=name == "deleted_at")
                for name in SOFT_DELETE_COLUMNS
                if name not in present
            )
        object.__setattr__(self, "fields", declared)
        object.__setattr__(self, "relations", tuple(self.relations))
        if not self.table:
            object.__setattr__(self, "table", default_table_name(self.name))

        self._validate_fields()
        object.__setattr__(
            self,
            "relations",
            tuple(self._with_relation_defaults(spec) for spec in self.relations),
        )
        names = [spec.name for spec in self.relations]
        if len(names) != len(set(names)):
            raise ValueError(f"{self.name}: duplicate relation names {names}.")

    @property
    def table_name(self) -> str:
        assert self.table is not None
        return self.table

    @property
    def pk(self) -> FieldDef:
        return next(item for item in self.fields if item.primary_key)

    @property
    def columns(self) -> list[str]:
        return [item.name for item in self.fields]

    def has_column(self, name: str) -> bool:
        return any(item.name == name for item in self.fields)

    def field(self, name: str) -> FieldDef:
        for item in self.fields:
            if item.name == name:
                return item
        raise InvalidPredicateError(f"Unknown column {name!r} on {self.name}.")

    def relation(self, name: str) -> RelationDescriptor:
        for spec in self.relations:
            if spec.name == name:
                return spec
        raise RelationNotFoundError(
            self.name, name, (spec.name for spec in self.relations)
        )

    def _validate_fields(self) -> None:
        names = [item.name for item in self.fields]
        if not names:
            raise ValueError(f"{self.name}: at least one field is required.")
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"{self.name}: duplicate fields {duplicates}.")

        pks = [item for item in self.fields if item.primary_key]
        if len(pks) != 1:
            raise ValueError(f"{self.name}: exactly one primary key field is required.")

        model_attrs = {item.name for item in fields(self.model)}
        missing = [name for name in names if name not in model_attrs]
        if missing:
            raise ValueError(
                f"{self.name}: model {self.model.__name__} has no attributes {missing}."
            )

    def _with_relation_defaults(self, spec: RelationDescriptor) -> RelationDescriptor:
        owner_fk = f"{snake_case(self.name)}_id"
        target_fk = f"{snake_case(spec.target)}_id"
        pk = self.pk.name

        if spec.kind in (RelationKind.HAS_ONE, RelationKind.HAS_MANY):
            return replace(
                spec,
                foreign_key=spec.foreign_key or owner_fk,
                owner_key=spec.owner_key or pk,
            )
        if spec.kind is RelationKind.BELONGS_TO:
            resolved = replace(spec, foreign_key=spec.foreign_key or target_fk)
            assert resolved.foreign_key is not None
            if not self.has_column(resolved.foreign_key):
                raise ValueError(
                    f"Relation {spec.name!r} on {self.name} uses unknown "
                    f"foreign_key {resolved.foreign_key!r}."
                )
            return resolved

        if not spec.join_table:
            raise ValueError(f"Relation {spec.name!r} on {self.name} needs join_table.")
        owner_column = spec.join_owner_column or owner_fk
        target_column = spec.join_target_column or target_fk
        if owner_column == target_column:
            raise ValueError(
                f"Relation {spec.name!r} on {self.name}: join columns must differ."
            )
        return replace(
            spec,
            owner_key=spec.owner_key or pk,
            join_owner_column=owner_column,
            join_target_column=target_column,
        )


class SchemaRegistry:
    """Holds the entity definitions used by one `OrmContext`."""

    def __init__(self, definitions: Iterable[EntityDefinition] = ()) -> None:
        self._by_name: dict[str, EntityDefinition] = {}
        self._by_model: dict[type, EntityDefinition] = {}
        self.register_many(definitions)

    def register(self, definition: EntityDefinition) -> EntityDefinition:
        """Add one definition; names and models must be unique."""

        if definition.name in self._by_name:
            raise DuplicateEntityError(definition.name)
        if definition.model in self._by_model:
            other = self._by_model[definition.model]
            raise DuplicateEntityError(
                f"{definition.name} (model {definition.model.__name__} "
                f"already bound to {other.name})"
            )
        self._by_name[definition.name] = definition
        self._by_model[definition.model] = definition
        return definition

    def register_many(self, definitions: Iterable[EntityDefinition]) -> None:
        for definition in definitions:
            self.register(definition)

    def resolve(self, name_or_model: str | type) -> EntityDefinition:
        """Return the definition for an entity name or bound model class."""

        if isinstance(name_or_model, type):
            found = self._by_model.get(name_or_model)
            if found is None:
                raise UnknownEntityError(name_or_model.__name__, self._by_name)
            return found

        found = self._by_name.get(name_or_model)
        if found is None:
            raise UnknownEntityError(name_or_model, self._by_name)
        return found

    def __contains__(self, name_or_model: object) -> bool:
        if isinstance(name_or_model, type):
            return name_or_model in self._by_model
        return name_or_model in self._by_name

    def __iter__(self) -> Iterator[EntityDefinition]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)

    def target_of(self, spec: RelationDescriptor) -> EntityDefinition:
        return self.resolve(spec.target)

    def target_key(self, spec: RelationDescriptor) -> str:
        """Return the key column on the target side of a relation."""

        if spec.kind in (RelationKind.HAS_ONE, RelationKind.HAS_MANY):
            assert spec.foreign_key is not None
            return spec.foreign_key
        return spec.target_key or self.target_of(spec).pk.name

    def owner_key(self, owner: EntityDefinition, spec: RelationDescriptor) -> str:
        """Return the key column on the owner side of a relation."""

        if spec.kind is RelationKind.BELONGS_TO:
            assert spec.foreign_key is not None
            return spec.foreign_key
        return spec.owner_key or owner.pk.name

    def validate(self) -> None:
        """Check that every relation points at registered entities and columns."""

        for owner in self:
            for spec in owner.relations:
                target = self.target_of(spec)
                owner_key = self.owner_key(owner, spec)
                target_key = self.target_key(spec)
                if not owner.has_column(owner_key):
                    raise InvalidPredicateError(
                        f"Relation {spec.name!r} on {owner.name} uses unknown "
                        f"column {owner_key!r}."
                    )
                if not target.has_column(target_key):
                    raise InvalidPredicateError(
                        f"Relation {spec.name!r} on {owner.name} points to unknown "
                        f"column {target_key!r} on {target.name}."
                    )
        self.join_tables()

    def join_tables(self) -> list[JoinTableDef]:
        """Derive join tables from many-to-many relations.

        Two relations naming the same join table must use the same pair of
        columns pointing at the same keys, which makes them one symmetric
        association.
        """

        by_name: dict[str, JoinTableDef] = {}
        for owner in self:
            for spec in owner.relations:
                if spec.kind is not RelationKind.MANY_TO_MANY:
                    continue
                assert spec.join_table and spec.join_owner_column and spec.join_target_column
                target = self.target_of(spec)
                owner_key = self.owner_key(owner, spec)
                target_key = self.target_key(spec)
                candidate = JoinTableDef(
                    name=spec.join_table,
                    columns=(spec.join_owner_column, spec.join_target_column),
                    references={
                        spec.join_owner_column: (owner.table_name, owner_key),
                        spec.join_target_column: (target.table_name, target_key),
                    },
                    types={
                        spec.join_owner_column: owner.field(owner_key).type,
                        spec.join_target_column: target.field(target_key).type,
                    },
                )
                existing = by_name.get(spec.join_table)
                if existing is None:
                    by_name[spec.join_table] = candidate
                    continue
                if set(existing.columns) != set(candidate.columns) or dict(
                    existing.references
                ) != dict(candidate.references):
                    raise ValueError(
                        f"Join table {spec.join_table!r} is declared with "
                        "conflicting columns."
                    )
        return list(by_name.values())


def column(name: str, type_: Any = str, **options: Any) -> FieldDef:
    """Build a regular column definition."""

    return FieldDef(name, type_, **options)


def primary_key(name: str = "id", type_: Any = int, *, auto: bool = True) -> FieldDef:
    """Build a primary key column (auto-increment integer by default)."""

    return FieldDef(name, type_, primary_key=True, auto=auto, nullable=False)


def has_one(
    name: str,
    target: str,
    *,
    foreign_key: str | None = None,
    owner_key: str | None = None,
) -> RelationDescriptor:
    return RelationDescriptor(
        name, RelationKind.HAS_ONE, target, foreign_key=foreign_key, owner_key=owner_key
    )


def has_many(
    name: str,
    target: str,
    *,
    foreign_key: str | None = None,
    owner_key: str | None = None,
) -> RelationDescriptor:
    return RelationDescriptor(
        name, RelationKind.HAS_MANY, target, foreign_key=foreign_key, owner_key=owner_key
    )


def belongs_to(
    name: str,
    target: str,
    *,
    foreign_key: str | None = None,
    target_key: str | None = None,
) -> RelationDescriptor:
    return RelationDescriptor(
        name,
        RelationKind.BELONGS_TO,
        target,
        foreign_key=foreign_key,
        target_key=target_key,
    )


def many_to_many(
    name: str,
    target: str,
    *,
    join_table: str,
    owner_column: str | None = None,
    target_column: str | None = None,
) -> RelationDescriptor:
    """Build a many-to-many relation through `join_table`.

    Declare the inverse side on the target with the same `join_table` to
    navigate the association in both directions.
    """

    return RelationDescriptor(
        name,
        RelationKind.MANY_TO_MANY,
        target,
        join_table=join_table,
        join_owner_column=owner_column,
        join_target_column=target_column,
    )


def snake_case(name: str) -> str:
    """Convert `CreditCard` to `credit_card`."""

    step = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", step).lower()


def default_table_name(entity_name: str) -> str:
    """Pluralized snake-case table name (`CreditCard` -> `credit_cards`)."""

    return _pluralize(snake_case(entity_name))


def _pluralize(name: str) -> str:
    if name.endswith("y") and len(name) > 1 and name[-2] not in "aeiou":
        return f"{name[:-1]}ies"
    if name.endswith(("s", "x", "z", "ch", "sh")):
        return f"{name}es"
    return f"{name}s"

"""Public core API for schema, query building, loading, and migration."""

from .conditions import C, Condition, ConditionGroup, NotCondition, OrderBy, WhereExpression
from .context import OrmContext, open_context
from .loader import AssociationLoader
from .migration import MigrationPlanner, MigrationState
from .query import Preload, Query
from .query_builder import WhereInput
from .records import LoadedRecord, LoadedResultSet
from .schema import (
    EntityDefinition,
    FieldDef,
    JoinTableDef,
    RelationDescriptor,
    RelationKind,
    SchemaRegistry,
    belongs_to,
    column,
    has_many,
    has_one,
    many_to_many,
    primary_key,
)
from .scopes import (
    Scope,
    combine,
    field_ends_with,
    field_equals,
    field_greater_than,
    field_like,
    validate_predicate,
    where,
)

__all__ = [
    "C",
    "Condition",
    "ConditionGroup",
    "NotCondition",
    "OrderBy",
    "WhereExpression",
    "WhereInput",
    "OrmContext",
    "open_context",
    "AssociationLoader",
    "MigrationPlanner",
    "MigrationState",
    "Preload",
    "Query",
    "LoadedRecord",
    "LoadedResultSet",
    "EntityDefinition",
    "FieldDef",
    "JoinTableDef",
    "RelationDescriptor",
    "RelationKind",
    "SchemaRegistry",
    "belongs_to",
    "column",
    "has_many",
    "has_one",
    "many_to_many",
    "primary_key",
    "Scope",
    "combine",
    "field_ends_with",
    "field_equals",
    "field_greater_than",
    "field_like",
    "validate_predicate",
    "where",
]

"""Exception types raised by the schema registry, query layer, and loader."""

from __future__ import annotations

from typing import Any, Iterable


class OrmError(Exception):
    """Base class for all package errors."""


class UnknownEntityError(OrmError, LookupError):
    """Raised when an entity name is not present in the registry."""

    def __init__(self, name: str, available: Iterable[str] = ()):
        self.name = name
        listed = ", ".join(sorted(available)) or "<none>"
        super().__init__(f"Unknown entity {name!r}. Registered: {listed}")


class DuplicateEntityError(OrmError, ValueError):
    """Raised when an entity name is registered twice."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Entity {name!r} is already registered.")


class InvalidPredicateError(OrmError, ValueError):
    """Raised when a predicate references an unknown column or operator."""


class RelationNotFoundError(OrmError, LookupError):
    """Raised when a relation name does not exist on an entity."""

    def __init__(self, entity: str, relation: str, available: Iterable[str] = ()):
        self.entity = entity
        self.relation = relation
        listed = ", ".join(sorted(available)) or "<none>"
        super().__init__(
            f"Unknown relation {relation!r} on {entity}. Available: {listed}"
        )


class RecordNotFoundError(OrmError, LookupError):
    """Raised when a lookup that expects exactly one row finds none."""

    def __init__(self, entity: str, criteria: Any = None):
        self.entity = entity
        self.criteria = criteria
        message = f"No {entity} record found"
        if criteria is not None:
            message += f" for {criteria!r}"
        super().__init__(message + ".")


class BackendError(OrmError):
    """Wraps a failure raised by the DB-API driver."""

    def __init__(self, message: str, *, sql: str | None = None):
        self.sql = sql
        super().__init__(message)


class MigrationError(OrmError):
    """Raised when schema migration cannot complete."""

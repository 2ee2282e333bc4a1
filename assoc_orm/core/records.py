"""Loaded result sets: root records plus their attached relations."""

from __future__ import annotations

from collections.abc import Sequence as SequenceABC
from dataclasses import dataclass, field
from typing import Any, Generic, Iterator, Optional, Sequence, TypeVar, overload

T = TypeVar("T")


@dataclass
class LoadedRecord(Generic[T]):
    """One record and the related records attached to it.

    `relations` maps relation name to a `LoadedRecord` (or `None`) for
    single-valued relations and to a list of `LoadedRecord` for collections.
    The dict and its lists belong to this record only.
    """

    obj: T
    entity: str
    relations: dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, relation: str) -> Any:
        try:
            return self.relations[relation]
        except KeyError:
            raise KeyError(
                f"Relation {relation!r} was not loaded on {self.entity}."
            ) from None

    def is_loaded(self, relation: str) -> bool:
        return relation in self.relations

    def one(self, relation: str) -> Optional["LoadedRecord[Any]"]:
        """Return a single-valued relation (`None` when no row matched)."""

        value = self[relation]
        if isinstance(value, list):
            raise TypeError(f"Relation {relation!r} on {self.entity} is a collection.")
        return value

    def many(self, relation: str) -> list["LoadedRecord[Any]"]:
        """Return a collection relation."""

        value = self[relation]
        if not isinstance(value, list):
            raise TypeError(f"Relation {relation!r} on {self.entity} is single-valued.")
        return value

    def related_objects(self, relation: str) -> list[Any]:
        """Return the bare model objects of a relation."""

        value = self[relation]
        if value is None:
            return []
        if isinstance(value, list):
            return [item.obj for item in value]
        return [value.obj]


class LoadedResultSet(SequenceABC, Generic[T]):
    """Ordered root records of one query."""

    def __init__(self, entity: str, records: Sequence[LoadedRecord[T]] = ()) -> None:
        self.entity = entity
        self._records: list[LoadedRecord[T]] = list(records)

    @classmethod
    def wrap(cls, entity: str, objects: Sequence[T]) -> LoadedResultSet[T]:
        return cls(entity, [LoadedRecord(obj=obj, entity=entity) for obj in objects])

    @overload
    def __getitem__(self, index: int) -> LoadedRecord[T]: ...

    @overload
    def __getitem__(self, index: slice) -> list[LoadedRecord[T]]: ...

    def __getitem__(self, index: int | slice) -> Any:
        return self._records[index]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[LoadedRecord[T]]:
        return iter(self._records)

    def __repr__(self) -> str:
        return f"LoadedResultSet(entity={self.entity!r}, records={self._records!r})"

    @property
    def records(self) -> list[LoadedRecord[T]]:
        return list(self._records)

    def objects(self) -> list[T]:
        return [record.obj for record in self._records]

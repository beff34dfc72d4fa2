"""Generic storage adapter interface.

StorageAdapter[T] is the single data-access abstraction of the engine.  One
implementation exists per storage paradigm (document store, relational with
sequence ids, relational with identity ids); concrete classes live in
crudforge/infrastructure/persistence/adapters/ and are selected at
registration by the descriptor's IdentifierType.

Design notes:
  - All methods are async to accommodate async drivers (asyncpg / aiosqlite
    through SQLAlchemy, pymongo's async client).
  - T is the entity model type (never an ORM row or a raw document).
  - insert() must return the entity with its identifier populated, whatever
    the id strategy; callers never assign ids themselves.
  - delete() reports absence as False rather than raising; turning that into
    NotFoundError is the service engine's job.
  - Driver errors are translated to PersistenceError / StorageConflictError
    inside the adapter.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any, Generic, TypeVar

from crudforge.domain.models.descriptor import EntityDescriptor
from crudforge.domain.models.entity import Entity
from crudforge.domain.models.page import PageResult, Sort

T = TypeVar("T", bound=Entity)


class StorageAdapter(ABC, Generic[T]):
    """Uniform CRUD operation set over one storage collection/table."""

    def __init__(self, descriptor: EntityDescriptor[T]) -> None:
        self._descriptor = descriptor

    @property
    def descriptor(self) -> EntityDescriptor[T]:
        return self._descriptor

    async def initialize(self) -> None:
        """Create the backing table / unique indexes if missing.  No-op by default."""

    async def close(self) -> None:
        """Release adapter-owned resources.  No-op by default."""

    @abstractmethod
    async def insert(self, entity: T) -> T:
        """Assign an identifier, persist, and return the stored entity."""

    @abstractmethod
    async def insert_many(self, entities: Sequence[T]) -> list[T]:
        """Persist one chunk of entities; return them in input order with ids."""

    @abstractmethod
    async def find_by_id(self, entity_id: Any) -> T | None:
        """Return the entity with the given identifier, or None."""

    @abstractmethod
    async def find_all(self, sort: Sort | None = None) -> list[T]:
        """Return every entity, ordered by ``sort`` (identifier order by default)."""

    @abstractmethod
    async def find_page(self, page: int, size: int, sort: Sort | None = None) -> PageResult[T]:
        """Return one storage-level page; never materialises the whole collection."""

    @abstractmethod
    async def update(self, entity_id: Any, changes: Mapping[str, Any]) -> T | None:
        """Overwrite only the supplied fields; None when the id does not resolve."""

    @abstractmethod
    async def delete(self, entity_id: Any) -> bool:
        """Remove the entity; True if something was removed."""

    @abstractmethod
    async def count(self) -> int:
        """Number of stored entities."""

    @abstractmethod
    async def exists(self, entity_id: Any) -> bool:
        """True when an entity with the identifier is stored."""

    @abstractmethod
    async def exists_matching(
        self, criteria: Mapping[str, Any], exclude_id: Any | None = None
    ) -> bool:
        """True when an entity other than ``exclude_id`` matches every criterion."""

"""Shared SQLAlchemy implementation for the two relational adapters.

Subclasses only decide how identifiers are obtained (_insert_rows); every
other operation is identical across engines.  Each call runs in its own
session and transaction, bounded by the configured query timeout.
"""

from __future__ import annotations

import asyncio
import logging
from abc import abstractmethod
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from pydantic_core import to_jsonable_python
from sqlalchemy import ColumnElement, MetaData, Table, delete, func, select, update
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from crudforge.domain.errors import PersistenceError, StorageConflictError, ValidationError
from crudforge.domain.models.descriptor import EntityDescriptor
from crudforge.domain.models.entity import Entity
from crudforge.domain.models.page import PageResult, Sort
from crudforge.domain.repositories.base import StorageAdapter
from crudforge.infrastructure.database import create_session_factory
from crudforge.infrastructure.persistence.tables import build_table, json_columns

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)

UNIQUE_VIOLATION = "23505"

# driver messages for engines that report no SQLSTATE (SQLite, MySQL)
_UNIQUE_MARKERS = ("unique constraint", "duplicate entry", "duplicate key")


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when the IntegrityError comes from a unique index, not NOT NULL, CHECK or FK."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate:
        return sqlstate == UNIQUE_VIOLATION
    message = str(orig).lower()
    return any(marker in message for marker in _UNIQUE_MARKERS)


class SqlStorageAdapter(StorageAdapter[E]):
    def __init__(
        self,
        descriptor: EntityDescriptor[E],
        engine: AsyncEngine,
        metadata: MetaData,
        *,
        query_timeout: float | None = None,
        flush_size: int = 1000,
    ) -> None:
        super().__init__(descriptor)
        self._engine = engine
        self._sessions = create_session_factory(engine)
        self._table: Table = build_table(descriptor, metadata)
        self._id = self._table.c[descriptor.id_field]
        self._json = json_columns(self._table)
        self._timeout = query_timeout
        self._flush_size = flush_size

    @property
    def table(self) -> Table:
        return self._table

    async def initialize(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(self._table.create, checkfirst=True)

    # ------------------------------------------------------------------ #
    # Identifier strategy                                                  #
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def _insert_rows(self, session: AsyncSession, rows: list[dict[str, Any]]) -> list[int]:
        """Insert ``rows`` and return their identifiers in input order."""

    # ------------------------------------------------------------------ #
    # StorageAdapter                                                       #
    # ------------------------------------------------------------------ #

    async def insert(self, entity: E) -> E:
        async with self._transaction() as session:
            [entity_id] = await self._insert_rows(session, [self._to_row(entity)])
        return self._descriptor.with_id(entity, entity_id)

    async def insert_many(self, entities: Sequence[E]) -> list[E]:
        if not entities:
            return []
        ids: list[int] = []
        async with self._transaction() as session:
            # one transaction per chunk, statements bounded by flush_size
            for start in range(0, len(entities), self._flush_size):
                rows = [self._to_row(e) for e in entities[start : start + self._flush_size]]
                ids.extend(await self._insert_rows(session, rows))
        return [self._descriptor.with_id(e, i) for e, i in zip(entities, ids, strict=True)]

    async def find_by_id(self, entity_id: Any) -> E | None:
        stmt = select(self._table).where(self._id == entity_id)
        async with self._transaction() as session:
            row = (await session.execute(stmt)).mappings().one_or_none()
        return self._to_entity(row) if row else None

    async def find_all(self, sort: Sort | None = None) -> list[E]:
        stmt = select(self._table).order_by(*self._order_by(sort))
        async with self._transaction() as session:
            rows = (await session.execute(stmt)).mappings().all()
        return [self._to_entity(row) for row in rows]

    async def find_page(self, page: int, size: int, sort: Sort | None = None) -> PageResult[E]:
        stmt = (
            select(self._table)
            .order_by(*self._order_by(sort))
            .limit(size)
            .offset(page * size)
        )
        async with self._transaction() as session:
            total = await session.scalar(select(func.count()).select_from(self._table))
            rows = (await session.execute(stmt)).mappings().all()
        return PageResult.build([self._to_entity(row) for row in rows], page, size, total or 0)

    async def update(self, entity_id: Any, changes: Mapping[str, Any]) -> E | None:
        values = self._normalize(dict(changes))
        values.pop(self._descriptor.id_field, None)
        async with self._transaction() as session:
            if values:
                result = await session.execute(
                    update(self._table).where(self._id == entity_id).values(**values)
                )
                if result.rowcount == 0:
                    return None
            row = (
                await session.execute(select(self._table).where(self._id == entity_id))
            ).mappings().one_or_none()
        return self._to_entity(row) if row else None

    async def delete(self, entity_id: Any) -> bool:
        async with self._transaction() as session:
            result = await session.execute(delete(self._table).where(self._id == entity_id))
            removed = result.rowcount
        return removed > 0

    async def count(self) -> int:
        async with self._transaction() as session:
            total = await session.scalar(select(func.count()).select_from(self._table))
        return total or 0

    async def exists(self, entity_id: Any) -> bool:
        stmt = select(self._id).where(self._id == entity_id).limit(1)
        async with self._transaction() as session:
            found = await session.scalar(stmt)
        return found is not None

    async def exists_matching(
        self, criteria: Mapping[str, Any], exclude_id: Any | None = None
    ) -> bool:
        values = self._normalize(dict(criteria))
        conditions: list[ColumnElement[bool]] = [
            self._table.c[name] == value for name, value in values.items()
        ]
        if exclude_id is not None:
            conditions.append(self._id != exclude_id)
        stmt = select(self._id).where(*conditions).limit(1)
        async with self._transaction() as session:
            found = await session.scalar(stmt)
        return found is not None

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """Session + transaction with driver errors translated to the domain taxonomy."""
        name = self._descriptor.entity_name
        try:
            async with asyncio.timeout(self._timeout):
                async with self._sessions() as session, session.begin():
                    yield session
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                logger.error("%s write rejected by a storage constraint: %s", name, exc.orig)
                raise PersistenceError(f"{name} violates a storage-level constraint") from exc
            logger.warning("%s write rejected by a unique constraint: %s", name, exc.orig)
            raise StorageConflictError(f"{name} violates a storage-level unique constraint") from exc
        except SQLAlchemyError as exc:
            logger.error("%s storage operation failed: %s", name, exc)
            raise PersistenceError(f"{name} storage operation failed") from exc
        except TimeoutError as exc:
            logger.error("%s storage operation timed out after %ss", name, self._timeout)
            raise PersistenceError(f"{name} storage operation timed out") from exc

    def _order_by(self, sort: Sort | None) -> list[ColumnElement[Any]]:
        if sort is None:
            return [self._id.asc()]
        try:
            column = self._table.c[sort.field]
        except KeyError:
            raise ValidationError(f"Unknown sort field {sort.field!r}", {"sortBy": "unknown field"}) from None
        ordered = column.desc() if sort.descending else column.asc()
        # identifier as tie-breaker keeps pages stable
        return [ordered] if column is self._id else [ordered, self._id.asc()]

    def _normalize(self, values: dict[str, Any]) -> dict[str, Any]:
        for name in self._json.intersection(values):
            values[name] = to_jsonable_python(values[name])
        return values

    def _to_row(self, entity: E) -> dict[str, Any]:
        return self._normalize(self._descriptor.dump(entity))

    def _to_entity(self, row: RowMapping) -> E:
        data = dict(row)
        entity_id = data.pop(self._descriptor.id_field)
        return self._descriptor.load(data, entity_id)

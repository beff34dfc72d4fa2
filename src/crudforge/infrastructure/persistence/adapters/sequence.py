"""Relational adapter that pre-allocates identifiers from a database sequence."""

from __future__ import annotations

from typing import Any, TypeVar

from sqlalchemy import MetaData, Sequence, func, insert, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from crudforge.domain.errors import ConfigurationError
from crudforge.domain.models.descriptor import EntityDescriptor
from crudforge.domain.models.entity import Entity
from crudforge.domain.models.enums import IdentifierType

from .sql import SqlStorageAdapter

E = TypeVar("E", bound=Entity)


class SqlSequenceAdapter(SqlStorageAdapter[E]):
    """Ids come from ``<table>_<id>_seq`` before the INSERT is issued.

    Requires an engine with sequences (PostgreSQL, Oracle, SQL Server,
    MariaDB >= 10.3).
    """

    def __init__(
        self,
        descriptor: EntityDescriptor[E],
        engine: AsyncEngine,
        metadata: MetaData,
        *,
        query_timeout: float | None = None,
        flush_size: int = 1000,
    ) -> None:
        if descriptor.identifier_type is not IdentifierType.LONG_SEQUENCE:
            raise ConfigurationError(
                f"{descriptor.entity_name} is not configured for sequence identifiers"
            )
        super().__init__(
            descriptor, engine, metadata, query_timeout=query_timeout, flush_size=flush_size
        )
        sequence = self._id.default
        if not isinstance(sequence, Sequence):
            raise ConfigurationError(f"table {self._table.name} has no identifier sequence")
        self._sequence = sequence

    async def _next_ids(self, session: AsyncSession, count: int) -> list[int]:
        if self._engine.dialect.name == "postgresql":
            # one round trip for the whole block
            stmt = select(self._sequence.next_value()).select_from(
                func.generate_series(1, count)
            )
            return list((await session.scalars(stmt)).all())
        stmt = select(self._sequence.next_value())
        return [await session.scalar(stmt) for _ in range(count)]

    async def _insert_rows(self, session: AsyncSession, rows: list[dict[str, Any]]) -> list[int]:
        ids = await self._next_ids(session, len(rows))
        id_field = self._descriptor.id_field
        await session.execute(
            insert(self._table),
            [{**row, id_field: entity_id} for row, entity_id in zip(rows, ids, strict=True)],
        )
        return ids

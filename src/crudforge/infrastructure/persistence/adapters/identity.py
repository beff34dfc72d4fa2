"""Relational adapter whose identifiers are assigned by the database on INSERT."""

from __future__ import annotations

from typing import Any, TypeVar

from sqlalchemy import MetaData, insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from crudforge.domain.errors import ConfigurationError
from crudforge.domain.models.descriptor import EntityDescriptor
from crudforge.domain.models.entity import Entity
from crudforge.domain.models.enums import IdentifierType

from .sql import SqlStorageAdapter

E = TypeVar("E", bound=Entity)


class SqlIdentityAdapter(SqlStorageAdapter[E]):
    """Ids are read back after insert.

    Uses a single ``INSERT .. RETURNING`` per flush where the dialect can
    return rows of a multi-row insert in parameter order (PostgreSQL,
    SQLite, SQL Server, MariaDB); otherwise falls back to one INSERT per row
    and ``inserted_primary_key`` (MySQL).
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
        if descriptor.identifier_type is not IdentifierType.LONG_IDENTITY:
            raise ConfigurationError(
                f"{descriptor.entity_name} is not configured for identity identifiers"
            )
        super().__init__(
            descriptor, engine, metadata, query_timeout=query_timeout, flush_size=flush_size
        )
        dialect = engine.dialect
        self._bulk_returning = bool(
            getattr(dialect, "insert_executemany_returning_sort_by_parameter_order", False)
        )

    async def _insert_rows(self, session: AsyncSession, rows: list[dict[str, Any]]) -> list[int]:
        if self._bulk_returning:
            stmt = insert(self._table).returning(self._id, sort_by_parameter_order=True)
            result = await session.execute(stmt, rows)
            return list(result.scalars().all())

        ids: list[int] = []
        for row in rows:
            result = await session.execute(insert(self._table).values(**row))
            ids.append(result.inserted_primary_key[0])
        return ids

"""Document-store adapter backed by pymongo's asyncio client.

Identifiers are ObjectIds generated by the driver and exposed to callers as
24-character hex strings.  None-valued fields are not stored, so the partial
unique indexes built from the descriptor treat missing values as distinct,
like NULLs in SQL.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, TypeVar

from bson import ObjectId
from pydantic_core import to_jsonable_python
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import BulkWriteError, DuplicateKeyError, PyMongoError

from crudforge.domain.errors import (
    ConfigurationError,
    PartialInsertError,
    PersistenceError,
    StorageConflictError,
)
from crudforge.domain.models.descriptor import EntityDescriptor
from crudforge.domain.models.entity import Entity
from crudforge.domain.models.enums import IdentifierType
from crudforge.domain.models.page import PageResult, Sort
from crudforge.domain.repositories.base import StorageAdapter

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)

DUPLICATE_KEY = 11000


def _object_id(entity_id: Any) -> ObjectId | None:
    if isinstance(entity_id, ObjectId):
        return entity_id
    if isinstance(entity_id, str) and ObjectId.is_valid(entity_id):
        return ObjectId(entity_id)
    return None


def _bson_value(value: Any) -> Any:
    # datetimes stay native so they sort chronologically
    if isinstance(value, datetime):
        return value
    return to_jsonable_python(value)


class MongoDocumentAdapter(StorageAdapter[E]):
    def __init__(
        self,
        descriptor: EntityDescriptor[E],
        collection: AsyncCollection,
        *,
        query_timeout: float | None = None,
    ) -> None:
        if descriptor.identifier_type is not IdentifierType.STRING_GENERATED:
            raise ConfigurationError(
                f"{descriptor.entity_name} is not configured for generated string identifiers"
            )
        super().__init__(descriptor)
        self._collection = collection
        self._timeout = query_timeout

    async def initialize(self) -> None:
        async with self._guard():
            for constraint in self._descriptor.unique_constraints:
                await self._collection.create_index(
                    [(f, ASCENDING) for f in constraint.fields],
                    unique=True,
                    name=f"uq_{'_'.join(constraint.fields)}",
                    partialFilterExpression={f: {"$exists": True} for f in constraint.fields},
                )

    # ------------------------------------------------------------------ #
    # StorageAdapter                                                       #
    # ------------------------------------------------------------------ #

    async def insert(self, entity: E) -> E:
        async with self._guard():
            result = await self._collection.insert_one(self._to_document(entity))
        return self._descriptor.with_id(entity, str(result.inserted_id))

    async def insert_many(self, entities: Sequence[E]) -> list[E]:
        if not entities:
            return []
        documents = [self._to_document(e) for e in entities]
        async with self._guard():
            try:
                result = await self._collection.insert_many(documents, ordered=True)
            except BulkWriteError as exc:
                raise self._partial_insert(exc, entities, documents) from exc
        return [
            self._descriptor.with_id(e, str(oid))
            for e, oid in zip(entities, result.inserted_ids, strict=True)
        ]

    async def find_by_id(self, entity_id: Any) -> E | None:
        oid = _object_id(entity_id)
        if oid is None:
            return None
        async with self._guard():
            document = await self._collection.find_one({"_id": oid})
        return self._to_entity(document) if document else None

    async def find_all(self, sort: Sort | None = None) -> list[E]:
        async with self._guard():
            cursor = self._collection.find({}).sort(self._sort_spec(sort))
            documents = [doc async for doc in cursor]
        return [self._to_entity(doc) for doc in documents]

    async def find_page(self, page: int, size: int, sort: Sort | None = None) -> PageResult[E]:
        async with self._guard():
            total = await self._collection.count_documents({})
            cursor = (
                self._collection.find({})
                .sort(self._sort_spec(sort))
                .skip(page * size)
                .limit(size)
            )
            documents = [doc async for doc in cursor]
        return PageResult.build([self._to_entity(d) for d in documents], page, size, total)

    async def update(self, entity_id: Any, changes: Mapping[str, Any]) -> E | None:
        oid = _object_id(entity_id)
        if oid is None:
            return None
        values = {k: v for k, v in changes.items() if k != self._descriptor.id_field}
        operations: dict[str, Any] = {}
        to_set = {k: _bson_value(v) for k, v in values.items() if v is not None}
        to_unset = {k: "" for k, v in values.items() if v is None}
        if to_set:
            operations["$set"] = to_set
        if to_unset:
            operations["$unset"] = to_unset

        async with self._guard():
            if operations:
                document = await self._collection.find_one_and_update(
                    {"_id": oid}, operations, return_document=ReturnDocument.AFTER
                )
            else:
                document = await self._collection.find_one({"_id": oid})
        return self._to_entity(document) if document else None

    async def delete(self, entity_id: Any) -> bool:
        oid = _object_id(entity_id)
        if oid is None:
            return False
        async with self._guard():
            result = await self._collection.delete_one({"_id": oid})
        return result.deleted_count > 0

    async def count(self) -> int:
        async with self._guard():
            return await self._collection.count_documents({})

    async def exists(self, entity_id: Any) -> bool:
        oid = _object_id(entity_id)
        if oid is None:
            return False
        async with self._guard():
            found = await self._collection.find_one({"_id": oid}, projection={"_id": True})
        return found is not None

    async def exists_matching(
        self, criteria: Mapping[str, Any], exclude_id: Any | None = None
    ) -> bool:
        query: dict[str, Any] = {k: _bson_value(v) for k, v in criteria.items()}
        if exclude_id is not None:
            oid = _object_id(exclude_id)
            if oid is not None:
                query["_id"] = {"$ne": oid}
        async with self._guard():
            found = await self._collection.find_one(query, projection={"_id": True})
        return found is not None

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    @asynccontextmanager
    async def _guard(self) -> AsyncIterator[None]:
        name = self._descriptor.entity_name
        try:
            async with asyncio.timeout(self._timeout):
                yield
        except DuplicateKeyError as exc:
            logger.warning("%s write rejected by a unique index: %s", name, exc.details)
            raise StorageConflictError(f"{name} violates a storage-level unique index") from exc
        except PyMongoError as exc:
            logger.error("%s storage operation failed: %s", name, exc)
            raise PersistenceError(f"{name} storage operation failed") from exc
        except TimeoutError as exc:
            logger.error("%s storage operation timed out after %ss", name, self._timeout)
            raise PersistenceError(f"{name} storage operation timed out") from exc

    def _partial_insert(
        self, exc: BulkWriteError, entities: Sequence[E], documents: list[dict[str, Any]]
    ) -> PartialInsertError:
        """Ordered insert stopped at the first error; everything before it is stored."""
        details = exc.details or {}
        count = details.get("nInserted", 0)
        codes = {e.get("code") for e in details.get("writeErrors", [])}
        cause = StorageConflictError.code if codes == {DUPLICATE_KEY} else PersistenceError.code
        name = self._descriptor.entity_name
        logger.warning("%s bulk insert stopped after %d document(s): codes %s", name, count, codes)
        # the driver assigns _id on each document in place before sending
        inserted = [
            self._descriptor.with_id(e, str(doc["_id"]))
            for e, doc in zip(entities[:count], documents[:count])
        ]
        return PartialInsertError(
            f"{name} bulk insert stopped after {count} document(s)",
            inserted=inserted,
            cause_code=cause,
        )

    def _sort_spec(self, sort: Sort | None) -> list[tuple[str, int]]:
        if sort is None:
            return [("_id", ASCENDING)]
        key = "_id" if sort.field == self._descriptor.id_field else sort.field
        direction = DESCENDING if sort.descending else ASCENDING
        return [(key, direction)] if key == "_id" else [(key, direction), ("_id", ASCENDING)]

    def _to_document(self, entity: E) -> dict[str, Any]:
        return {
            k: _bson_value(v)
            for k, v in self._descriptor.dump(entity).items()
            if v is not None
        }

    def _to_entity(self, document: Mapping[str, Any]) -> E:
        data = dict(document)
        oid = data.pop("_id")
        return self._descriptor.load(data, str(oid))

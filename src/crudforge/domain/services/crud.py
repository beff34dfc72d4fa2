"""Generic CRUD service engine.

One CrudService is bound to one EntityDescriptor and one StorageAdapter at
registration.  It holds no per-request state: everything it knows between
calls lives in the storage backend, so a single instance serves concurrent
requests.

Write path:
    create  → clear caller id → AuditStamper.stamp_create
            → UniquenessEnforcer.ensure_unique → adapter.insert
    update  → reject unknown fields → AuditStamper.stamp_update
            → adapter.find_by_id (NotFoundError) → validate merged entity
            → ensure_unique(exclude own id) → adapter.update
    create_batch → BatchProcessor.process

A unique-index violation raised by the storage layer (the race the
pre-check cannot close) is re-raised as ConflictError so callers see one
error taxonomy.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any, Generic, TypeVar

import pydantic

from crudforge.domain.errors import (
    ConflictDescription,
    ConflictError,
    NotFoundError,
    StorageConflictError,
    ValidationError,
)
from crudforge.domain.models.batch import BatchOperationResult, OperationTiming
from crudforge.domain.models.descriptor import EntityDescriptor
from crudforge.domain.models.entity import Entity
from crudforge.domain.models.page import PageResult, Sort
from crudforge.domain.repositories.base import StorageAdapter

from .audit import AuditStamper
from .batch import DEFAULT_CHUNK_SIZE, BatchProcessor
from .telemetry import LoggingTelemetry, TelemetrySink
from .uniqueness import UniquenessEnforcer

E = TypeVar("E", bound=Entity)

DEFAULT_MAX_PAGE_SIZE = 1000


def field_errors(exc: pydantic.ValidationError) -> dict[str, str]:
    """Flatten pydantic errors into a ``{"field.path": "message"}`` map."""
    return {
        ".".join(str(part) for part in err["loc"]) or "__root__": err["msg"]
        for err in exc.errors()
    }


class CrudService(Generic[E]):
    def __init__(
        self,
        descriptor: EntityDescriptor[E],
        adapter: StorageAdapter[E],
        *,
        stamper: AuditStamper | None = None,
        telemetry: TelemetrySink | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_page_size: int = DEFAULT_MAX_PAGE_SIZE,
    ) -> None:
        self._descriptor = descriptor
        self._adapter = adapter
        self._stamper = stamper or AuditStamper()
        self._telemetry = telemetry or LoggingTelemetry()
        self._enforcer = UniquenessEnforcer(adapter)
        self._max_page_size = max_page_size
        self._batch = BatchProcessor(
            descriptor,
            adapter,
            self._stamper,
            self._enforcer,
            self._telemetry,
            chunk_size=chunk_size,
        )

    @property
    def descriptor(self) -> EntityDescriptor[E]:
        return self._descriptor

    @property
    def adapter(self) -> StorageAdapter[E]:
        return self._adapter

    # ------------------------------------------------------------------ #
    # Writes                                                               #
    # ------------------------------------------------------------------ #

    async def create(self, entity: E) -> E:
        async with self._timed("create"):
            self._require_instance(entity)
            candidate = self._stamper.stamp_create(
                self._descriptor.with_id(entity, None), self._descriptor
            )
            await self._enforcer.ensure_unique(candidate, self._descriptor)
            try:
                return await self._adapter.insert(candidate)
            except StorageConflictError as exc:
                raise await self._storage_conflict(candidate, None, exc) from exc

    async def create_batch(
        self, entities: Sequence[E], chunk_size: int | None = None
    ) -> BatchOperationResult:
        async with self._timed("create_batch"):
            return await self._batch.process(entities, chunk_size)

    async def update(self, entity_id: Any, partial: Mapping[str, Any]) -> E:
        async with self._timed("update"):
            descriptor = self._descriptor
            entity_id = descriptor.parse_id(entity_id)
            changes = self._clean_changes(entity_id, partial)
            changes = self._stamper.stamp_update(changes, descriptor)

            existing = await self._adapter.find_by_id(entity_id)
            if existing is None:
                raise NotFoundError(descriptor.entity_name, entity_id)

            try:
                merged = descriptor.model.model_validate({**existing.model_dump(), **changes})
            except pydantic.ValidationError as exc:
                raise ValidationError(
                    f"Invalid {descriptor.entity_name} update", field_errors(exc)
                ) from exc
            # coerced values, so adapters never see raw request payload types
            changes = merged.model_dump(include=set(changes))

            await self._enforcer.ensure_unique(merged, descriptor, exclude_id=entity_id)
            try:
                updated = await self._adapter.update(entity_id, changes)
            except StorageConflictError as exc:
                raise await self._storage_conflict(merged, entity_id, exc) from exc
            if updated is None:
                raise NotFoundError(descriptor.entity_name, entity_id)
            return updated

    async def delete(self, entity_id: Any) -> None:
        async with self._timed("delete"):
            entity_id = self._descriptor.parse_id(entity_id)
            if not await self._adapter.delete(entity_id):
                raise NotFoundError(self._descriptor.entity_name, entity_id)

    # ------------------------------------------------------------------ #
    # Reads                                                                #
    # ------------------------------------------------------------------ #

    async def find_by_id(self, entity_id: Any) -> E:
        async with self._timed("find_by_id"):
            entity_id = self._descriptor.parse_id(entity_id)
            entity = await self._adapter.find_by_id(entity_id)
            if entity is None:
                raise NotFoundError(self._descriptor.entity_name, entity_id)
            return entity

    async def find_all(self, sort: Sort | None = None) -> list[E]:
        async with self._timed("find_all"):
            self._check_sort(sort)
            return await self._adapter.find_all(sort)

    async def find_page(self, page: int, size: int, sort: Sort | None = None) -> PageResult[E]:
        async with self._timed("find_page"):
            errors: dict[str, str] = {}
            if page < 0:
                errors["page"] = "must be >= 0"
            if size <= 0 or size > self._max_page_size:
                errors["size"] = f"must be between 1 and {self._max_page_size}"
            if errors:
                raise ValidationError("Invalid page request", errors)
            self._check_sort(sort)
            return await self._adapter.find_page(page, size, sort)

    async def count(self) -> int:
        async with self._timed("count"):
            return await self._adapter.count()

    async def exists(self, entity_id: Any) -> bool:
        async with self._timed("exists"):
            return await self._adapter.exists(self._descriptor.parse_id(entity_id))

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    @asynccontextmanager
    async def _timed(self, operation: str) -> AsyncIterator[None]:
        started = time.perf_counter()
        success = False
        try:
            yield
            success = True
        finally:
            self._telemetry.record_operation(
                OperationTiming(
                    operation=operation,
                    entity=self._descriptor.entity_name,
                    duration_seconds=time.perf_counter() - started,
                    success=success,
                )
            )

    def _require_instance(self, entity: Any) -> None:
        if not isinstance(entity, self._descriptor.model):
            raise ValidationError(f"Expected a {self._descriptor.entity_name}")

    def _clean_changes(self, entity_id: Any, partial: Mapping[str, Any]) -> dict[str, Any]:
        descriptor = self._descriptor
        if not isinstance(partial, Mapping):
            raise ValidationError("Update payload must be an object")
        model_fields = descriptor.model.model_fields
        unknown = {k: "unknown field" for k in partial if k not in model_fields}
        if unknown:
            raise ValidationError(f"Unknown {descriptor.entity_name} field(s)", unknown)

        changes = dict(partial)
        if descriptor.id_field in changes:
            supplied = changes.pop(descriptor.id_field)
            if supplied is not None and descriptor.parse_id(supplied) != entity_id:
                raise ValidationError(
                    "The identifier cannot be changed",
                    {descriptor.id_field: "is immutable"},
                )
        return changes

    def _check_sort(self, sort: Sort | None) -> None:
        if sort is not None and sort.field not in self._descriptor.field_names:
            raise ValidationError(
                f"Cannot sort {self._descriptor.entity_name} by {sort.field!r}",
                {"sortBy": "unknown field"},
            )

    async def _storage_conflict(
        self, candidate: E, exclude_id: Any | None, exc: StorageConflictError
    ) -> ConflictError:
        # the rival write is committed by now, so the pre-check can name the groups
        conflicts = await self._enforcer.check_conflicts(candidate, self._descriptor, exclude_id)
        if not conflicts:
            conflicts = [ConflictDescription(fields=(), message=exc.message)]
        return ConflictError(conflicts)

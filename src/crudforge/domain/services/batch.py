"""Chunked batch insert with partial-failure accounting.

Pipeline per create_batch call:
    process
        → split into consecutive chunks of at most chunk_size
        → for each chunk, in submission order:
            _process_chunk
                → stamp audit fields (one timestamp per chunk)
                → pre-check uniqueness (in-batch duplicates, then storage)
                → adapter.insert_many for the entities that passed
            → one BatchProgress observation to the telemetry sink
        → aggregate counts and timing

A failing chunk never aborts its siblings.  Pre-check conflicts fail the
individual entities; a storage failure fails the remaining entities of the
chunk atomically, unless the adapter reports the stored prefix through
PartialInsertError (ordered document-store inserts).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator, Sequence
from typing import Any, Generic, TypeVar

from crudforge.domain.errors import (
    BatchFailedError,
    ConflictError,
    PartialInsertError,
    PersistenceError,
    ValidationError,
)
from crudforge.domain.models.batch import BatchOperationResult, BatchProgress, ChunkFailure
from crudforge.domain.models.descriptor import EntityDescriptor
from crudforge.domain.models.entity import Entity
from crudforge.domain.repositories.base import StorageAdapter

from .audit import AuditStamper
from .telemetry import TelemetrySink
from .uniqueness import BatchUniquenessTracker, UniquenessEnforcer

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)

DEFAULT_CHUNK_SIZE = 1000


def chunked(items: Sequence[E], size: int) -> Iterator[list[E]]:
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


class BatchProcessor(Generic[E]):
    def __init__(
        self,
        descriptor: EntityDescriptor[E],
        adapter: StorageAdapter[E],
        stamper: AuditStamper,
        enforcer: UniquenessEnforcer,
        telemetry: TelemetrySink,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._descriptor = descriptor
        self._adapter = adapter
        self._stamper = stamper
        self._enforcer = enforcer
        self._telemetry = telemetry
        self._chunk_size = chunk_size

    async def process(
        self, entities: Sequence[E], chunk_size: int | None = None
    ) -> BatchOperationResult:
        size = self._chunk_size if chunk_size is None else chunk_size
        if size <= 0:
            raise ValidationError("chunk size must be positive", {"chunkSize": "must be > 0"})
        items = list(entities)
        for position, entity in enumerate(items):
            if not isinstance(entity, self._descriptor.model):
                raise ValidationError(
                    f"batch item {position} is not a {self._descriptor.entity_name}"
                )

        result = BatchOperationResult(total=len(items), chunk_size=size)
        tracker = BatchUniquenessTracker(self._descriptor)
        started = time.perf_counter()
        processed = 0

        for index, chunk in enumerate(chunked(items, size)):
            stored = await self._process_chunk(index, chunk, tracker, result)
            result.succeeded += stored
            result.chunks += 1
            processed += len(chunk)
            self._telemetry.record_batch_progress(
                BatchProgress(
                    entity=self._descriptor.entity_name,
                    chunk_index=index,
                    chunk_size=len(chunk),
                    processed=processed,
                    total=result.total,
                    succeeded=result.succeeded,
                    elapsed_seconds=time.perf_counter() - started,
                )
            )

        result.elapsed_seconds = time.perf_counter() - started
        logger.info(
            "%s batch finished: %d/%d stored in %d chunk(s), %.3fs",
            self._descriptor.entity_name,
            result.succeeded,
            result.total,
            result.chunks,
            result.elapsed_seconds,
        )
        if result.total and result.succeeded == 0:
            raise BatchFailedError(result)
        return result

    async def _process_chunk(
        self,
        index: int,
        chunk: list[E],
        tracker: BatchUniquenessTracker,
        result: BatchOperationResult,
    ) -> int:
        """Run one chunk and record its failures on ``result``; return the stored count."""
        descriptor = self._descriptor
        # caller-supplied identifiers are ignored, as on single create
        fresh = [descriptor.with_id(e, None) for e in chunk]
        stamped = self._stamper.stamp_many(fresh, descriptor)

        accepted: list[E] = []
        rejected: dict[str, list[E]] = {}
        try:
            for entity in stamped:
                conflicts = tracker.check(entity)
                if not conflicts:
                    conflicts = await self._enforcer.check_conflicts(entity, descriptor)
                if conflicts:
                    reason = ConflictError(conflicts).message
                    rejected.setdefault(reason, []).append(entity)
                    continue
                tracker.reserve(entity)
                accepted.append(entity)
        except PersistenceError as exc:
            self._fail(result, index, stamped, exc.message, exc.code)
            tracker.settle(())
            return 0

        for reason, entities in rejected.items():
            self._fail(result, index, entities, reason, ConflictError.code)

        if not accepted:
            tracker.settle(())
            return 0

        try:
            stored = await self._adapter.insert_many(accepted)
        except PartialInsertError as exc:
            stored = exc.inserted
            self._fail(result, index, accepted[len(stored):], exc.message, exc.cause_code)
        except PersistenceError as exc:
            stored = []
            self._fail(result, index, accepted, exc.message, exc.code)

        tracker.settle(stored)
        return len(stored)

    def _fail(
        self,
        result: BatchOperationResult,
        index: int,
        entities: list[Any],
        reason: str,
        code: str,
    ) -> None:
        if not entities:
            return
        logger.warning(
            "%s batch chunk %d: %d entit%s failed (%s): %s",
            self._descriptor.entity_name,
            index,
            len(entities),
            "y" if len(entities) == 1 else "ies",
            code,
            reason,
        )
        result.failures.append(
            ChunkFailure(chunk_index=index, entities=entities, reason=reason, code=code)
        )

"""Batch insert accounting and telemetry observations."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel


class ChunkFailure(BaseModel):
    """Entities of one chunk that were not stored, and why."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    chunk_index: int
    entities: list[Any]
    reason: str
    code: str

    @computed_field  # type: ignore[prop-decorator]
    @property
    def count(self) -> int:
        return len(self.entities)


class BatchOperationResult(BaseModel):
    """Outcome of one create_batch call.

    Invariant: succeeded + failed <= total.  Chunks are reported in
    submission order; a chunk may appear in ``failures`` more than once
    when both pre-check conflicts and a storage failure hit it.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total: int
    succeeded: int = 0
    chunk_size: int
    chunks: int = 0
    failures: list[ChunkFailure] = Field(default_factory=list)
    elapsed_seconds: float = 0.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed(self) -> int:
        return sum(f.count for f in self.failures)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def average_seconds_per_entity(self) -> float:
        return self.elapsed_seconds / self.total if self.total else 0.0

    @property
    def fully_succeeded(self) -> bool:
        return self.succeeded == self.total


class BatchProgress(BaseModel):
    """Emitted once per processed chunk."""

    model_config = ConfigDict(frozen=True)

    entity: str
    chunk_index: int
    chunk_size: int
    processed: int
    total: int
    succeeded: int
    elapsed_seconds: float

    @property
    def percent(self) -> float:
        return 100.0 * self.processed / self.total if self.total else 100.0


class OperationTiming(BaseModel):
    model_config = ConfigDict(frozen=True)

    operation: str
    entity: str
    duration_seconds: float
    success: bool = True

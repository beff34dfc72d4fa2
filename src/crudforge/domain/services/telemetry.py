"""Telemetry sinks for batch progress and per-operation timings."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from crudforge.domain.models.batch import BatchProgress, OperationTiming

logger = logging.getLogger(__name__)


@runtime_checkable
class TelemetrySink(Protocol):
    def record_batch_progress(self, progress: BatchProgress) -> None: ...

    def record_operation(self, timing: OperationTiming) -> None: ...


class LoggingTelemetry:
    """Default sink: writes observations through the standard logger."""

    def record_batch_progress(self, progress: BatchProgress) -> None:
        logger.info(
            "%s batch chunk %d (%d entities): %d/%d processed (%.1f%%), %d stored, %.3fs elapsed",
            progress.entity,
            progress.chunk_index,
            progress.chunk_size,
            progress.processed,
            progress.total,
            progress.percent,
            progress.succeeded,
            progress.elapsed_seconds,
        )

    def record_operation(self, timing: OperationTiming) -> None:
        logger.debug(
            "%s.%s took %.2fms%s",
            timing.entity,
            timing.operation,
            timing.duration_seconds * 1000,
            "" if timing.success else " (failed)",
        )


class NullTelemetry:
    def record_batch_progress(self, progress: BatchProgress) -> None:
        pass

    def record_operation(self, timing: OperationTiming) -> None:
        pass

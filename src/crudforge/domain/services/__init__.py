"""Domain services: the CRUD engine and the collaborators it orchestrates.

CrudService is the façade instantiated once per registered entity type;
the other services are stateless helpers it composes.
"""

from .audit import AuditStamper
from .batch import DEFAULT_CHUNK_SIZE, BatchProcessor
from .crud import CrudService
from .telemetry import LoggingTelemetry, NullTelemetry, TelemetrySink
from .uniqueness import BatchUniquenessTracker, UniquenessEnforcer

__all__ = [
    "AuditStamper",
    "BatchProcessor",
    "BatchUniquenessTracker",
    "CrudService",
    "DEFAULT_CHUNK_SIZE",
    "LoggingTelemetry",
    "NullTelemetry",
    "TelemetrySink",
    "UniquenessEnforcer",
]

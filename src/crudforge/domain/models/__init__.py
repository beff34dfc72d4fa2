"""Domain model package.

All domain objects are pure Python / Pydantic models with no ORM or
driver dependencies.  Import from this package to avoid coupling
application code to individual module paths.
"""

from .batch import BatchOperationResult, BatchProgress, ChunkFailure, OperationTiming
from .descriptor import EntityDescriptor, UniqueConstraint
from .entity import Entity
from .enums import AuditSlot, IdentifierType, SortDirection
from .page import PageResult, Sort

__all__ = [
    # enums
    "AuditSlot",
    "IdentifierType",
    "SortDirection",
    # entity metadata
    "Entity",
    "EntityDescriptor",
    "UniqueConstraint",
    # results
    "BatchOperationResult",
    "ChunkFailure",
    "PageResult",
    "Sort",
    # telemetry observations
    "BatchProgress",
    "OperationTiming",
]

"""crudforge: convention-driven CRUD services and REST endpoints for entity models."""

from crudforge.domain.errors import (
    ConfigurationError,
    ConflictError,
    CrudError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from crudforge.domain.models import (
    AuditSlot,
    Entity,
    IdentifierType,
    PageResult,
    Sort,
    SortDirection,
    UniqueConstraint,
)
from crudforge.domain.services import CrudService
from crudforge.infrastructure.database import Settings
from crudforge.infrastructure.registry import EntityDefinition, EntityRegistry

__version__ = "0.1.0"

__all__ = [
    "AuditSlot",
    "ConfigurationError",
    "ConflictError",
    "CrudError",
    "CrudService",
    "Entity",
    "EntityDefinition",
    "EntityRegistry",
    "IdentifierType",
    "NotFoundError",
    "PageResult",
    "PersistenceError",
    "Settings",
    "Sort",
    "SortDirection",
    "UniqueConstraint",
    "ValidationError",
]

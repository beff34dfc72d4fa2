"""Entity base model.

There is one entity type for all three storage engines.  Which adapter
stores it, and therefore how its ``id`` is assigned, is decided by the
IdentifierType tag on its EntityDescriptor, not by inheritance.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class Entity(BaseModel):
    """Base class for registrable entity types.

    ``id`` is unset until the storage adapter assigns it on insert: a string
    ObjectId for the document store, an integer for both relational engines.
    Audit fields (created_at, updated_at, created_by, updated_by) are
    ordinary optional fields that subclasses declare when they want them.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str | int | None = None

"""Domain enumerations for the CRUD engine.

All string-valued enums use str mixin so they serialize cleanly to JSON
and remain comparable to plain strings (FastAPI / Pydantic default behaviour).
"""

from enum import Enum


class IdentifierType(str, Enum):
    """How an entity's identifier is assigned; selects the storage adapter."""

    STRING_GENERATED = "string_generated"  # document store, driver-generated ObjectId
    LONG_SEQUENCE = "long_sequence"  # relational, pre-allocated from a sequence
    LONG_IDENTITY = "long_identity"  # relational, assigned by the database on insert

    @property
    def is_numeric(self) -> bool:
        return self is not IdentifierType.STRING_GENERATED


class AuditSlot(str, Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    CREATED_BY = "created_by"
    UPDATED_BY = "updated_by"

    @property
    def field_name(self) -> str:
        return self.value

    @classmethod
    def timestamps(cls) -> frozenset["AuditSlot"]:
        return frozenset({cls.CREATED_AT, cls.UPDATED_AT})

    @classmethod
    def all(cls) -> frozenset["AuditSlot"]:
        return frozenset(cls)


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"

"""Error taxonomy shared by every layer of the CRUD engine.

Each error carries a stable ``code`` and the HTTP ``status_code`` the
controller layer answers with.  Adapters translate driver exceptions into
this taxonomy; the service engine never swallows them.

    ValidationError      400  caller input malformed
    ConflictError        409  uniqueness violation (application or storage level)
    NotFoundError        404  identifier does not resolve
    PersistenceError     500  storage unreachable, timeout, unexpected failure
    ConfigurationError   --   registration misuse, raised at startup only
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from crudforge.domain.models.batch import BatchOperationResult


@dataclass(frozen=True)
class ConflictDescription:
    """One violated unique-constraint group."""

    fields: tuple[str, ...]
    message: str

    def as_dict(self) -> dict[str, Any]:
        return {"fields": list(self.fields), "message": self.message}


class CrudError(Exception):
    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def details(self) -> Any:
        """Structured payload rendered under ``error.details``."""
        return None


class ValidationError(CrudError):
    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, field_errors: Mapping[str, str] | None = None) -> None:
        super().__init__(message)
        self.field_errors = dict(field_errors or {})

    @property
    def details(self) -> Any:
        return self.field_errors or None


class ConflictError(CrudError):
    code = "CONFLICT"
    status_code = 409

    def __init__(self, conflicts: Sequence[ConflictDescription], message: str | None = None) -> None:
        self.conflicts = list(conflicts)
        if message is None:
            message = "; ".join(c.message for c in self.conflicts) or "Duplicate entity"
        super().__init__(message)

    @property
    def details(self) -> Any:
        return [c.as_dict() for c in self.conflicts]


class NotFoundError(CrudError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} with id {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class PersistenceError(CrudError):
    code = "PERSISTENCE_ERROR"
    status_code = 500


class StorageConflictError(PersistenceError):
    """A unique index/constraint rejected the write at the storage layer.

    The service engine re-raises this as ConflictError for single-entity
    writes; the batch processor records it as a chunk failure.
    """

    code = "CONFLICT"


class PartialInsertError(PersistenceError):
    """An ordered bulk insert stopped part-way; ``inserted`` holds the stored prefix."""

    def __init__(self, message: str, inserted: Sequence[Any], cause_code: str = "PERSISTENCE_ERROR") -> None:
        super().__init__(message)
        self.inserted = list(inserted)
        self.cause_code = cause_code


class BatchFailedError(PersistenceError):
    """Every entity of a batch failed; the full accounting is on ``result``."""

    code = "BATCH_FAILED"

    def __init__(self, result: BatchOperationResult) -> None:
        super().__init__(f"All {result.total} entities of the batch failed")
        self.result = result
        if result.failures and all(f.code == ConflictError.code for f in result.failures):
            self.status_code = ConflictError.status_code

    @property
    def details(self) -> Any:
        return self.result.model_dump(
            mode="json", by_alias=True, exclude={"failures": {"__all__": {"entities"}}}
        )


class ConfigurationError(CrudError):
    code = "CONFIGURATION_ERROR"

"""Entity descriptor: static, validated metadata about one entity type.

Built once at registration from explicit configuration (no annotation
scanning) and never mutated afterwards.  Registration fails fast with
ConfigurationError when the configuration does not match the model.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from crudforge.domain.errors import ConfigurationError, ValidationError

from .entity import Entity
from .enums import AuditSlot, IdentifierType

E = TypeVar("E", bound=Entity)


@dataclass(frozen=True)
class UniqueConstraint:
    """A group of one or more fields declared jointly unique."""

    fields: tuple[str, ...]
    message: str | None = None

    def __post_init__(self) -> None:
        fields = (self.fields,) if isinstance(self.fields, str) else tuple(self.fields)
        object.__setattr__(self, "fields", fields)
        if self.message is None:
            object.__setattr__(self, "message", f"{', '.join(fields)} must be unique")


def _default_name(model: type) -> str:
    snake = re.sub(r"(?<!^)(?=[A-Z])", "_", model.__name__).lower()
    if snake.endswith("y") and not snake.endswith(("ay", "ey", "oy", "uy")):
        return snake[:-1] + "ies"
    if snake.endswith(("s", "x", "ch", "sh")):
        return snake + "es"
    return snake + "s"


@dataclass(frozen=True)
class EntityDescriptor(Generic[E]):
    model: type[E]
    name: str
    identifier_type: IdentifierType
    unique_constraints: tuple[UniqueConstraint, ...] = ()
    audit_slots: frozenset[AuditSlot] = field(default_factory=frozenset)
    id_field: str = "id"

    @classmethod
    def build(
        cls,
        model: type[E],
        identifier_type: IdentifierType,
        *,
        name: str | None = None,
        unique_constraints: Iterable[UniqueConstraint] = (),
        audit_slots: Iterable[AuditSlot] = (),
        id_field: str = "id",
    ) -> EntityDescriptor[E]:
        """Validate the configuration against the model and freeze it."""
        model_fields = getattr(model, "model_fields", None)
        if model_fields is None:
            raise ConfigurationError(f"{model!r} is not a pydantic model")
        if id_field not in model_fields:
            raise ConfigurationError(
                f"{model.__name__} has no identifier field {id_field!r}"
            )

        constraints = tuple(unique_constraints)
        for constraint in constraints:
            if not constraint.fields:
                raise ConfigurationError(
                    f"{model.__name__}: unique constraint declares no fields"
                )
            unknown = [f for f in constraint.fields if f not in model_fields]
            if unknown:
                raise ConfigurationError(
                    f"{model.__name__}: unique constraint references unknown "
                    f"field(s) {', '.join(unknown)}"
                )
            if id_field in constraint.fields:
                raise ConfigurationError(
                    f"{model.__name__}: the identifier cannot be part of a unique constraint"
                )

        slots = frozenset(AuditSlot(s) for s in audit_slots)
        missing = sorted(s.field_name for s in slots if s.field_name not in model_fields)
        if missing:
            raise ConfigurationError(
                f"{model.__name__} declares audit slot(s) without a matching "
                f"field: {', '.join(missing)}"
            )

        return cls(
            model=model,
            name=name or _default_name(model),
            identifier_type=IdentifierType(identifier_type),
            unique_constraints=constraints,
            audit_slots=slots,
            id_field=id_field,
        )

    # ------------------------------------------------------------------ #
    # Introspection                                                        #
    # ------------------------------------------------------------------ #

    @property
    def entity_name(self) -> str:
        return self.model.__name__

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(self.model.model_fields)

    @property
    def data_fields(self) -> tuple[str, ...]:
        """Every field except the identifier."""
        return tuple(f for f in self.model.model_fields if f != self.id_field)

    @property
    def audit_field_names(self) -> frozenset[str]:
        return frozenset(s.field_name for s in self.audit_slots)

    def has_slot(self, slot: AuditSlot) -> bool:
        return slot in self.audit_slots

    # ------------------------------------------------------------------ #
    # Conversion                                                           #
    # ------------------------------------------------------------------ #

    def parse_id(self, raw: Any) -> str | int:
        """Coerce a caller-supplied identifier to the descriptor's id type."""
        if self.identifier_type.is_numeric:
            if isinstance(raw, bool):
                raise ValidationError(f"Invalid {self.entity_name} id: {raw!r}")
            try:
                return int(raw)
            except (TypeError, ValueError):
                raise ValidationError(
                    f"Invalid {self.entity_name} id: {raw!r}",
                    {self.id_field: "must be an integer"},
                ) from None
        return str(raw)

    def dump(self, entity: E) -> dict[str, Any]:
        """Entity to a storage record, identifier excluded."""
        return entity.model_dump(exclude={self.id_field})

    def load(self, record: Mapping[str, Any], entity_id: Any) -> E:
        """Storage record plus identifier back to a validated entity."""
        data = {k: v for k, v in record.items() if k in self.model.model_fields}
        data[self.id_field] = entity_id
        return self.model.model_validate(data)

    def with_id(self, entity: E, entity_id: Any) -> E:
        return entity.model_copy(update={self.id_field: entity_id})

"""Audit stamping for create and update.

On create, created_at and updated_at receive one identical timestamp and the
actor slots receive the resolved actor.  Caller-supplied values for audit
fields are always overwritten.  On update only updated_at / updated_by are
written; creation slots are stripped from the change set so they can never
be modified after insert.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any, TypeVar

from crudforge.domain.models.descriptor import EntityDescriptor
from crudforge.domain.models.entity import Entity
from crudforge.domain.models.enums import AuditSlot

E = TypeVar("E", bound=Entity)

Clock = Callable[[], datetime]
ActorResolver = Callable[[], str | None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditStamper:
    """Stateless apart from its clock and optional actor resolver."""

    def __init__(self, clock: Clock = utc_now, actor_resolver: ActorResolver | None = None) -> None:
        self._clock = clock
        self._actor_resolver = actor_resolver

    def _actor(self) -> str | None:
        return self._actor_resolver() if self._actor_resolver is not None else None

    def creation_values(self, descriptor: EntityDescriptor[Any]) -> dict[str, Any]:
        """Audit values for one create; shared by every entity of a batch chunk."""
        if not descriptor.audit_slots:
            return {}
        now = self._clock()
        actor = self._actor()
        values: dict[str, Any] = {}
        for slot in descriptor.audit_slots:
            if slot in (AuditSlot.CREATED_AT, AuditSlot.UPDATED_AT):
                values[slot.field_name] = now
            else:
                values[slot.field_name] = actor
        return values

    def stamp_create(self, entity: E, descriptor: EntityDescriptor[E]) -> E:
        values = self.creation_values(descriptor)
        return entity.model_copy(update=values) if values else entity

    def stamp_many(self, entities: list[E], descriptor: EntityDescriptor[E]) -> list[E]:
        values = self.creation_values(descriptor)
        if not values:
            return list(entities)
        return [e.model_copy(update=values) for e in entities]

    def stamp_update(
        self, changes: Mapping[str, Any], descriptor: EntityDescriptor[Any]
    ) -> dict[str, Any]:
        """Return a copy of ``changes`` with update slots set and all other audit fields dropped."""
        stamped = {k: v for k, v in changes.items() if k not in descriptor.audit_field_names}
        if descriptor.has_slot(AuditSlot.UPDATED_AT):
            stamped[AuditSlot.UPDATED_AT.field_name] = self._clock()
        if descriptor.has_slot(AuditSlot.UPDATED_BY) and self._actor_resolver is not None:
            stamped[AuditSlot.UPDATED_BY.field_name] = self._actor()
        return stamped

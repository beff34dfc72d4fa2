"""Declarative uniqueness checks, run before every write.

The check is a fast path for a friendly 409, not a correctness guarantee:
two concurrent writers can both pass it.  The storage engine's unique
index/constraint stays the final authority and its violation surfaces as
StorageConflictError from the adapter.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from crudforge.domain.errors import ConflictDescription, ConflictError
from crudforge.domain.models.descriptor import EntityDescriptor, UniqueConstraint
from crudforge.domain.models.entity import Entity
from crudforge.domain.repositories.base import StorageAdapter

Candidate = Entity | Mapping[str, Any]


def _value(candidate: Candidate, field: str) -> Any:
    if isinstance(candidate, Mapping):
        return candidate.get(field)
    return getattr(candidate, field, None)


def group_criteria(candidate: Candidate, constraint: UniqueConstraint) -> dict[str, Any] | None:
    """Field -> value filter for one group, or None when any value is missing.

    Missing (None) values never conflict, matching SQL unique semantics where
    NULLs are distinct.
    """
    criteria = {f: _value(candidate, f) for f in constraint.fields}
    if any(v is None for v in criteria.values()):
        return None
    return criteria


def _describe(constraint: UniqueConstraint) -> ConflictDescription:
    return ConflictDescription(fields=constraint.fields, message=constraint.message or "")


class UniquenessEnforcer:
    def __init__(self, adapter: StorageAdapter[Any]) -> None:
        self._adapter = adapter

    async def check_conflicts(
        self,
        candidate: Candidate,
        descriptor: EntityDescriptor[Any],
        exclude_id: Any | None = None,
    ) -> list[ConflictDescription]:
        """One storage query per declared group; every violated group is returned."""
        conflicts: list[ConflictDescription] = []
        for constraint in descriptor.unique_constraints:
            criteria = group_criteria(candidate, constraint)
            if criteria is None:
                continue
            if await self._adapter.exists_matching(criteria, exclude_id=exclude_id):
                conflicts.append(_describe(constraint))
        return conflicts

    async def ensure_unique(
        self,
        candidate: Candidate,
        descriptor: EntityDescriptor[Any],
        exclude_id: Any | None = None,
    ) -> None:
        conflicts = await self.check_conflicts(candidate, descriptor, exclude_id)
        if conflicts:
            raise ConflictError(conflicts)


def _hashable(value: Any) -> Any:
    try:
        hash(value)
    except TypeError:
        return repr(value)
    return value


class BatchUniquenessTracker:
    """Detects duplicate group values between entities of the same batch input.

    Keys of entities that passed the check are held as pending until their
    chunk settles; only keys of entities actually stored are kept for the
    following chunks.
    """

    def __init__(self, descriptor: EntityDescriptor[Any]) -> None:
        self._descriptor = descriptor
        self._seen: dict[tuple[str, ...], set[tuple[Any, ...]]] = {
            c.fields: set() for c in descriptor.unique_constraints
        }
        self._pending: dict[tuple[str, ...], set[tuple[Any, ...]]] = {
            c.fields: set() for c in descriptor.unique_constraints
        }

    def _keys(self, entity: Candidate) -> Iterable[tuple[UniqueConstraint, tuple[Any, ...]]]:
        for constraint in self._descriptor.unique_constraints:
            criteria = group_criteria(entity, constraint)
            if criteria is not None:
                yield constraint, tuple(_hashable(v) for v in criteria.values())

    def check(self, entity: Candidate) -> list[ConflictDescription]:
        return [
            _describe(c)
            for c, key in self._keys(entity)
            if key in self._seen[c.fields] or key in self._pending[c.fields]
        ]

    def reserve(self, entity: Candidate) -> None:
        for c, key in self._keys(entity):
            self._pending[c.fields].add(key)

    def settle(self, stored: Iterable[Candidate]) -> None:
        for pending in self._pending.values():
            pending.clear()
        for entity in stored:
            for c, key in self._keys(entity):
                self._seen[c.fields].add(key)

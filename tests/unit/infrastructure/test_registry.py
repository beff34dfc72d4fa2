"""Tests for EntityRegistry and StorageAdapterFactory."""

import pytest

from crudforge.domain.errors import ConfigurationError
from crudforge.domain.models import AuditSlot, IdentifierType, UniqueConstraint
from crudforge.infrastructure.database import Settings
from crudforge.infrastructure.persistence.adapters import (
    MongoDocumentAdapter,
    SqlIdentityAdapter,
    SqlSequenceAdapter,
)
from crudforge.infrastructure.registry import (
    EntityDefinition,
    EntityRegistry,
    StorageAdapterFactory,
)
from fakes import InMemoryAdapter, Membership, User

USERS = EntityDefinition(
    User,
    IdentifierType.LONG_IDENTITY,
    unique_constraints=(UniqueConstraint(("email",), "Email already registered"),),
    audit_slots=AuditSlot.timestamps(),
)


class _Factory:
    def __init__(self):
        self.built = []
        self.closed = False

    def __call__(self, descriptor):
        adapter = InMemoryAdapter(descriptor)
        self.built.append(adapter)
        return adapter

    async def close(self):
        self.closed = True


def _registry(factory=None, **settings):
    return EntityRegistry(factory or _Factory(), settings=Settings(**settings))


# --- registration ---

def test_register_binds_descriptor_adapter_and_service():
    registry = _registry()
    entry = registry.register(USERS)
    assert entry.name == "users"
    assert entry.service.descriptor is entry.descriptor
    assert entry.service.adapter is entry.adapter
    assert "users" in registry


def test_register_uses_explicit_name():
    registry = _registry()
    registry.register(EntityDefinition(User, IdentifierType.LONG_IDENTITY, name="people"))
    assert registry.get("people").descriptor.entity_name == "User"


def test_duplicate_name_is_rejected():
    registry = _registry()
    registry.register(USERS)
    with pytest.raises(ConfigurationError):
        registry.register(USERS)


def test_unknown_name_raises_configuration_error():
    with pytest.raises(ConfigurationError):
        _registry().get("ghosts")


def test_invalid_definition_fails_at_registration():
    registry = _registry()
    with pytest.raises(ConfigurationError):
        registry.register(
            EntityDefinition(User, IdentifierType.LONG_IDENTITY, unique_constraints=(UniqueConstraint(("nope",)),))
        )
    assert len(registry) == 0


def test_iteration_follows_registration_order():
    registry = _registry()
    registry.register(USERS)
    registry.register(EntityDefinition(Membership, IdentifierType.LONG_SEQUENCE))
    assert [e.name for e in registry] == ["users", "memberships"]


async def test_service_chunk_size_comes_from_settings():
    registry = _registry(batch_chunk_size=2)
    service = registry.register(USERS).service
    result = await service.create_batch([User(name=str(i), email=f"{i}@x") for i in range(5)])
    assert result.chunks == 3


async def test_close_releases_factory_resources():
    factory = _Factory()
    registry = _registry(factory)
    registry.register(USERS)
    await registry.initialize()
    await registry.close()
    assert factory.closed is True


# --- adapter selection ---

def _factory():
    return StorageAdapterFactory(Settings(database_url="sqlite+aiosqlite:///:memory:"))


def test_factory_selects_identity_adapter():
    assert isinstance(_factory()(USERS.describe()), SqlIdentityAdapter)


def test_factory_selects_sequence_adapter():
    descriptor = EntityDefinition(Membership, IdentifierType.LONG_SEQUENCE).describe()
    assert isinstance(_factory()(descriptor), SqlSequenceAdapter)


def test_factory_selects_document_adapter():
    descriptor = EntityDefinition(User, IdentifierType.STRING_GENERATED).describe()
    assert isinstance(_factory()(descriptor), MongoDocumentAdapter)


def test_factory_shares_one_engine_per_url():
    factory = _factory()
    users = factory(USERS.describe())
    members = factory(EntityDefinition(Membership, IdentifierType.LONG_SEQUENCE).describe())
    assert users._engine is members._engine

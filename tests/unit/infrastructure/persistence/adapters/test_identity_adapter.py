"""Tests for SqlIdentityAdapter against a real SQLite database (aiosqlite)."""

import pytest

from crudforge.domain.errors import ConfigurationError, ConflictError, StorageConflictError
from crudforge.domain.models import IdentifierType, Sort, SortDirection
from crudforge.domain.services.crud import CrudService
from crudforge.infrastructure.database import Settings, create_engine, create_metadata
from crudforge.infrastructure.persistence.adapters import SqlIdentityAdapter
from fakes import User, user_descriptor


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'crud.db'}", Settings())
    yield engine
    await engine.dispose()


@pytest.fixture
async def adapter(engine):
    adapter = SqlIdentityAdapter(user_descriptor(), engine, create_metadata(), flush_size=2)
    await adapter.initialize()
    return adapter


def _user(i):
    return User(name=f"user {i}", email=f"u{i}@x.com")


async def test_rejects_other_identifier_types(engine):
    with pytest.raises(ConfigurationError):
        SqlIdentityAdapter(
            user_descriptor(IdentifierType.LONG_SEQUENCE), engine, create_metadata()
        )


async def test_initialize_is_idempotent(adapter):
    await adapter.initialize()
    assert await adapter.count() == 0


async def test_insert_assigns_database_ids(adapter):
    first = await adapter.insert(_user(1))
    second = await adapter.insert(_user(2))
    assert (first.id, second.id) == (1, 2)


async def test_insert_many_returns_ids_in_input_order(adapter):
    stored = await adapter.insert_many([_user(i) for i in range(5)])
    assert [e.id for e in stored] == [1, 2, 3, 4, 5]
    assert [e.email for e in stored] == [f"u{i}@x.com" for i in range(5)]
    assert (await adapter.find_by_id(4)).email == "u3@x.com"


async def test_insert_many_is_atomic_per_call(adapter):
    await adapter.insert(_user(0))
    with pytest.raises(StorageConflictError):
        await adapter.insert_many([_user(1), _user(2), _user(0)])
    assert await adapter.count() == 1


async def test_duplicate_insert_raises_storage_conflict(adapter):
    await adapter.insert(_user(1))
    with pytest.raises(StorageConflictError):
        await adapter.insert(_user(1))


async def test_find_by_id_missing_returns_none(adapter):
    assert await adapter.find_by_id(99) is None


async def test_find_all_defaults_to_identifier_order(adapter):
    await adapter.insert_many([_user(3), _user(1), _user(2)])
    assert [e.id for e in await adapter.find_all()] == [1, 2, 3]


async def test_find_page_sorts_and_slices(adapter):
    await adapter.insert_many([_user(i) for i in range(5)])
    page = await adapter.find_page(1, 2, Sort(field="name", direction=SortDirection.DESC))
    assert [e.name for e in page.content] == ["user 2", "user 1"]
    assert page.total_elements == 5
    assert page.total_pages == 3
    assert not page.first and not page.last


async def test_update_writes_only_given_fields(adapter):
    stored = await adapter.insert(_user(1))
    updated = await adapter.update(stored.id, {"name": "renamed"})
    assert updated.name == "renamed"
    assert updated.email == "u1@x.com"


async def test_update_missing_returns_none(adapter):
    assert await adapter.update(42, {"name": "x"}) is None


async def test_delete_reports_whether_a_row_was_removed(adapter):
    stored = await adapter.insert(_user(1))
    assert await adapter.delete(stored.id) is True
    assert await adapter.delete(stored.id) is False
    assert await adapter.exists(stored.id) is False


async def test_exists_matching_honours_exclusion(adapter):
    stored = await adapter.insert(_user(1))
    assert await adapter.exists_matching({"email": "u1@x.com"}) is True
    assert await adapter.exists_matching({"email": "u1@x.com"}, exclude_id=stored.id) is False
    assert await adapter.exists_matching({"email": "nobody@x.com"}) is False


async def test_service_over_sql_reports_conflict(adapter):
    service = CrudService(adapter.descriptor, adapter)
    await service.create(_user(1))
    with pytest.raises(ConflictError) as info:
        await service.create(User(name="other", email="u1@x.com"))
    assert info.value.conflicts[0].message == "Email already registered"
    assert await service.count() == 1


async def test_audit_timestamps_read_back_unchanged(adapter):
    service = CrudService(adapter.descriptor, adapter)
    created = await service.create(_user(1))
    fetched = await service.find_by_id(created.id)
    updated = await service.update(created.id, {"name": "renamed"})

    assert created.created_at == fetched.created_at == updated.created_at
    assert fetched.created_at.tzinfo is not None
    assert updated.model_dump_json(include={"created_at"}) == created.model_dump_json(include={"created_at"})
    assert updated.updated_at >= created.updated_at

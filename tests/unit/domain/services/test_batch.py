"""Tests for BatchProcessor — chunking, partial failure and telemetry."""

import math

import pytest

from crudforge.domain.errors import BatchFailedError, PartialInsertError, ValidationError
from crudforge.domain.services.audit import AuditStamper
from crudforge.domain.services.batch import BatchProcessor, chunked
from crudforge.domain.services.uniqueness import UniquenessEnforcer
from fakes import InMemoryAdapter, RecordingTelemetry, User, user_descriptor


def _users(n, start=0):
    return [User(name=f"user {i}", email=f"u{i}@x.com") for i in range(start, start + n)]


def _processor(adapter, chunk_size=1000, telemetry=None):
    return BatchProcessor(
        adapter.descriptor,
        adapter,
        AuditStamper(),
        UniquenessEnforcer(adapter),
        telemetry or RecordingTelemetry(),
        chunk_size=chunk_size,
    )


def test_chunked_preserves_order_and_bounds():
    chunks = list(chunked(list(range(7)), 3))
    assert chunks == [[0, 1, 2], [3, 4, 5], [6]]


@pytest.mark.parametrize("n,size", [(1, 1), (10, 3), (9, 3), (2500, 1000)])
async def test_chunk_count_is_ceiling_and_counts_add_up(n, size):
    adapter = InMemoryAdapter(user_descriptor())
    result = await _processor(adapter, chunk_size=size).process(_users(n))
    assert result.chunks == math.ceil(n / size)
    assert result.succeeded + result.failed == n
    assert adapter.insert_many_calls == [len(c) for c in chunked(list(range(n)), size)]


async def test_failed_middle_chunk_does_not_stop_later_chunks():
    adapter = InMemoryAdapter(user_descriptor(), fail_calls={1})
    result = await _processor(adapter, chunk_size=1000).process(_users(2500))

    assert result.total == 2500
    assert result.chunks == 3
    assert result.succeeded == 1500
    assert result.failed == 1000
    assert [f.chunk_index for f in result.failures] == [1]
    assert result.failures[0].code == "PERSISTENCE_ERROR"
    assert adapter.insert_many_calls == [1000, 1000, 500]


async def test_every_chunk_failing_raises_with_result():
    adapter = InMemoryAdapter(user_descriptor(), fail_calls={0, 1})
    with pytest.raises(BatchFailedError) as info:
        await _processor(adapter, chunk_size=2).process(_users(4))
    assert info.value.result.failed == 4
    assert info.value.result.succeeded == 0


async def test_conflicting_entity_fails_alone():
    adapter = InMemoryAdapter(user_descriptor())
    await adapter.insert(User(name="old", email="u1@x.com"))
    result = await _processor(adapter, chunk_size=10).process(_users(3))

    assert result.succeeded == 2
    assert result.failed == 1
    failure = result.failures[0]
    assert failure.code == "CONFLICT"
    assert failure.entities[0].email == "u1@x.com"
    assert "Email already registered" in failure.reason


async def test_duplicates_inside_the_batch_are_rejected():
    adapter = InMemoryAdapter(user_descriptor())
    batch = [
        User(name="a", email="same@x.com"),
        User(name="b", email="other@x.com"),
        User(name="c", email="same@x.com"),
    ]
    result = await _processor(adapter, chunk_size=2).process(batch)
    assert result.succeeded == 2
    assert [f.chunk_index for f in result.failures] == [1]
    assert await adapter.count() == 2


async def test_storage_conflict_fails_the_whole_chunk():
    adapter = InMemoryAdapter(user_descriptor())
    await adapter.insert(User(name="old", email="u0@x.com"))

    async def blind_precheck(criteria, exclude_id=None):
        return False

    adapter.exists_matching = blind_precheck  # type: ignore[method-assign]
    result = await _processor(adapter, chunk_size=2).process(_users(4))

    assert result.succeeded == 2
    assert result.failures[0].chunk_index == 0
    assert result.failures[0].code == "CONFLICT"
    assert result.failures[0].count == 2


async def test_partial_insert_credits_the_stored_prefix():
    class PrefixAdapter(InMemoryAdapter):
        async def insert_many(self, entities):
            stored = await super().insert_many(entities[:1])
            raise PartialInsertError("stopped after 1", inserted=stored)

    adapter = PrefixAdapter(user_descriptor())
    result = await _processor(adapter, chunk_size=3).process(_users(3))
    assert result.succeeded == 1
    assert result.failed == 2
    assert [e.email for e in result.failures[0].entities] == ["u1@x.com", "u2@x.com"]


async def test_one_progress_observation_per_chunk():
    telemetry = RecordingTelemetry()
    adapter = InMemoryAdapter(user_descriptor())
    await _processor(adapter, chunk_size=4, telemetry=telemetry).process(_users(10))

    assert [p.chunk_index for p in telemetry.progress] == [0, 1, 2]
    assert [p.chunk_size for p in telemetry.progress] == [4, 4, 2]
    assert [p.processed for p in telemetry.progress] == [4, 8, 10]
    assert telemetry.progress[-1].percent == 100.0


async def test_entities_are_stamped_and_get_ids():
    adapter = InMemoryAdapter(user_descriptor())
    await _processor(adapter).process(_users(2))
    stored = await adapter.find_all()
    assert all(e.id is not None and e.created_at == e.updated_at for e in stored)


async def test_caller_supplied_ids_are_ignored():
    adapter = InMemoryAdapter(user_descriptor())
    await _processor(adapter).process([User(id=99, name="a", email="a@x.com")])
    assert await adapter.exists(99) is False
    assert await adapter.exists(1) is True


async def test_chunk_size_override_per_call():
    adapter = InMemoryAdapter(user_descriptor())
    result = await _processor(adapter, chunk_size=1000).process(_users(5), chunk_size=2)
    assert result.chunks == 3
    assert result.chunk_size == 2


async def test_non_positive_chunk_size_is_rejected():
    adapter = InMemoryAdapter(user_descriptor())
    with pytest.raises(ValidationError):
        await _processor(adapter).process(_users(1), chunk_size=0)


async def test_wrong_item_type_is_rejected_before_any_chunk():
    adapter = InMemoryAdapter(user_descriptor())
    with pytest.raises(ValidationError):
        await _processor(adapter).process([User(name="a", email="a"), {"name": "b"}])
    assert adapter.insert_many_calls == []


async def test_empty_batch_returns_empty_result():
    adapter = InMemoryAdapter(user_descriptor())
    result = await _processor(adapter).process([])
    assert result.total == 0
    assert result.chunks == 0
    assert result.average_seconds_per_entity == 0.0


async def test_elapsed_time_and_average_are_reported():
    adapter = InMemoryAdapter(user_descriptor())
    result = await _processor(adapter).process(_users(4))
    assert result.elapsed_seconds >= 0
    assert result.average_seconds_per_entity == pytest.approx(result.elapsed_seconds / 4)

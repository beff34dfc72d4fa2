"""Tests for PageResult and Sort."""

import pytest

from crudforge.domain.errors import ValidationError
from crudforge.domain.models import PageResult, Sort, SortDirection


def test_total_pages_is_ceiling_of_total_over_size():
    assert PageResult.build([], 0, 20, 41).total_pages == 3


def test_first_page_is_flagged_first():
    page = PageResult.build([1, 2], 0, 2, 5)
    assert page.first is True
    assert page.last is False


def test_final_page_is_flagged_last():
    page = PageResult.build([5], 2, 2, 5)
    assert page.last is True
    assert page.first is False


@pytest.mark.parametrize("total,size", [(5, 2), (40, 20), (0, 20), (19, 20)])
def test_page_floor_total_over_size_is_last(total, size):
    assert PageResult.build([], total // size, size, total).last is True


def test_empty_collection_has_zero_pages_and_single_first_last_page():
    page = PageResult.build([], 0, 20, 0)
    assert page.total_pages == 0
    assert page.first and page.last


def test_payload_uses_camel_case_and_omits_page_size():
    payload = PageResult.build(["a"], 0, 10, 1).model_dump(by_alias=True)
    assert payload == {
        "content": ["a"],
        "currentPage": 0,
        "totalElements": 1,
        "totalPages": 1,
        "first": True,
        "last": True,
    }


def test_page_size_is_still_available_on_the_object():
    assert PageResult.build([], 1, 10, 30).page_size == 10


def test_sort_of_without_field_means_no_sort():
    assert Sort.of(None, "DESC") is None


def test_sort_of_is_case_insensitive():
    assert Sort.of("name", "desc") == Sort(field="name", direction=SortDirection.DESC)


def test_sort_of_defaults_to_ascending():
    assert Sort.of("name").descending is False


def test_sort_of_accepts_enum_member():
    assert Sort.of("name", SortDirection.DESC).descending is True


def test_sort_of_rejects_unknown_direction():
    with pytest.raises(ValidationError):
        Sort.of("name", "sideways")

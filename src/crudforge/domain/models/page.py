"""Paging and sorting value objects."""

from __future__ import annotations

import math
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from crudforge.domain.errors import ValidationError

from .enums import SortDirection

T = TypeVar("T")


class Sort(BaseModel):
    """Single-field sort; ``field`` must name a field of the entity."""

    model_config = ConfigDict(frozen=True)

    field: str
    direction: SortDirection = SortDirection.ASC

    @classmethod
    def of(cls, field: str | None, direction: SortDirection | str | None = None) -> Sort | None:
        """Build from optional query parameters; no field means storage order."""
        if not field:
            return None
        if direction is None:
            return cls(field=field)
        if isinstance(direction, SortDirection):
            return cls(field=field, direction=direction)
        try:
            parsed = SortDirection(str(direction).upper())
        except ValueError:
            raise ValidationError(
                f"Invalid sort direction {direction!r}", {"sortDirection": "must be ASC or DESC"}
            ) from None
        return cls(field=field, direction=parsed)

    @property
    def descending(self) -> bool:
        return self.direction is SortDirection.DESC


class PageResult(BaseModel, Generic[T]):
    """One page of entities plus the totals needed to navigate the rest.

    Serialises (by alias) to the page payload
    ``{content, currentPage, totalPages, totalElements, first, last}``;
    page_size is kept for callers but left out of the payload.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    content: list[T]
    current_page: int
    page_size: int = Field(exclude=True)
    total_elements: int
    total_pages: int
    first: bool
    last: bool

    @classmethod
    def build(cls, content: list[T], page: int, size: int, total: int) -> PageResult[T]:
        total_pages = math.ceil(total / size) if size > 0 else 0
        return cls(
            content=content,
            current_page=page,
            page_size=size,
            total_elements=total,
            total_pages=total_pages,
            first=page == 0,
            # also true past the end, so page floor(total/size) is always last
            last=page >= total_pages - 1,
        )

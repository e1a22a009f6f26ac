"""Page requests and the paging data that accompanies a result."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class Pagination:
    """A requested page, numbered from 1."""

    page: int
    per_page: int


@dataclass
class PaginationData:
    page: int
    per_page: int
    total_pages: int
    total_count: int


@dataclass
class PaginatedResult(Generic[T]):
    items: list[T] = field(default_factory=list)
    pagination_data: Optional[PaginationData] = None


def new_pagination_data(pagination: Optional[Pagination], count: int) -> PaginationData:
    """Describe how ``count`` records split into pages of the requested size."""
    if pagination is None or pagination.per_page == 0:
        return PaginationData(page=1, per_page=count, total_pages=1, total_count=count)
    return PaginationData(
        page=pagination.page,
        per_page=pagination.per_page,
        total_pages=math.ceil(count / pagination.per_page),
        total_count=count,
    )


def new_paginated_result(
    items: list[T], pagination: Optional[Pagination], total_count: int
) -> PaginatedResult[T]:
    return PaginatedResult(
        items=items, pagination_data=new_pagination_data(pagination, total_count)
    )
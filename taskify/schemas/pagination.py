"""
Response envelopes shared by every endpoint.
Single resources are wrapped in ``ApiResponse``; list endpoints return
``PaginatedResponse`` with consistent pagination metadata.
"""
from __future__ import annotations

import math
from typing import Generic, TypeVar

from pydantic import BaseModel, computed_field

T = TypeVar("T")


class PageParams(BaseModel):
    page: int = 1
    size: int = 15

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size


class PaginationMeta(BaseModel):
    total: int
    per_page: int
    current_page: int

    @computed_field  # type: ignore[misc]
    @property
    def last_page(self) -> int:
        # An empty result still has one (empty) page.
        if self.per_page == 0:
            return 1
        return max(1, math.ceil(self.total / self.per_page))


class PaginatedResponse(BaseModel, Generic[T]):
    success: bool = True
    data: list[T]
    pagination: PaginationMeta

    @classmethod
    def build(cls, items: list[T], total: int, params: PageParams) -> "PaginatedResponse[T]":
        return cls(
            data=items,
            pagination=PaginationMeta(total=total, per_page=params.size, current_page=params.page),
        )


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    message: str | None = None
    data: T | None = None

import math
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

DataT = TypeVar("DataT")


class HealthCheckResponseSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool


class Pagination(BaseModel):
    """Pagination metadata attached to paged listings.

    Attributes:
        total: Number of matching records across all pages
        pages: Number of pages at the current limit
        page: The 1-based page that was returned
        limit: Maximum number of records per page
    """

    model_config = ConfigDict(frozen=True)

    total: int = Field(ge=0)
    pages: int = Field(ge=0)
    page: int = Field(ge=1)
    limit: int = Field(ge=1)

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "Pagination":
        return cls(total=total, pages=math.ceil(total / limit), page=page, limit=limit)


class Page(BaseModel, Generic[DataT]):
    """One page of records as returned by a service."""

    model_config = ConfigDict(frozen=True)

    items: list[DataT]
    pagination: Pagination


class DataResponse(BaseModel, Generic[DataT]):
    """Success envelope around a single object."""

    success: bool = True
    data: DataT


class ListResponse(BaseModel, Generic[DataT]):
    """Success envelope around a list, with its length."""

    success: bool = True
    count: int
    data: list[DataT]

    @classmethod
    def of(cls, items: list[DataT]) -> "ListResponse[DataT]":
        return cls(count=len(items), data=items)


class PageResponse(BaseModel, Generic[DataT]):
    """Success envelope around one page of a listing."""

    success: bool = True
    count: int
    pagination: Pagination
    data: list[DataT]

    @classmethod
    def of(cls, page: Page[DataT]) -> "PageResponse[DataT]":
        return cls(count=len(page.items), pagination=page.pagination, data=page.items)


class MessageResponse(BaseModel):
    """Envelope for outcomes that carry only a message, including failures."""

    success: bool
    message: str

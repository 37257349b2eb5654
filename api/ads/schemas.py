"""
Ad API schemas (request/response models) and the AdFilter value type.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _naive_utc(value: datetime | None) -> datetime | None:
    # Columns are TIMESTAMP (no time zone) holding UTC.
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Ad(BaseModel):
    id: int
    title: str
    description: str
    price: Decimal
    status: str
    user_email: str
    user_phone: str
    created_at: datetime
    updated_at: datetime
    top_ad: bool
    images: list[str] = Field(default_factory=list)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _to_naive_utc(cls, value: datetime) -> datetime:
        return _naive_utc(value)


class AdContent(BaseModel):
    """
    The caller-supplied part of a new ad. Everything else (id, status,
    timestamps, images) is filled in by the repository.
    """

    title: str
    description: str
    price: Decimal
    user_email: str
    user_phone: str
    top_ad: bool = False


class AdFilter(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    title_contains: str | None = None
    description_contains: str | None = None
    price_lt: Decimal | None = None
    price_gt: Decimal | None = None
    updated_at_lt: datetime | None = None
    updated_at_gt: datetime | None = None

    @field_validator("price_lt", "price_gt")
    @classmethod
    def _finite_price(cls, value: Decimal | None) -> Decimal | None:
        if value is not None and not value.is_finite():
            raise ValueError("price bound must be a finite decimal")
        return value

    @field_validator("updated_at_lt", "updated_at_gt")
    @classmethod
    def _to_naive_utc(cls, value: datetime | None) -> datetime | None:
        return _naive_utc(value)


class PaginatedRequest(BaseModel):
    per_page: int | None = Field(default=None, ge=0)
    offset: int | None = Field(default=None, ge=0)
    # Parsed by ads.filters.parse_filter so malformed literals surface as FilterParseError.
    filters: dict[str, Any] | None = None


class PaginatedResponse(BaseModel):
    page: int
    items: list[Ad]


class CursorRequest(BaseModel):
    filters: dict[str, Any] | None = None


class CursorResponse(BaseModel):
    cursor: str
    items: list[Ad] = Field(default_factory=list)

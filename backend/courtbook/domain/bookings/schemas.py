from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from courtbook.domain.bookings.statuses import BookingStatus

SortOrder = Literal["asc", "desc"]


class BookingCreateRequest(BaseModel):
    resource_id: int
    starts_at: datetime
    ends_at: datetime


class BookingRescheduleRequest(BaseModel):
    starts_at: datetime
    ends_at: datetime


class BookingResponse(BaseModel):
    booking_id: str
    resource_id: int
    user_id: uuid.UUID
    status: BookingStatus
    starts_at: datetime
    ends_at: datetime
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingFilter(BaseModel):
    """Listing criteria; every field narrows the result further."""

    resource_id: int | None = None
    location_id: int | None = None
    org_id: int | None = None
    user_id: uuid.UUID | None = None
    starts_from: datetime | None = None
    ends_before: datetime | None = None
    status: list[BookingStatus] | None = None
    sort: SortOrder = "asc"
    page: int = Field(default=1, ge=1)
    page_size: int | None = Field(default=None, ge=1)


class BookingListResponse(BaseModel):
    items: list[BookingResponse]
    total: int
    page: int
    page_size: int

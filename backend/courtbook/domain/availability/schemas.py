from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel


class TimeSlot(BaseModel):
    starts_at: datetime
    ends_at: datetime


class AvailabilityResponse(BaseModel):
    resource_id: int
    date: date
    opening_hours_start: datetime
    opening_hours_end: datetime
    slots: list[TimeSlot]

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courtbook.domain.availability import schemas
from courtbook.domain.bookings.db_models import Booking
from courtbook.domain.bookings.statuses import BLOCKING_STATUSES, BOOKING_STATUS_CANCELLED
from courtbook.domain.errors import InvalidArgumentError
from courtbook.domain.organizations.service import resolve_resource_context
from courtbook.infra.db import run_storage_operation


class _Interval(Protocol):
    starts_at: datetime
    ends_at: datetime
    status: str


def _normalize(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def opening_window(day: date, opens_at: time, closes_at: time) -> tuple[datetime, datetime]:
    """UTC opening window for ``day``. A closing time of 00:00 means midnight at the end of the day."""

    start = datetime.combine(day, opens_at, tzinfo=timezone.utc)
    if closes_at == time.min:
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=timezone.utc)
    else:
        end = datetime.combine(day, closes_at, tzinfo=timezone.utc)
    if end < start:
        raise InvalidArgumentError(detail="Opening hours end before they start")
    return start, end


async def has_conflict(
    session: AsyncSession,
    resource_id: int,
    starts_at: datetime,
    ends_at: datetime,
    *,
    exclude_booking_id: str | None = None,
) -> bool:
    """True when a pending or confirmed booking on the resource overlaps [starts_at, ends_at).

    Touching endpoints do not overlap: a booking ending at 11:00 leaves 11:00 free.
    """

    stmt = select(Booking.booking_id).where(
        Booking.resource_id == resource_id,
        Booking.status.in_(BLOCKING_STATUSES),
        Booking.starts_at < _normalize(ends_at),
        Booking.ends_at > _normalize(starts_at),
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.booking_id != exclude_booking_id)
    return (await session.scalar(stmt.limit(1))) is not None


def calculate_availability(
    day_start: datetime, day_end: datetime, bookings: Iterable[_Interval]
) -> list[schemas.TimeSlot]:
    if day_end < day_start:
        raise InvalidArgumentError(detail="Opening hours end before they start")

    slots: list[schemas.TimeSlot] = []
    cursor = day_start
    for booking in sorted(bookings, key=lambda item: _normalize(item.starts_at)):
        if booking.status == BOOKING_STATUS_CANCELLED:
            continue
        booked_start = _normalize(booking.starts_at)
        booked_end = _normalize(booking.ends_at)
        if booked_end < cursor:
            continue
        if booked_start > day_end:
            break
        # Overlapping bookings are merged by never moving the cursor backwards.
        booked_start = max(booked_start, cursor)
        booked_end = min(booked_end, day_end)
        if booked_start > cursor:
            slots.append(schemas.TimeSlot(starts_at=cursor, ends_at=booked_start))
        if booked_end > cursor:
            cursor = booked_end

    if cursor < day_end:
        slots.append(schemas.TimeSlot(starts_at=cursor, ends_at=day_end))
    return slots


async def get_availability(
    session: AsyncSession, resource_id: int, day: date, *, timeout: float | None = None
) -> schemas.AvailabilityResponse:
    async def _load() -> schemas.AvailabilityResponse:
        context = await resolve_resource_context(session, resource_id)
        location = context.location
        day_start, day_end = opening_window(day, location.opening_hours_start, location.opening_hours_end)

        stmt = (
            select(Booking)
            .where(
                Booking.resource_id == resource_id,
                Booking.status.in_(BLOCKING_STATUSES),
                Booking.starts_at < day_end,
                Booking.ends_at > day_start,
            )
            .order_by(Booking.starts_at.asc())
        )
        bookings = (await session.execute(stmt)).scalars().all()
        await session.commit()
        return schemas.AvailabilityResponse(
            resource_id=resource_id,
            date=day,
            opening_hours_start=day_start,
            opening_hours_end=day_end,
            slots=calculate_availability(day_start, day_end, bookings),
        )

    return await run_storage_operation(session, "get_availability", _load, timeout)

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone

import pytest

from courtbook.domain.availability.service import (
    calculate_availability,
    get_availability,
    has_conflict,
    opening_window,
)
from courtbook.domain.bookings.db_models import Booking
from courtbook.domain.errors import InvalidArgumentError, NotFoundError
from tests.conftest import BOOKING_DAY, at


@dataclass
class _Slot:
    starts_at: datetime
    ends_at: datetime
    status: str = "confirmed"


def _window():
    return opening_window(BOOKING_DAY, time(8, 0), time(22, 0))


def _pairs(slots):
    return [(slot.starts_at, slot.ends_at) for slot in slots]


def test_no_bookings_leaves_whole_day_free():
    day_start, day_end = _window()

    assert _pairs(calculate_availability(day_start, day_end, [])) == [(at(8), at(22))]


def test_single_booking_splits_day():
    day_start, day_end = _window()

    slots = calculate_availability(day_start, day_end, [_Slot(at(10), at(11))])

    assert _pairs(slots) == [(at(8), at(10)), (at(11), at(22))]


def test_unsorted_and_overlapping_bookings_are_merged():
    day_start, day_end = _window()
    bookings = [
        _Slot(at(14), at(15)),
        _Slot(at(10), at(12)),
        _Slot(at(11), at(13)),
    ]

    slots = calculate_availability(day_start, day_end, bookings)

    assert _pairs(slots) == [(at(8), at(10)), (at(13), at(14)), (at(15), at(22))]


def test_contained_booking_does_not_move_cursor_backwards():
    day_start, day_end = _window()
    bookings = [_Slot(at(9), at(13)), _Slot(at(10), at(11))]

    slots = calculate_availability(day_start, day_end, bookings)

    assert _pairs(slots) == [(at(8), at(9)), (at(13), at(22))]


def test_cancelled_bookings_are_ignored():
    day_start, day_end = _window()
    bookings = [_Slot(at(10), at(11), status="cancelled"), _Slot(at(12), at(13), status="pending")]

    slots = calculate_availability(day_start, day_end, bookings)

    assert _pairs(slots) == [(at(8), at(12)), (at(13), at(22))]


def test_bookings_are_clamped_to_opening_hours():
    day_start, day_end = _window()
    bookings = [_Slot(at(6), at(9)), _Slot(at(21), at(23))]

    slots = calculate_availability(day_start, day_end, bookings)

    assert _pairs(slots) == [(at(9), at(21))]


def test_back_to_back_bookings_leave_no_gap():
    day_start, day_end = _window()
    bookings = [_Slot(at(8), at(12)), _Slot(at(12), at(22))]

    assert calculate_availability(day_start, day_end, bookings) == []


def test_naive_datetimes_are_treated_as_utc():
    day_start, day_end = _window()
    naive = _Slot(datetime.combine(BOOKING_DAY, time(10)), datetime.combine(BOOKING_DAY, time(11)))

    slots = calculate_availability(day_start, day_end, [naive])

    assert _pairs(slots) == [(at(8), at(10)), (at(11), at(22))]
    assert slots[0].ends_at.tzinfo is not None


def test_inverted_opening_hours_are_rejected():
    with pytest.raises(InvalidArgumentError):
        opening_window(BOOKING_DAY, time(22, 0), time(8, 0))

    with pytest.raises(InvalidArgumentError):
        calculate_availability(at(22), at(8), [])


def test_opening_window_is_utc():
    start, end = opening_window(BOOKING_DAY, time(8, 0), time(22, 0))

    assert start.tzinfo == timezone.utc
    assert (start, end) == (at(8), at(22))


def test_closing_at_midnight_runs_to_the_end_of_the_day():
    start, end = opening_window(BOOKING_DAY, time(18, 0), time(0, 0))

    assert start == at(18)
    assert end == at(0, day=BOOKING_DAY + timedelta(days=1))
    assert _pairs(calculate_availability(start, end, [_Slot(at(20), at(21))])) == [
        (at(18), at(20)),
        (at(21), end),
    ]


@pytest.mark.anyio
async def test_has_conflict_treats_intervals_as_half_open(async_session_maker, hierarchy):
    async with async_session_maker() as session:
        session.add(
            Booking(
                resource_id=hierarchy.resource_a_id,
                user_id=hierarchy.member_id,
                starts_at=at(10),
                ends_at=at(11),
                status="confirmed",
            )
        )
        await session.commit()

    async with async_session_maker() as session:
        resource_id = hierarchy.resource_a_id
        assert await has_conflict(session, resource_id, at(10, 30), at(11, 30)) is True
        assert await has_conflict(session, resource_id, at(9), at(12)) is True
        assert await has_conflict(session, resource_id, at(11), at(12)) is False
        assert await has_conflict(session, resource_id, at(9), at(10)) is False
        assert await has_conflict(session, hierarchy.resource_a2_id, at(10), at(11)) is False
        await session.rollback()


@pytest.mark.anyio
async def test_has_conflict_ignores_cancelled_and_excluded_bookings(async_session_maker, hierarchy):
    async with async_session_maker() as session:
        cancelled = Booking(
            resource_id=hierarchy.resource_a_id,
            user_id=hierarchy.member_id,
            starts_at=at(10),
            ends_at=at(11),
            status="cancelled",
        )
        pending = Booking(
            resource_id=hierarchy.resource_a_id,
            user_id=hierarchy.member_id,
            starts_at=at(12),
            ends_at=at(13),
            status="pending",
        )
        session.add_all([cancelled, pending])
        await session.commit()

    async with async_session_maker() as session:
        resource_id = hierarchy.resource_a_id
        assert await has_conflict(session, resource_id, at(10), at(11)) is False
        assert await has_conflict(session, resource_id, at(12), at(13)) is True
        assert (
            await has_conflict(session, resource_id, at(12), at(13), exclude_booking_id=pending.booking_id)
            is False
        )
        await session.rollback()


@pytest.mark.anyio
async def test_get_availability_reads_location_hours(async_session_maker, hierarchy):
    async with async_session_maker() as session:
        session.add(
            Booking(
                resource_id=hierarchy.resource_b_id,
                user_id=hierarchy.member_id,
                starts_at=at(18),
                ends_at=at(20),
                status="pending",
            )
        )
        await session.commit()

    async with async_session_maker() as session:
        availability = await get_availability(session, hierarchy.resource_b_id, BOOKING_DAY)
        await session.rollback()

    assert availability.resource_id == hierarchy.resource_b_id
    assert availability.opening_hours_start == at(8)
    assert availability.opening_hours_end == at(22)
    assert _pairs(availability.slots) == [(at(8), at(18)), (at(20), at(22))]


@pytest.mark.anyio
async def test_get_availability_for_unknown_resource(async_session_maker, hierarchy):
    async with async_session_maker() as session:
        with pytest.raises(NotFoundError):
            await get_availability(session, 999_999, BOOKING_DAY)
        await session.rollback()

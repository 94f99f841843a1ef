import pytest

from courtbook.domain.bookings import service as booking_service
from courtbook.domain.bookings.db_models import Booking
from courtbook.domain.bookings.schemas import BookingFilter
from courtbook.domain.bookings.statuses import BookingStatus
from courtbook.domain.errors import InvalidArgumentError
from courtbook.settings import settings
from tests.conftest import at, facts_for


async def _seed_bookings(session_maker, hierarchy) -> dict[str, Booking]:
    bookings = {
        "member_a": Booking(
            resource_id=hierarchy.resource_a_id,
            user_id=hierarchy.member_id,
            starts_at=at(9),
            ends_at=at(10),
            status="pending",
        ),
        "member_b": Booking(
            resource_id=hierarchy.resource_b_id,
            user_id=hierarchy.member_id,
            starts_at=at(12),
            ends_at=at(13),
            status="confirmed",
        ),
        "other_a2": Booking(
            resource_id=hierarchy.resource_a2_id,
            user_id=hierarchy.other_member_id,
            starts_at=at(14),
            ends_at=at(15),
            status="cancelled",
        ),
        "other_b": Booking(
            resource_id=hierarchy.resource_b_id,
            user_id=hierarchy.other_member_id,
            starts_at=at(16),
            ends_at=at(17),
            status="pending",
        ),
    }
    async with session_maker() as session:
        session.add_all(bookings.values())
        await session.commit()
    return bookings


async def _list(session_maker, actor_id, **filters):
    actor = await facts_for(session_maker, actor_id)
    async with session_maker() as session:
        return await booking_service.list_bookings(session, actor, BookingFilter(**filters))


def _ids(page) -> list[str]:
    return [booking.booking_id for booking in page.items]


@pytest.mark.anyio
async def test_member_sees_only_own_bookings(async_session_maker, hierarchy):
    seeded = await _seed_bookings(async_session_maker, hierarchy)

    page = await _list(async_session_maker, hierarchy.member_id)

    assert _ids(page) == [seeded["member_a"].booking_id, seeded["member_b"].booking_id]
    assert page.total == 2


@pytest.mark.anyio
async def test_location_manager_sees_own_location_and_own_bookings(async_session_maker, hierarchy):
    seeded = await _seed_bookings(async_session_maker, hierarchy)

    page = await _list(async_session_maker, hierarchy.location_b_manager_id)

    assert _ids(page) == [seeded["member_b"].booking_id, seeded["other_b"].booking_id]


@pytest.mark.anyio
async def test_org_manager_and_owner_see_whole_organization(async_session_maker, hierarchy):
    await _seed_bookings(async_session_maker, hierarchy)

    for user_id in (hierarchy.org_manager_id, hierarchy.owner_id, hierarchy.admin_id):
        page = await _list(async_session_maker, user_id)
        assert page.total == 4


@pytest.mark.anyio
async def test_owner_of_another_organization_sees_nothing(async_session_maker, hierarchy):
    await _seed_bookings(async_session_maker, hierarchy)

    page = await _list(async_session_maker, hierarchy.outsider_id)

    assert page.items == []
    assert page.total == 0


@pytest.mark.anyio
async def test_filters_narrow_the_visible_set(async_session_maker, hierarchy):
    seeded = await _seed_bookings(async_session_maker, hierarchy)

    by_location = await _list(async_session_maker, hierarchy.owner_id, location_id=hierarchy.location_a_id)
    assert _ids(by_location) == [seeded["member_a"].booking_id, seeded["other_a2"].booking_id]

    by_status = await _list(
        async_session_maker, hierarchy.owner_id, status=[BookingStatus.pending, BookingStatus.confirmed]
    )
    assert seeded["other_a2"].booking_id not in _ids(by_status)
    assert by_status.total == 3

    by_user = await _list(async_session_maker, hierarchy.owner_id, user_id=hierarchy.other_member_id)
    assert _ids(by_user) == [seeded["other_a2"].booking_id, seeded["other_b"].booking_id]

    by_resource = await _list(async_session_maker, hierarchy.owner_id, resource_id=hierarchy.resource_b_id)
    assert by_resource.total == 2

    by_org = await _list(async_session_maker, hierarchy.admin_id, org_id=hierarchy.other_org_id)
    assert by_org.total == 0


@pytest.mark.anyio
async def test_time_range_matches_intersecting_bookings(async_session_maker, hierarchy):
    seeded = await _seed_bookings(async_session_maker, hierarchy)

    page = await _list(async_session_maker, hierarchy.owner_id, starts_from=at(9, 30), ends_before=at(14))

    # 14:00 is exclusive so the 14:00 booking does not intersect.
    assert _ids(page) == [seeded["member_a"].booking_id, seeded["member_b"].booking_id]


@pytest.mark.anyio
async def test_inverted_time_range_is_rejected(async_session_maker, hierarchy):
    with pytest.raises(InvalidArgumentError):
        await _list(async_session_maker, hierarchy.owner_id, starts_from=at(14), ends_before=at(9))


@pytest.mark.anyio
async def test_pagination_and_sort_order(async_session_maker, hierarchy):
    seeded = await _seed_bookings(async_session_maker, hierarchy)

    first = await _list(async_session_maker, hierarchy.owner_id, page=1, page_size=3, sort="desc")
    second = await _list(async_session_maker, hierarchy.owner_id, page=2, page_size=3, sort="desc")

    assert _ids(first) == [
        seeded["other_b"].booking_id,
        seeded["other_a2"].booking_id,
        seeded["member_b"].booking_id,
    ]
    assert _ids(second) == [seeded["member_a"].booking_id]
    assert first.total == second.total == 4
    assert first.page_size == 3


@pytest.mark.anyio
async def test_page_size_above_maximum_is_rejected(async_session_maker, hierarchy):
    settings.bookings_max_page_size = 5

    with pytest.raises(InvalidArgumentError):
        await _list(async_session_maker, hierarchy.owner_id, page_size=6)


@pytest.mark.anyio
async def test_default_page_size_applies(async_session_maker, hierarchy):
    await _seed_bookings(async_session_maker, hierarchy)
    settings.bookings_default_page_size = 2

    page = await _list(async_session_maker, hierarchy.owner_id)

    assert page.page_size == 2
    assert len(page.items) == 2
    assert page.total == 4

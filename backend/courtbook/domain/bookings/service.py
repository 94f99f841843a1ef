from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Awaitable, Callable, TypeVar

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from courtbook.domain.availability.service import has_conflict, opening_window
from courtbook.domain.bookings import schemas
from courtbook.domain.bookings.db_models import EXCLUSION_CONSTRAINT_NAME, Booking
from courtbook.domain.bookings.statuses import (
    BOOKING_STATUS_CONFIRMED,
    BOOKING_STATUS_PENDING,
    BookingStatus,
    assert_valid_booking_transition,
    is_terminal,
)
from courtbook.domain.errors import (
    ConflictError,
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
)
from courtbook.domain.iam.permissions import Action, RoleFacts, authorize
from courtbook.domain.iam.service import ensure_allowed
from courtbook.domain.locations.db_models import Location
from courtbook.domain.organizations.service import (
    ResourceContext,
    resolve_booking_target,
    resolve_resource_context,
)
from courtbook.domain.resources.db_models import Resource
from courtbook.infra.db import run_storage_operation
from courtbook.infra.metrics import metrics
from courtbook.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXCLUSION_VIOLATION_SQLSTATE = "23P01"


@dataclass(frozen=True)
class BookingPage:
    items: list[Booking]
    total: int
    page: int
    page_size: int


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_booking_overlap_integrity_error(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    diag = getattr(orig, "diag", None)
    constraint_name = getattr(diag, "constraint_name", None)
    if constraint_name is not None:
        return constraint_name == EXCLUSION_CONSTRAINT_NAME
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == EXCLUSION_VIOLATION_SQLSTATE:
        return True
    return EXCLUSION_CONSTRAINT_NAME in str(orig if orig is not None else exc)


def _conflict(resource_id: int, starts_at: datetime, ends_at: datetime) -> ConflictError:
    metrics.record_booking("conflict")
    logger.info(
        "booking_conflict",
        extra={
            "extra": {
                "resource_id": resource_id,
                "starts_at": starts_at.isoformat(),
                "ends_at": ends_at.isoformat(),
            }
        },
    )
    return ConflictError(detail="Requested interval overlaps an existing booking")


async def _run_operation(
    session: AsyncSession,
    operation: str,
    work: Callable[[], Awaitable[T]],
    timeout: float | None,
    *,
    on_overlap: Callable[[], ConflictError] | None = None,
) -> T:
    def _map_integrity_error(exc: IntegrityError) -> ConflictError | None:
        if on_overlap is not None and is_booking_overlap_integrity_error(exc):
            return on_overlap()
        return None

    return await run_storage_operation(
        session, operation, work, timeout, on_integrity_error=_map_integrity_error
    )


def _validate_interval(starts_at: datetime, ends_at: datetime) -> tuple[datetime, datetime]:
    start = _normalize_datetime(starts_at)
    end = _normalize_datetime(ends_at)
    if end <= start:
        raise InvalidArgumentError(detail="Booking must end after it starts")
    return start, end


def _ends_same_day(start: datetime, end: datetime) -> bool:
    next_midnight = datetime.combine(start.date() + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return end.date() == start.date() or end == next_midnight


def _ensure_within_opening_hours(location: Location, start: datetime, end: datetime) -> None:
    if not _ends_same_day(start, end):
        raise InvalidArgumentError(detail="Booking must start and end on the same day")
    day_start, day_end = opening_window(
        start.date(), location.opening_hours_start, location.opening_hours_end
    )
    if start < day_start or end > day_end:
        raise InvalidArgumentError(detail="Booking is outside the location's opening hours")


def _ensure_bookable(context: ResourceContext, start: datetime, end: datetime) -> None:
    if not settings.allow_past_bookings and start < _utcnow():
        raise InvalidArgumentError(detail="Booking cannot start in the past")
    if not context.organization.is_active:
        raise InvalidArgumentError(detail="Organization is not active")
    if not context.location.is_open:
        raise InvalidArgumentError(detail="Location is closed")
    if not context.resource.is_active:
        raise InvalidArgumentError(detail="Resource is not active")
    if settings.enforce_opening_hours:
        _ensure_within_opening_hours(context.location, start, end)


async def _load_booking(session: AsyncSession, booking_id: str, *, lock: bool = False) -> Booking:
    stmt = sa.select(Booking).where(Booking.booking_id == booking_id)
    if lock:
        stmt = stmt.with_for_update()
    booking = (await session.execute(stmt)).scalar_one_or_none()
    if booking is None:
        raise NotFoundError(detail="Booking not found")
    return booking


async def _persist(session: AsyncSession, booking: Booking) -> None:
    await session.flush()
    await session.refresh(booking)
    await session.commit()


async def create_booking(
    session: AsyncSession,
    actor: RoleFacts,
    resource_id: int,
    starts_at: datetime,
    ends_at: datetime,
    *,
    timeout: float | None = None,
) -> Booking:
    start, end = _validate_interval(starts_at, ends_at)

    async def _create() -> Booking:
        context = await resolve_resource_context(session, resource_id, lock=True)
        _ensure_bookable(context, start, end)
        ensure_allowed(actor, Action.CREATE_BOOKING, context.target(booking_owner_id=actor.user_id))

        if await has_conflict(session, resource_id, start, end):
            raise _conflict(resource_id, start, end)

        booking = Booking(
            resource_id=resource_id,
            user_id=actor.user_id,
            starts_at=start,
            ends_at=end,
            status=BOOKING_STATUS_PENDING,
        )
        session.add(booking)
        await _persist(session, booking)
        return booking

    booking = await _run_operation(
        session,
        "create_booking",
        _create,
        timeout,
        on_overlap=lambda: _conflict(resource_id, start, end),
    )
    metrics.record_booking("created")
    logger.info(
        "booking_created",
        extra={
            "extra": {
                "booking_id": booking.booking_id,
                "resource_id": resource_id,
                "user_id": str(actor.user_id),
            }
        },
    )
    return booking


async def _change_status(
    session: AsyncSession,
    actor: RoleFacts,
    booking_id: str,
    target_status: BookingStatus,
    timeout: float | None,
) -> Booking:
    previous: dict[str, str] = {}

    async def _apply() -> Booking:
        booking = await _load_booking(session, booking_id, lock=True)
        target = await resolve_booking_target(session, booking)
        if target_status is BookingStatus.cancelled and booking.user_id == actor.user_id:
            action = Action.CANCEL_OWN_BOOKING
        else:
            action = Action.MANAGE_BOOKING_STATUS
        ensure_allowed(actor, action, target)

        new_status = assert_valid_booking_transition(booking.status, target_status)
        previous["status"] = booking.status
        booking.status = new_status.value
        booking.updated_at = _utcnow()
        await _persist(session, booking)
        return booking

    booking = await _run_operation(session, f"{target_status.value}_booking", _apply, timeout)
    metrics.record_booking(target_status.value)
    logger.info(
        "booking_status_changed",
        extra={
            "extra": {
                "booking_id": booking.booking_id,
                "from_status": previous.get("status"),
                "to_status": booking.status,
                "actor_id": str(actor.user_id),
            }
        },
    )
    return booking


async def confirm_booking(
    session: AsyncSession, actor: RoleFacts, booking_id: str, *, timeout: float | None = None
) -> Booking:
    return await _change_status(session, actor, booking_id, BookingStatus.confirmed, timeout)


async def cancel_booking(
    session: AsyncSession, actor: RoleFacts, booking_id: str, *, timeout: float | None = None
) -> Booking:
    return await _change_status(session, actor, booking_id, BookingStatus.cancelled, timeout)


async def reschedule_booking(
    session: AsyncSession,
    actor: RoleFacts,
    booking_id: str,
    starts_at: datetime,
    ends_at: datetime,
    *,
    timeout: float | None = None,
) -> Booking:
    start, end = _validate_interval(starts_at, ends_at)
    resource_ref: dict[str, int] = {}
    previous: dict[str, str] = {}

    async def _apply() -> Booking:
        booking = await _load_booking(session, booking_id, lock=True)
        resource_ref["resource_id"] = booking.resource_id
        context = await resolve_resource_context(session, booking.resource_id, lock=True)
        if booking.user_id == actor.user_id:
            action = Action.RESCHEDULE_OWN_BOOKING
        else:
            action = Action.MANAGE_BOOKING_STATUS
        target = context.target(booking_owner_id=booking.user_id)
        ensure_allowed(actor, action, target)

        if is_terminal(booking.status):
            raise InvalidTransitionError(detail=f"Cannot reschedule a {booking.status} booking")
        _ensure_bookable(context, start, end)
        if await has_conflict(
            session, booking.resource_id, start, end, exclude_booking_id=booking.booking_id
        ):
            raise _conflict(booking.resource_id, start, end)

        previous["status"] = booking.status
        # A moved confirmation needs fresh approval unless the mover could confirm it.
        if (
            booking.status == BOOKING_STATUS_CONFIRMED
            and not authorize(actor, Action.MANAGE_BOOKING_STATUS, target).allowed
        ):
            booking.status = BOOKING_STATUS_PENDING
        booking.starts_at = start
        booking.ends_at = end
        booking.updated_at = _utcnow()
        await _persist(session, booking)
        return booking

    booking = await _run_operation(
        session,
        "reschedule_booking",
        _apply,
        timeout,
        on_overlap=lambda: _conflict(resource_ref["resource_id"], start, end),
    )
    metrics.record_booking("rescheduled")
    logger.info(
        "booking_rescheduled",
        extra={
            "extra": {
                "booking_id": booking.booking_id,
                "starts_at": start.isoformat(),
                "ends_at": end.isoformat(),
                "from_status": previous.get("status"),
                "to_status": booking.status,
                "actor_id": str(actor.user_id),
            }
        },
    )
    return booking


async def get_booking(
    session: AsyncSession, actor: RoleFacts, booking_id: str, *, timeout: float | None = None
) -> Booking:
    async def _get() -> Booking:
        booking = await _load_booking(session, booking_id)
        target = await resolve_booking_target(session, booking)
        decision = authorize(actor, Action.READ, target)
        metrics.record_authorization(decision.allowed)
        # Bookings the actor may not see are reported as missing rather than forbidden.
        if not decision.allowed:
            raise NotFoundError(detail="Booking not found")
        await session.commit()
        return booking

    return await _run_operation(session, "get_booking", _get, timeout)


def _visibility_clause(actor: RoleFacts) -> sa.ColumnElement[bool] | None:
    if actor.is_system_admin:
        return None
    clauses: list[sa.ColumnElement[bool]] = [Booking.user_id == actor.user_id]
    if actor.managed_org_ids:
        clauses.append(Location.org_id.in_(sorted(actor.managed_org_ids)))
    if actor.location_manager_of:
        clauses.append(Location.location_id.in_(sorted(actor.location_manager_of)))
    return sa.or_(*clauses)


def _resolve_page_size(requested: int | None) -> int:
    page_size = requested or settings.bookings_default_page_size
    if page_size > settings.bookings_max_page_size:
        raise InvalidArgumentError(
            detail=f"page_size must not exceed {settings.bookings_max_page_size}"
        )
    return page_size


async def list_bookings(
    session: AsyncSession,
    actor: RoleFacts,
    filters: schemas.BookingFilter | None = None,
    *,
    timeout: float | None = None,
) -> BookingPage:
    filters = filters or schemas.BookingFilter()
    page_size = _resolve_page_size(filters.page_size)
    starts_from = _normalize_datetime(filters.starts_from) if filters.starts_from else None
    ends_before = _normalize_datetime(filters.ends_before) if filters.ends_before else None
    if starts_from is not None and ends_before is not None and ends_before <= starts_from:
        raise InvalidArgumentError(detail="Time range must end after it starts")

    stmt = (
        sa.select(Booking)
        .join(Resource, Resource.resource_id == Booking.resource_id)
        .join(Location, Location.location_id == Resource.location_id)
    )
    visibility = _visibility_clause(actor)
    if visibility is not None:
        stmt = stmt.where(visibility)
    if filters.resource_id is not None:
        stmt = stmt.where(Booking.resource_id == filters.resource_id)
    if filters.location_id is not None:
        stmt = stmt.where(Location.location_id == filters.location_id)
    if filters.org_id is not None:
        stmt = stmt.where(Location.org_id == filters.org_id)
    if filters.user_id is not None:
        stmt = stmt.where(Booking.user_id == filters.user_id)
    if starts_from is not None:
        stmt = stmt.where(Booking.ends_at > starts_from)
    if ends_before is not None:
        stmt = stmt.where(Booking.starts_at < ends_before)
    if filters.status:
        stmt = stmt.where(Booking.status.in_([status.value for status in filters.status]))

    async def _list() -> BookingPage:
        total = await session.scalar(sa.select(sa.func.count()).select_from(stmt.subquery()))
        ordering = Booking.starts_at.desc() if filters.sort == "desc" else Booking.starts_at.asc()
        page_stmt = (
            stmt.order_by(ordering, Booking.booking_id.asc())
            .offset((filters.page - 1) * page_size)
            .limit(page_size)
        )
        items = list((await session.execute(page_stmt)).scalars().all())
        await session.commit()
        return BookingPage(items=items, total=int(total or 0), page=filters.page, page_size=page_size)

    return await _run_operation(session, "list_bookings", _list, timeout)

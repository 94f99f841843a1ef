import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from courtbook.dependencies import get_current_actor, get_db_session
from courtbook.domain.bookings import schemas as booking_schemas
from courtbook.domain.bookings import service as booking_service
from courtbook.domain.bookings.statuses import BookingStatus
from courtbook.domain.iam.permissions import RoleFacts

router = APIRouter()


def _to_response(booking) -> booking_schemas.BookingResponse:
    return booking_schemas.BookingResponse.model_validate(booking)


@router.post(
    "/v1/bookings",
    response_model=booking_schemas.BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_booking(
    payload: booking_schemas.BookingCreateRequest,
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> booking_schemas.BookingResponse:
    booking = await booking_service.create_booking(
        session,
        actor,
        payload.resource_id,
        payload.starts_at,
        payload.ends_at,
    )
    return _to_response(booking)


@router.get("/v1/bookings", response_model=booking_schemas.BookingListResponse)
async def list_bookings(
    resource_id: int | None = None,
    location_id: int | None = None,
    organization_id: int | None = None,
    user_id: uuid.UUID | None = None,
    starts_from: datetime | None = Query(default=None, alias="from"),
    ends_before: datetime | None = Query(default=None, alias="to"),
    status_filter: list[BookingStatus] | None = Query(default=None, alias="status"),
    sort: booking_schemas.SortOrder = "asc",
    page: int = Query(default=1, ge=1),
    page_size: int | None = Query(default=None, ge=1),
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> booking_schemas.BookingListResponse:
    filters = booking_schemas.BookingFilter(
        resource_id=resource_id,
        location_id=location_id,
        org_id=organization_id,
        user_id=user_id,
        starts_from=starts_from,
        ends_before=ends_before,
        status=status_filter,
        sort=sort,
        page=page,
        page_size=page_size,
    )
    result = await booking_service.list_bookings(session, actor, filters)
    return booking_schemas.BookingListResponse(
        items=[_to_response(booking) for booking in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
    )


@router.get("/v1/bookings/{booking_id}", response_model=booking_schemas.BookingResponse)
async def get_booking(
    booking_id: str,
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> booking_schemas.BookingResponse:
    booking = await booking_service.get_booking(session, actor, booking_id)
    return _to_response(booking)


@router.patch("/v1/bookings/{booking_id}", response_model=booking_schemas.BookingResponse)
async def reschedule_booking(
    booking_id: str,
    payload: booking_schemas.BookingRescheduleRequest,
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> booking_schemas.BookingResponse:
    booking = await booking_service.reschedule_booking(
        session, actor, booking_id, payload.starts_at, payload.ends_at
    )
    return _to_response(booking)


@router.post("/v1/bookings/{booking_id}/confirm", response_model=booking_schemas.BookingResponse)
async def confirm_booking(
    booking_id: str,
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> booking_schemas.BookingResponse:
    booking = await booking_service.confirm_booking(session, actor, booking_id)
    return _to_response(booking)


@router.post("/v1/bookings/{booking_id}/cancel", response_model=booking_schemas.BookingResponse)
async def cancel_booking(
    booking_id: str,
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> booking_schemas.BookingResponse:
    booking = await booking_service.cancel_booking(session, actor, booking_id)
    return _to_response(booking)

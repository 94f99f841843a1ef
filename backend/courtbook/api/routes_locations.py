import uuid
from datetime import datetime, time

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from courtbook.dependencies import get_current_actor, get_db_session
from courtbook.domain.iam.permissions import RoleFacts
from courtbook.domain.locations import service as location_service
from courtbook.domain.organizations import service as org_service

router = APIRouter()


class LocationCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    opening_hours_start: time
    opening_hours_end: time
    is_open: bool = True


class LocationUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    opening_hours_start: time | None = None
    opening_hours_end: time | None = None
    is_open: bool | None = None


class LocationResponse(BaseModel):
    location_id: int
    org_id: int
    name: str
    opening_hours_start: time
    opening_hours_end: time
    is_open: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LocationManagerRequest(BaseModel):
    user_id: uuid.UUID


class LocationManagerResponse(BaseModel):
    location_id: int
    org_id: int
    user_id: uuid.UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


@router.post(
    "/v1/organizations/{org_id}/locations",
    response_model=LocationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_location(
    org_id: int,
    payload: LocationCreateRequest,
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> LocationResponse:
    location = await location_service.create_location(
        session,
        actor,
        org_id,
        payload.name,
        payload.opening_hours_start,
        payload.opening_hours_end,
        is_open=payload.is_open,
    )
    return LocationResponse.model_validate(location)


@router.patch("/v1/locations/{location_id}", response_model=LocationResponse)
async def update_location(
    location_id: int,
    payload: LocationUpdateRequest,
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> LocationResponse:
    location = await location_service.update_location(
        session,
        actor,
        location_id,
        name=payload.name,
        opening_hours_start=payload.opening_hours_start,
        opening_hours_end=payload.opening_hours_end,
        is_open=payload.is_open,
    )
    return LocationResponse.model_validate(location)


@router.post(
    "/v1/locations/{location_id}/managers",
    response_model=LocationManagerResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_location_manager(
    location_id: int,
    payload: LocationManagerRequest,
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> LocationManagerResponse:
    manager = await org_service.add_location_manager(session, actor, location_id, payload.user_id)
    return LocationManagerResponse.model_validate(manager)

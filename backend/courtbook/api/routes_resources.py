from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from courtbook.dependencies import get_current_actor, get_db_session
from courtbook.domain.availability import schemas as availability_schemas
from courtbook.domain.availability import service as availability_service
from courtbook.domain.iam.permissions import RoleFacts
from courtbook.domain.resources import service as resource_service

router = APIRouter()


class ResourceCreateRequest(BaseModel):
    resource_type_id: int
    name: str = Field(min_length=1, max_length=255)


class ResourceUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    is_active: bool | None = None


class ResourceTypeCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class ResourceTypeResponse(BaseModel):
    resource_type_id: int
    org_id: int
    name: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ResourceResponse(BaseModel):
    resource_id: int
    location_id: int
    resource_type_id: int
    name: str
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


@router.get(
    "/v1/resources/{resource_id}/availability",
    response_model=availability_schemas.AvailabilityResponse,
)
async def get_resource_availability(
    resource_id: int,
    day: date = Query(alias="date"),
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> availability_schemas.AvailabilityResponse:
    del actor
    return await availability_service.get_availability(session, resource_id, day)


@router.post(
    "/v1/locations/{location_id}/resources",
    response_model=ResourceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_resource(
    location_id: int,
    payload: ResourceCreateRequest,
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> ResourceResponse:
    resource = await resource_service.create_resource(
        session, actor, location_id, payload.resource_type_id, payload.name
    )
    return ResourceResponse.model_validate(resource)


@router.patch("/v1/resources/{resource_id}", response_model=ResourceResponse)
async def update_resource(
    resource_id: int,
    payload: ResourceUpdateRequest,
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> ResourceResponse:
    resource = await resource_service.update_resource(
        session, actor, resource_id, name=payload.name, is_active=payload.is_active
    )
    return ResourceResponse.model_validate(resource)


@router.post(
    "/v1/organizations/{org_id}/resource-types",
    response_model=ResourceTypeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_resource_type(
    org_id: int,
    payload: ResourceTypeCreateRequest,
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> ResourceTypeResponse:
    resource_type = await resource_service.create_resource_type(session, actor, org_id, payload.name)
    return ResourceTypeResponse.model_validate(resource_type)

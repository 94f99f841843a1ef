import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from courtbook.dependencies import get_current_actor, get_db_session
from courtbook.domain.iam.permissions import RoleFacts
from courtbook.domain.organizations import service as org_service

router = APIRouter()


class OrganizationUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    is_active: bool | None = None
    owner_id: uuid.UUID | None = None


class OrganizationResponse(BaseModel):
    org_id: int
    owner_id: uuid.UUID
    name: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrganizationUserRequest(BaseModel):
    user_id: uuid.UUID


class OrganizationRoleResponse(BaseModel):
    org_id: int
    user_id: uuid.UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


@router.patch("/v1/organizations/{org_id}", response_model=OrganizationResponse)
async def update_organization(
    org_id: int,
    payload: OrganizationUpdateRequest,
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> OrganizationResponse:
    organization = await org_service.update_organization(
        session,
        actor,
        org_id,
        name=payload.name,
        is_active=payload.is_active,
        owner_id=payload.owner_id,
    )
    return OrganizationResponse.model_validate(organization)


@router.post(
    "/v1/organizations/{org_id}/members",
    response_model=OrganizationRoleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_member(
    org_id: int,
    payload: OrganizationUserRequest,
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> OrganizationRoleResponse:
    membership = await org_service.add_member(session, actor, org_id, payload.user_id)
    return OrganizationRoleResponse.model_validate(membership)


@router.post(
    "/v1/organizations/{org_id}/managers",
    response_model=OrganizationRoleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_organization_manager(
    org_id: int,
    payload: OrganizationUserRequest,
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> OrganizationRoleResponse:
    manager = await org_service.add_organization_manager(session, actor, org_id, payload.user_id)
    return OrganizationRoleResponse.model_validate(manager)

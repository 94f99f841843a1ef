from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from courtbook.domain.errors import InvalidArgumentError, NotFoundError
from courtbook.domain.iam.permissions import AccessTarget, Action, RoleFacts
from courtbook.domain.iam.service import ensure_allowed
from courtbook.domain.locations.db_models import Location
from courtbook.domain.organizations.db_models import Organization
from courtbook.domain.organizations.service import resolve_resource_context
from courtbook.domain.resources.db_models import Resource, ResourceType
from courtbook.infra.db import run_storage_operation

logger = logging.getLogger(__name__)


def _clean_name(name: str, label: str = "Resource") -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidArgumentError(detail=f"{label} name must not be empty")
    return cleaned


async def create_resource_type(
    session: AsyncSession, actor: RoleFacts, org_id: int, name: str
) -> ResourceType:
    cleaned = _clean_name(name, "Resource type")

    async def _apply() -> ResourceType:
        organization = await session.get(Organization, org_id)
        if organization is None:
            raise NotFoundError(detail="Organization not found")
        ensure_allowed(actor, Action.CREATE_RESOURCE_TYPE, AccessTarget(org_id=organization.org_id))

        resource_type = ResourceType(org_id=organization.org_id, name=cleaned)
        session.add(resource_type)
        await session.flush()
        await session.refresh(resource_type)
        await session.commit()
        return resource_type

    resource_type = await run_storage_operation(session, "create_resource_type", _apply)
    logger.info(
        "resource_type_created",
        extra={"extra": {"resource_type_id": resource_type.resource_type_id, "org_id": org_id}},
    )
    return resource_type


async def create_resource(
    session: AsyncSession,
    actor: RoleFacts,
    location_id: int,
    resource_type_id: int,
    name: str,
) -> Resource:
    async def _apply() -> Resource:
        location = await session.get(Location, location_id)
        if location is None:
            raise NotFoundError(detail="Location not found")
        ensure_allowed(
            actor,
            Action.CREATE_RESOURCE,
            AccessTarget(org_id=location.org_id, location_id=location.location_id),
        )

        resource_type = await session.get(ResourceType, resource_type_id)
        if resource_type is None:
            raise NotFoundError(detail="Resource type not found")
        if resource_type.org_id != location.org_id:
            raise InvalidArgumentError(detail="Resource type belongs to a different organization")

        resource = Resource(
            location_id=location.location_id,
            resource_type_id=resource_type.resource_type_id,
            name=_clean_name(name),
        )
        session.add(resource)
        await session.flush()
        await session.refresh(resource)
        await session.commit()
        return resource

    resource = await run_storage_operation(session, "create_resource", _apply)
    logger.info(
        "resource_created",
        extra={"extra": {"resource_id": resource.resource_id, "location_id": location_id}},
    )
    return resource


async def update_resource(
    session: AsyncSession,
    actor: RoleFacts,
    resource_id: int,
    *,
    name: str | None = None,
    is_active: bool | None = None,
) -> Resource:
    async def _apply() -> Resource:
        context = await resolve_resource_context(session, resource_id, lock=True)
        ensure_allowed(actor, Action.UPDATE_RESOURCE, context.target())

        resource = context.resource
        if name is not None:
            resource.name = _clean_name(name)
        if is_active is not None:
            resource.is_active = is_active
        await session.flush()
        await session.refresh(resource)
        await session.commit()
        return resource

    resource = await run_storage_operation(session, "update_resource", _apply)
    logger.info(
        "resource_updated",
        extra={"extra": {"resource_id": resource_id, "is_active": resource.is_active}},
    )
    return resource

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from courtbook.domain.bookings.db_models import Booking
from courtbook.domain.errors import ConflictError, InvalidArgumentError, NotFoundError
from courtbook.domain.iam.permissions import AccessTarget, Action, RoleFacts
from courtbook.domain.iam.service import ensure_allowed
from courtbook.domain.locations.db_models import Location, LocationManager
from courtbook.domain.organizations.db_models import (
    Organization,
    OrganizationManager,
    OrganizationMembership,
)
from courtbook.domain.resources.db_models import Resource
from courtbook.domain.users.db_models import User
from courtbook.infra.db import run_storage_operation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceContext:
    resource: Resource
    location: Location
    organization: Organization

    def target(self, booking_owner_id: uuid.UUID | None = None) -> AccessTarget:
        return AccessTarget(
            org_id=self.organization.org_id,
            location_id=self.location.location_id,
            resource_id=self.resource.resource_id,
            booking_owner_id=booking_owner_id,
        )


async def resolve_resource_context(
    session: AsyncSession, resource_id: int, *, lock: bool = False
) -> ResourceContext:
    stmt = (
        sa.select(Resource, Location, Organization)
        .join(Location, Location.location_id == Resource.location_id)
        .join(Organization, Organization.org_id == Location.org_id)
        .where(Resource.resource_id == resource_id)
    )
    if lock:
        stmt = stmt.with_for_update(of=Resource)
    row = (await session.execute(stmt)).one_or_none()
    if row is None:
        raise NotFoundError(detail="Resource not found")
    resource, location, organization = row
    return ResourceContext(resource=resource, location=location, organization=organization)


async def resolve_booking_target(session: AsyncSession, booking: Booking) -> AccessTarget:
    context = await resolve_resource_context(session, booking.resource_id)
    return context.target(booking_owner_id=booking.user_id)


async def _get_organization(session: AsyncSession, org_id: int) -> Organization:
    organization = await session.get(Organization, org_id)
    if organization is None:
        raise NotFoundError(detail="Organization not found")
    return organization


async def _get_location(session: AsyncSession, location_id: int) -> Location:
    location = await session.get(Location, location_id)
    if location is None:
        raise NotFoundError(detail="Location not found")
    return location


async def _ensure_user(session: AsyncSession, user_id: uuid.UUID) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError(detail="User not found")
    return user


async def _is_member(session: AsyncSession, org_id: int, user_id: uuid.UUID) -> bool:
    membership = await session.scalar(
        sa.select(OrganizationMembership.membership_id).where(
            OrganizationMembership.org_id == org_id,
            OrganizationMembership.user_id == user_id,
        )
    )
    return membership is not None


async def _is_org_manager(session: AsyncSession, org_id: int, user_id: uuid.UUID) -> bool:
    manager = await session.scalar(
        sa.select(OrganizationManager.id).where(
            OrganizationManager.org_id == org_id,
            OrganizationManager.user_id == user_id,
        )
    )
    return manager is not None


async def _is_location_manager_in(session: AsyncSession, org_id: int, user_id: uuid.UUID) -> bool:
    manager = await session.scalar(
        sa.select(LocationManager.id).where(
            LocationManager.org_id == org_id,
            LocationManager.user_id == user_id,
        )
    )
    return manager is not None


def _conflict_on_integrity_error(detail: str):
    def _map(exc: IntegrityError) -> ConflictError:
        return ConflictError(detail=detail)

    return _map


async def _persist(session: AsyncSession, instance) -> None:
    session.add(instance)
    await session.flush()
    await session.refresh(instance)
    await session.commit()


async def add_member(
    session: AsyncSession, actor: RoleFacts, org_id: int, user_id: uuid.UUID
) -> OrganizationMembership:
    detail = "User is already a member of this organization"

    async def _apply() -> OrganizationMembership:
        organization = await _get_organization(session, org_id)
        ensure_allowed(actor, Action.MANAGE_MEMBERS, AccessTarget(org_id=organization.org_id))
        await _ensure_user(session, user_id)
        if await _is_member(session, org_id, user_id):
            raise ConflictError(detail=detail)

        membership = OrganizationMembership(org_id=org_id, user_id=user_id)
        await _persist(session, membership)
        return membership

    membership = await run_storage_operation(
        session, "add_member", _apply, on_integrity_error=_conflict_on_integrity_error(detail)
    )
    logger.info("organization_member_added", extra={"extra": {"org_id": org_id, "user_id": str(user_id)}})
    return membership


async def add_organization_manager(
    session: AsyncSession, actor: RoleFacts, org_id: int, user_id: uuid.UUID
) -> OrganizationManager:
    detail = "User is already a manager of this organization"

    async def _apply() -> OrganizationManager:
        organization = await _get_organization(session, org_id)
        ensure_allowed(actor, Action.ASSIGN_ORGANIZATION_MANAGER, AccessTarget(org_id=organization.org_id))
        await _ensure_user(session, user_id)

        if organization.owner_id == user_id:
            raise InvalidArgumentError(detail="The organization owner cannot be added as a manager")
        if not await _is_member(session, org_id, user_id):
            raise InvalidArgumentError(detail="User must be a member of the organization first")
        if await _is_org_manager(session, org_id, user_id):
            raise ConflictError(detail=detail)
        if await _is_location_manager_in(session, org_id, user_id):
            raise ConflictError(detail="User already manages a location in this organization")

        manager = OrganizationManager(org_id=org_id, user_id=user_id)
        await _persist(session, manager)
        return manager

    manager = await run_storage_operation(
        session, "add_organization_manager", _apply, on_integrity_error=_conflict_on_integrity_error(detail)
    )
    logger.info("organization_manager_added", extra={"extra": {"org_id": org_id, "user_id": str(user_id)}})
    return manager


async def add_location_manager(
    session: AsyncSession, actor: RoleFacts, location_id: int, user_id: uuid.UUID
) -> LocationManager:
    detail = "User is already a manager of this location"

    async def _apply() -> LocationManager:
        location = await _get_location(session, location_id)
        ensure_allowed(
            actor,
            Action.ASSIGN_LOCATION_MANAGER,
            AccessTarget(org_id=location.org_id, location_id=location.location_id),
        )
        await _ensure_user(session, user_id)
        organization = await _get_organization(session, location.org_id)

        if not await _is_member(session, location.org_id, user_id):
            raise InvalidArgumentError(detail="User must be a member of the organization first")
        if organization.owner_id == user_id or await _is_org_manager(session, location.org_id, user_id):
            raise ConflictError(detail="User already manages the whole organization")
        existing = await session.scalar(
            sa.select(LocationManager.id).where(
                LocationManager.location_id == location_id,
                LocationManager.user_id == user_id,
            )
        )
        if existing is not None:
            raise ConflictError(detail=detail)

        manager = LocationManager(location_id=location_id, org_id=location.org_id, user_id=user_id)
        await _persist(session, manager)
        return manager

    manager = await run_storage_operation(
        session, "add_location_manager", _apply, on_integrity_error=_conflict_on_integrity_error(detail)
    )
    logger.info(
        "location_manager_added",
        extra={"extra": {"org_id": manager.org_id, "location_id": location_id, "user_id": str(user_id)}},
    )
    return manager


async def update_organization(
    session: AsyncSession,
    actor: RoleFacts,
    org_id: int,
    *,
    name: str | None = None,
    is_active: bool | None = None,
    owner_id: uuid.UUID | None = None,
) -> Organization:
    """Rename, (de)activate or hand over an organization.

    Ownership may only pass to a member who holds no manager role in the
    organization, so owner and manager roles stay mutually exclusive.
    """

    async def _apply() -> Organization:
        organization = await _get_organization(session, org_id)
        ensure_allowed(actor, Action.UPDATE_ORGANIZATION, AccessTarget(org_id=organization.org_id))

        if name is not None:
            cleaned = name.strip()
            if not cleaned:
                raise InvalidArgumentError(detail="Organization name must not be empty")
            organization.name = cleaned
        if is_active is not None:
            organization.is_active = is_active
        if owner_id is not None and owner_id != organization.owner_id:
            await _ensure_user(session, owner_id)
            if not await _is_member(session, org_id, owner_id):
                raise InvalidArgumentError(detail="New owner must be a member of the organization first")
            if await _is_org_manager(session, org_id, owner_id):
                raise ConflictError(detail="New owner is an organization manager; remove that role first")
            if await _is_location_manager_in(session, org_id, owner_id):
                raise ConflictError(
                    detail="New owner manages a location in this organization; remove that role first"
                )
            organization.owner_id = owner_id

        await session.flush()
        await session.refresh(organization)
        await session.commit()
        return organization

    organization = await run_storage_operation(session, "update_organization", _apply)
    logger.info(
        "organization_updated",
        extra={
            "extra": {
                "org_id": org_id,
                "is_active": organization.is_active,
                "owner_id": str(organization.owner_id),
                "actor_id": str(actor.user_id),
            }
        },
    )
    return organization


async def resolve_access_target(
    session: AsyncSession,
    *,
    organization_id: int | None = None,
    location_id: int | None = None,
    resource_id: int | None = None,
    booking_id: str | None = None,
) -> AccessTarget:
    """Build the most specific target the caller named."""

    if booking_id is not None:
        booking = await session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError(detail="Booking not found")
        return await resolve_booking_target(session, booking)
    if resource_id is not None:
        context = await resolve_resource_context(session, resource_id)
        return context.target()
    if location_id is not None:
        location = await _get_location(session, location_id)
        return AccessTarget(org_id=location.org_id, location_id=location.location_id)
    if organization_id is not None:
        organization = await _get_organization(session, organization_id)
        return AccessTarget(org_id=organization.org_id)
    raise InvalidArgumentError(detail="An organization, location, resource or booking is required")

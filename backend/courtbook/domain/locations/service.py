from __future__ import annotations

import logging
from datetime import time

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from courtbook.domain.errors import InvalidArgumentError, NotFoundError
from courtbook.domain.iam.permissions import AccessTarget, Action, RoleFacts
from courtbook.domain.iam.service import ensure_allowed
from courtbook.domain.locations.db_models import Location
from courtbook.domain.organizations.db_models import Organization
from courtbook.infra.db import run_storage_operation

logger = logging.getLogger(__name__)


def _validate_hours(opens_at: time, closes_at: time) -> None:
    # 00:00 as the closing time stands for midnight at the end of the day.
    if closes_at != time.min and closes_at <= opens_at:
        raise InvalidArgumentError(detail="Opening hours must end after they start")


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidArgumentError(detail="Location name must not be empty")
    return cleaned


async def create_location(
    session: AsyncSession,
    actor: RoleFacts,
    org_id: int,
    name: str,
    opening_hours_start: time,
    opening_hours_end: time,
    *,
    is_open: bool = True,
) -> Location:
    cleaned = _clean_name(name)
    _validate_hours(opening_hours_start, opening_hours_end)

    async def _apply() -> Location:
        organization = await session.get(Organization, org_id)
        if organization is None:
            raise NotFoundError(detail="Organization not found")
        ensure_allowed(actor, Action.CREATE_LOCATION, AccessTarget(org_id=organization.org_id))

        location = Location(
            org_id=organization.org_id,
            name=cleaned,
            opening_hours_start=opening_hours_start,
            opening_hours_end=opening_hours_end,
            is_open=is_open,
        )
        session.add(location)
        await session.flush()
        await session.refresh(location)
        await session.commit()
        return location

    location = await run_storage_operation(session, "create_location", _apply)
    logger.info(
        "location_created",
        extra={"extra": {"location_id": location.location_id, "org_id": org_id}},
    )
    return location


async def update_location(
    session: AsyncSession,
    actor: RoleFacts,
    location_id: int,
    *,
    name: str | None = None,
    opening_hours_start: time | None = None,
    opening_hours_end: time | None = None,
    is_open: bool | None = None,
) -> Location:
    """Partial update; closing a location stops new bookings and reschedules into it."""

    async def _apply() -> Location:
        stmt = sa.select(Location).where(Location.location_id == location_id).with_for_update()
        location = (await session.execute(stmt)).scalar_one_or_none()
        if location is None:
            raise NotFoundError(detail="Location not found")
        ensure_allowed(
            actor,
            Action.UPDATE_LOCATION,
            AccessTarget(org_id=location.org_id, location_id=location.location_id),
        )

        opens_at = opening_hours_start if opening_hours_start is not None else location.opening_hours_start
        closes_at = opening_hours_end if opening_hours_end is not None else location.opening_hours_end
        _validate_hours(opens_at, closes_at)
        if name is not None:
            location.name = _clean_name(name)
        location.opening_hours_start = opens_at
        location.opening_hours_end = closes_at
        if is_open is not None:
            location.is_open = is_open
        await session.flush()
        await session.refresh(location)
        await session.commit()
        return location

    location = await run_storage_operation(session, "update_location", _apply)
    logger.info(
        "location_updated",
        extra={"extra": {"location_id": location_id, "is_open": location.is_open}},
    )
    return location

from __future__ import annotations

import logging
import uuid

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from courtbook.domain.errors import ForbiddenError
from courtbook.domain.iam.permissions import AccessTarget, Action, Decision, RoleFacts, authorize
from courtbook.domain.locations.db_models import LocationManager
from courtbook.domain.organizations.db_models import (
    Organization,
    OrganizationManager,
    OrganizationMembership,
)
from courtbook.domain.users.db_models import User
from courtbook.infra.metrics import metrics

logger = logging.getLogger(__name__)


async def load_role_facts(session: AsyncSession, user_id: uuid.UUID) -> RoleFacts:
    """Read the actor's relationships from the store.

    Called once per request; facts are never cached across requests so that a
    revoked manager role stops granting rights on the very next call.
    """

    user = await session.get(User, user_id)
    if user is None or not user.is_active:
        return RoleFacts(user_id=user_id)

    owned = await session.scalars(sa.select(Organization.org_id).where(Organization.owner_id == user_id))
    managed = await session.scalars(
        sa.select(OrganizationManager.org_id).where(OrganizationManager.user_id == user_id)
    )
    location_managed = await session.scalars(
        sa.select(LocationManager.location_id).where(LocationManager.user_id == user_id)
    )
    memberships = await session.scalars(
        sa.select(OrganizationMembership.org_id).where(OrganizationMembership.user_id == user_id)
    )
    return RoleFacts(
        user_id=user_id,
        is_system_admin=bool(user.is_system_admin),
        owned_org_ids=frozenset(owned.all()),
        org_manager_of=frozenset(managed.all()),
        location_manager_of=frozenset(location_managed.all()),
        member_of=frozenset(memberships.all()),
    )


def ensure_allowed(actor: RoleFacts, action: Action, target: AccessTarget) -> Decision:
    decision = authorize(actor, action, target)
    metrics.record_authorization(decision.allowed)
    if not decision.allowed:
        logger.info(
            "authorization_denied",
            extra={
                "extra": {
                    "user_id": str(actor.user_id),
                    "action": action.value,
                    "org_id": target.org_id,
                    "location_id": target.location_id,
                    "resource_id": target.resource_id,
                    "reason": decision.reason,
                }
            },
        )
        raise ForbiddenError()
    return decision

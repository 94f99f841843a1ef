"""Hierarchical access resolution.

``authorize`` is a flat decision table over precomputed role facts. The rules
are evaluated top-down and the first rule that both applies to the actor and
grants the action wins:

1. system admin
2. owner of the target organization
3. manager of the target organization
4. manager of the target location
5. any authenticated user (own bookings, new bookings, catalogue reads)

Anything not granted by one of these rules is denied.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum


class Action(str, Enum):
    READ = "read"
    CREATE_RESOURCE = "create-resource"
    UPDATE_RESOURCE = "update-resource"
    MANAGE_BOOKING_STATUS = "manage-booking-status"
    CANCEL_OWN_BOOKING = "cancel-own-booking"
    RESCHEDULE_OWN_BOOKING = "reschedule-own-booking"
    CREATE_BOOKING = "create-booking"
    CREATE_LOCATION = "create-location"
    UPDATE_LOCATION = "update-location"
    CREATE_RESOURCE_TYPE = "create-resource-type"
    MANAGE_MEMBERS = "manage-members"
    ASSIGN_LOCATION_MANAGER = "assign-location-manager"
    ASSIGN_ORGANIZATION_MANAGER = "assign-organization-manager"
    UPDATE_ORGANIZATION = "update-organization"


# Actions that change who controls an organization; only its owner (or a system admin) may run them.
ORGANIZATION_IDENTITY_ACTIONS = frozenset(
    {
        Action.UPDATE_ORGANIZATION,
        Action.ASSIGN_ORGANIZATION_MANAGER,
    }
)

LOCATION_SCOPED_ACTIONS = frozenset(
    {
        Action.READ,
        Action.CREATE_RESOURCE,
        Action.UPDATE_RESOURCE,
        Action.MANAGE_BOOKING_STATUS,
        Action.CANCEL_OWN_BOOKING,
        Action.RESCHEDULE_OWN_BOOKING,
        Action.CREATE_BOOKING,
        Action.CREATE_LOCATION,
        Action.UPDATE_LOCATION,
        Action.CREATE_RESOURCE_TYPE,
        Action.MANAGE_MEMBERS,
        Action.ASSIGN_LOCATION_MANAGER,
    }
)

LOCATION_MANAGER_ACTIONS = frozenset(
    {
        Action.READ,
        Action.UPDATE_RESOURCE,
        Action.MANAGE_BOOKING_STATUS,
    }
)

OWN_BOOKING_ACTIONS = frozenset(
    {
        Action.READ,
        Action.CANCEL_OWN_BOOKING,
        Action.RESCHEDULE_OWN_BOOKING,
    }
)


@dataclass(frozen=True)
class RoleFacts:
    user_id: uuid.UUID
    is_system_admin: bool = False
    owned_org_ids: frozenset[int] = field(default_factory=frozenset)
    org_manager_of: frozenset[int] = field(default_factory=frozenset)
    location_manager_of: frozenset[int] = field(default_factory=frozenset)
    member_of: frozenset[int] = field(default_factory=frozenset)

    def manages_organization(self, org_id: int) -> bool:
        return org_id in self.owned_org_ids or org_id in self.org_manager_of

    @property
    def managed_org_ids(self) -> frozenset[int]:
        return self.owned_org_ids | self.org_manager_of


@dataclass(frozen=True)
class AccessTarget:
    org_id: int
    location_id: int | None = None
    resource_id: int | None = None
    booking_owner_id: uuid.UUID | None = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str

    def __bool__(self) -> bool:
        return self.allowed


def _allow(reason: str) -> Decision:
    return Decision(allowed=True, reason=reason)


def _deny(reason: str) -> Decision:
    return Decision(allowed=False, reason=reason)


def authorize(actor: RoleFacts, action: Action | str, target: AccessTarget) -> Decision:
    action = Action(action)

    if actor.is_system_admin:
        return _allow("system_admin")

    if target.org_id in actor.owned_org_ids:
        return _allow("organization_owner")

    if target.org_id in actor.org_manager_of and action in LOCATION_SCOPED_ACTIONS:
        return _allow("organization_manager")

    if (
        target.location_id is not None
        and target.location_id in actor.location_manager_of
        and action in LOCATION_MANAGER_ACTIONS
    ):
        return _allow("location_manager")

    if action is Action.CREATE_BOOKING:
        return _allow("authenticated_user")

    if target.booking_owner_id is not None:
        if target.booking_owner_id == actor.user_id and action in OWN_BOOKING_ACTIONS:
            return _allow("booking_owner")
    elif action is Action.READ:
        return _allow("catalogue_read")

    if action in ORGANIZATION_IDENTITY_ACTIONS:
        return _deny("organization_identity_requires_owner")
    return _deny("no_matching_role")

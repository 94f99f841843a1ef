from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from courtbook.dependencies import get_current_actor, get_db_session
from courtbook.domain.iam.permissions import AccessTarget, Action, RoleFacts, authorize
from courtbook.domain.organizations.service import resolve_access_target
from courtbook.infra.db import run_storage_operation
from courtbook.infra.metrics import metrics

router = APIRouter()


class AccessCheckResponse(BaseModel):
    action: Action
    allowed: bool
    reason: str


@router.get("/v1/access/check", response_model=AccessCheckResponse)
async def check_access(
    action: Action,
    organization_id: int | None = None,
    location_id: int | None = None,
    resource_id: int | None = None,
    booking_id: str | None = None,
    session: AsyncSession = Depends(get_db_session),
    actor: RoleFacts = Depends(get_current_actor),
) -> AccessCheckResponse:
    async def _resolve() -> AccessTarget:
        target = await resolve_access_target(
            session,
            organization_id=organization_id,
            location_id=location_id,
            resource_id=resource_id,
            booking_id=booking_id,
        )
        await session.commit()
        return target

    target = await run_storage_operation(session, "access_check", _resolve)
    decision = authorize(actor, action, target)
    metrics.record_authorization(decision.allowed)
    return AccessCheckResponse(action=action, allowed=decision.allowed, reason=decision.reason)

import logging
import uuid

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from courtbook.domain.errors import UnavailableError
from courtbook.domain.iam.permissions import RoleFacts
from courtbook.domain.iam.service import load_role_facts
from courtbook.domain.users.db_models import User
from courtbook.infra.db import get_db_session
from courtbook.infra.logging import update_log_context
from courtbook.settings import settings

USER_ID_HEADER = "X-User-ID"

logger = logging.getLogger(__name__)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _resolve_user_id(request: Request) -> uuid.UUID:
    raw_user_id = getattr(request.state, "current_user_id", None)
    app_settings = getattr(request.app.state, "app_settings", settings)
    if raw_user_id is None and app_settings.identity_header_enabled:
        raw_user_id = request.headers.get(USER_ID_HEADER)
    if raw_user_id is None:
        raise _unauthorized("Authentication required")
    if isinstance(raw_user_id, uuid.UUID):
        return raw_user_id
    try:
        return uuid.UUID(str(raw_user_id))
    except ValueError as exc:
        raise _unauthorized("Invalid user identity") from exc


async def get_current_actor(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> RoleFacts:
    user_id = _resolve_user_id(request)
    try:
        user = await session.get(User, user_id)
        if user is None or not user.is_active:
            raise _unauthorized("Unknown or inactive user")
        facts = await load_role_facts(session, user_id)
    except (PoolTimeoutError, OperationalError) as exc:
        logger.warning("storage_unavailable", extra={"extra": {"operation": "load_role_facts"}})
        raise UnavailableError(detail="Identity lookup is temporarily unavailable, retry later") from exc
    request.state.current_user_id = user_id
    update_log_context(user_id=str(user_id))
    return facts

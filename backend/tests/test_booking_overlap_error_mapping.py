import asyncio
from unittest.mock import AsyncMock

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from courtbook.domain.bookings.service import _run_operation, is_booking_overlap_integrity_error
from courtbook.domain.errors import ConflictError, NotFoundError, UnavailableError
from courtbook.domain.resources import service as resource_service
from courtbook.domain.resources.db_models import Resource
from courtbook.infra.db import run_storage_operation
from tests.conftest import facts_for


class _Diag:
    def __init__(self, constraint_name: str | None):
        self.constraint_name = constraint_name


class _PgError:
    def __init__(
        self,
        constraint_name: str | None,
        sqlstate: str | None = None,
        message: str = "",
    ):
        self.diag = _Diag(constraint_name)
        self.sqlstate = sqlstate
        self.message = message

    def __str__(self) -> str:
        return self.message


@pytest.mark.parametrize(
    ("constraint", "sqlstate", "expected"),
    [
        ("bookings_resource_time_no_overlap", "23P01", True),
        (None, "23P01", True),
        ("uq_org_memberships_org_user", "23505", False),
    ],
)
def test_is_booking_overlap_integrity_error_uses_pg_diagnostics(
    constraint: str | None,
    sqlstate: str | None,
    expected: bool,
):
    exc = IntegrityError("insert", {}, _PgError(constraint, sqlstate))
    assert is_booking_overlap_integrity_error(exc) is expected


def test_is_booking_overlap_integrity_error_uses_message_fallback():
    exc = IntegrityError(
        "insert", {}, Exception("conflicting key value violates exclusion constraint bookings_resource_time_no_overlap")
    )
    assert is_booking_overlap_integrity_error(exc) is True


def test_unrelated_integrity_error_is_not_an_overlap():
    exc = IntegrityError("insert", {}, Exception("FOREIGN KEY constraint failed"))
    assert is_booking_overlap_integrity_error(exc) is False


def _session() -> AsyncMock:
    return AsyncMock(spec=AsyncSession)


@pytest.mark.anyio
async def test_overlap_integrity_error_becomes_conflict():
    session = _session()

    async def work():
        raise IntegrityError("insert", {}, _PgError("bookings_resource_time_no_overlap", "23P01"))

    with pytest.raises(ConflictError):
        await _run_operation(
            session, "create_booking", work, 1, on_overlap=lambda: ConflictError(detail="overlap")
        )
    session.rollback.assert_awaited_once()


@pytest.mark.anyio
async def test_unrelated_integrity_error_propagates():
    session = _session()

    async def work():
        raise IntegrityError("insert", {}, _PgError("uq_users_email", "23505"))

    with pytest.raises(IntegrityError):
        await _run_operation(
            session, "create_booking", work, 1, on_overlap=lambda: ConflictError(detail="overlap")
        )
    session.rollback.assert_awaited_once()


@pytest.mark.anyio
async def test_timeout_becomes_retryable_unavailable():
    session = _session()

    async def work():
        await asyncio.sleep(1)

    with pytest.raises(UnavailableError) as exc_info:
        await _run_operation(session, "create_booking", work, 0.01)

    assert exc_info.value.retryable is True
    assert exc_info.value.status_code == 503
    session.rollback.assert_awaited_once()


@pytest.mark.anyio
async def test_storage_failure_becomes_unavailable():
    session = _session()

    async def work():
        raise OperationalError("select", {}, Exception("database is locked"))

    with pytest.raises(UnavailableError):
        await _run_operation(session, "list_bookings", work, 1)


@pytest.mark.anyio
async def test_lost_connection_becomes_unavailable():
    session = _session()

    async def work():
        raise DBAPIError("select", {}, Exception("server closed the connection"), connection_invalidated=True)

    with pytest.raises(UnavailableError):
        await _run_operation(session, "get_booking", work, 1)


@pytest.mark.anyio
async def test_domain_errors_pass_through_after_rollback():
    session = _session()

    async def work():
        raise NotFoundError(detail="Booking not found")

    with pytest.raises(NotFoundError):
        await _run_operation(session, "get_booking", work, 1)
    session.rollback.assert_awaited_once()


@pytest.mark.anyio
async def test_hierarchy_writes_surface_storage_failures_as_unavailable(
    async_session_maker, hierarchy, monkeypatch
):
    owner = await facts_for(async_session_maker, hierarchy.owner_id)

    async def locked_flush(*args, **kwargs):
        raise OperationalError("UPDATE resources", {}, Exception("database is locked"))

    async with async_session_maker() as session:
        monkeypatch.setattr(session, "flush", locked_flush)
        with pytest.raises(UnavailableError) as exc_info:
            await resource_service.update_resource(session, owner, hierarchy.resource_a_id, name="Renamed")

    assert exc_info.value.retryable is True

    async with async_session_maker() as session:
        name = await session.scalar(
            sa.select(Resource.name).where(Resource.resource_id == hierarchy.resource_a_id)
        )
        await session.rollback()
    assert name == "Court 1"


@pytest.mark.anyio
async def test_storage_operation_timeout_applies_to_every_service():
    session = _session()

    async def work():
        await asyncio.sleep(1)

    with pytest.raises(UnavailableError):
        await run_storage_operation(session, "add_member", work, 0.01)
    session.rollback.assert_awaited_once()


@pytest.mark.anyio
async def test_storage_operation_translates_integrity_errors_on_request():
    session = _session()

    async def work():
        raise IntegrityError("insert", {}, Exception("UNIQUE constraint failed"))

    with pytest.raises(ConflictError):
        await run_storage_operation(
            session, "add_member", work, 1, on_integrity_error=lambda exc: ConflictError(detail="taken")
        )

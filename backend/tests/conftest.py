import asyncio
import sys
import uuid
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def ensure_event_loop() -> asyncio.AbstractEventLoop:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

    if loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

    return loop


ensure_event_loop()

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.pool import NullPool

from courtbook.domain.iam.permissions import RoleFacts
from courtbook.domain.iam.service import load_role_facts
from courtbook.domain.locations.db_models import Location, LocationManager
from courtbook.domain.organizations.db_models import (
    Organization,
    OrganizationManager,
    OrganizationMembership,
)
from courtbook.domain.resources.db_models import Resource, ResourceType
from courtbook.domain.users.db_models import User
from courtbook.infra.db import Base, build_engine, get_db_session
from courtbook.main import app
from courtbook.settings import settings

TEST_DB_PATH = Path("test.db")

# Far enough ahead that "start in the past" checks never trip.
BOOKING_DAY = (datetime.now(timezone.utc) + timedelta(days=30)).date()


def at(hour: int, minute: int = 0, *, day=None) -> datetime:
    return datetime.combine(day or BOOKING_DAY, time(hour, minute), tzinfo=timezone.utc)


@dataclass(frozen=True)
class Hierarchy:
    admin_id: uuid.UUID
    owner_id: uuid.UUID
    org_manager_id: uuid.UUID
    location_a_manager_id: uuid.UUID
    location_b_manager_id: uuid.UUID
    member_id: uuid.UUID
    other_member_id: uuid.UUID
    outsider_id: uuid.UUID
    org_id: int
    other_org_id: int
    location_a_id: int
    location_b_id: int
    resource_type_id: int
    other_org_resource_type_id: int
    resource_a_id: int
    resource_a2_id: int
    resource_b_id: int


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session")
def test_engine():
    if TEST_DB_PATH.exists():
        TEST_DB_PATH.unlink()
    # NullPool gives every session its own connection so concurrent writers really contend.
    engine = build_engine(
        f"sqlite+aiosqlite:///./{TEST_DB_PATH}",
        poolclass=NullPool,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture(scope="session")
def async_session_maker(test_engine):
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture(autouse=True)
def restore_settings():
    original = {
        "app_env": settings.app_env,
        "testing": settings.testing,
        "identity_header_enabled": settings.identity_header_enabled,
        "allow_past_bookings": settings.allow_past_bookings,
        "enforce_opening_hours": settings.enforce_opening_hours,
        "booking_operation_timeout_seconds": settings.booking_operation_timeout_seconds,
        "bookings_default_page_size": settings.bookings_default_page_size,
        "bookings_max_page_size": settings.bookings_max_page_size,
    }
    settings.app_env = "dev"
    settings.testing = True
    settings.identity_header_enabled = True
    yield
    for key, value in original.items():
        setattr(settings, key, value)


@pytest.fixture(autouse=True)
def clean_database(test_engine):
    async def truncate_tables() -> None:
        async with test_engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                await conn.execute(table.delete())

    asyncio.run(truncate_tables())
    yield


async def seed_hierarchy(session_maker) -> Hierarchy:
    users = {
        name: User(user_id=uuid.uuid4(), email=f"{name}@example.com", display_name=name)
        for name in (
            "admin",
            "owner",
            "org_manager",
            "location_a_manager",
            "location_b_manager",
            "member",
            "other_member",
            "outsider",
        )
    }
    users["admin"].is_system_admin = True

    async with session_maker() as session:
        session.add_all(users.values())
        await session.flush()

        organization = Organization(owner_id=users["owner"].user_id, name="Riverside Sports")
        other_organization = Organization(owner_id=users["outsider"].user_id, name="Hilltop Club")
        session.add_all([organization, other_organization])
        await session.flush()

        for name in ("org_manager", "location_a_manager", "location_b_manager", "member", "other_member"):
            session.add(OrganizationMembership(org_id=organization.org_id, user_id=users[name].user_id))
        await session.flush()

        location_a = Location(
            org_id=organization.org_id,
            name="North Hall",
            opening_hours_start=time(8, 0),
            opening_hours_end=time(22, 0),
        )
        location_b = Location(
            org_id=organization.org_id,
            name="South Hall",
            opening_hours_start=time(8, 0),
            opening_hours_end=time(22, 0),
        )
        resource_type = ResourceType(org_id=organization.org_id, name="Tennis court")
        other_type = ResourceType(org_id=other_organization.org_id, name="Squash court")
        session.add_all([location_a, location_b, resource_type, other_type])
        await session.flush()

        session.add(OrganizationManager(org_id=organization.org_id, user_id=users["org_manager"].user_id))
        session.add(
            LocationManager(
                location_id=location_a.location_id,
                org_id=organization.org_id,
                user_id=users["location_a_manager"].user_id,
            )
        )
        session.add(
            LocationManager(
                location_id=location_b.location_id,
                org_id=organization.org_id,
                user_id=users["location_b_manager"].user_id,
            )
        )

        resource_a = Resource(
            location_id=location_a.location_id,
            resource_type_id=resource_type.resource_type_id,
            name="Court 1",
        )
        resource_a2 = Resource(
            location_id=location_a.location_id,
            resource_type_id=resource_type.resource_type_id,
            name="Court 2",
        )
        resource_b = Resource(
            location_id=location_b.location_id,
            resource_type_id=resource_type.resource_type_id,
            name="Court 3",
        )
        session.add_all([resource_a, resource_a2, resource_b])
        await session.flush()

        hierarchy = Hierarchy(
            admin_id=users["admin"].user_id,
            owner_id=users["owner"].user_id,
            org_manager_id=users["org_manager"].user_id,
            location_a_manager_id=users["location_a_manager"].user_id,
            location_b_manager_id=users["location_b_manager"].user_id,
            member_id=users["member"].user_id,
            other_member_id=users["other_member"].user_id,
            outsider_id=users["outsider"].user_id,
            org_id=organization.org_id,
            other_org_id=other_organization.org_id,
            location_a_id=location_a.location_id,
            location_b_id=location_b.location_id,
            resource_type_id=resource_type.resource_type_id,
            other_org_resource_type_id=other_type.resource_type_id,
            resource_a_id=resource_a.resource_id,
            resource_a2_id=resource_a2.resource_id,
            resource_b_id=resource_b.resource_id,
        )
        await session.commit()
    return hierarchy


@pytest.fixture()
def hierarchy(async_session_maker) -> Hierarchy:
    return asyncio.run(seed_hierarchy(async_session_maker))


async def facts_for(session_maker, user_id: uuid.UUID) -> RoleFacts:
    async with session_maker() as session:
        facts = await load_role_facts(session, user_id)
        await session.rollback()
    return facts


@pytest.fixture()
def client(async_session_maker):
    ensure_event_loop()

    async def override_db_session():
        async with async_session_maker() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    original_factory = getattr(app.state, "db_session_factory", None)
    app.state.db_session_factory = async_session_maker
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.db_session_factory = original_factory

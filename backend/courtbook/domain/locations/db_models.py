from __future__ import annotations

import uuid
from datetime import datetime, time
from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from courtbook.infra.db import Base, UUID_TYPE

if TYPE_CHECKING:  # pragma: no cover
    from courtbook.domain.organizations.db_models import Organization


class Location(Base):
    __tablename__ = "locations"
    __table_args__ = (
        # Target of the (location_id, org_id) foreign key on location_managers.
        sa.UniqueConstraint("location_id", "org_id", name="uq_locations_id_org"),
        sa.Index("ix_locations_org_id", "org_id"),
    )

    location_id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[int] = mapped_column(
        sa.ForeignKey("organizations.org_id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    opening_hours_start: Mapped[time] = mapped_column(sa.Time, nullable=False)
    opening_hours_end: Mapped[time] = mapped_column(sa.Time, nullable=False)
    is_open: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True, server_default=sa.true())
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )

    organization: Mapped[Organization] = relationship("Organization", back_populates="locations")


class LocationManager(Base):
    """Manager role scoped to one location.

    Both composite keys are enforced by the store: the user must be a member of
    the organization, and the location must belong to that same organization.
    """

    __tablename__ = "location_managers"
    __table_args__ = (
        sa.UniqueConstraint("location_id", "user_id", name="uq_location_managers_location_user"),
        sa.ForeignKeyConstraint(
            ["org_id", "user_id"],
            ["organization_memberships.org_id", "organization_memberships.user_id"],
            name="fk_location_managers_membership",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["location_id", "org_id"],
            ["locations.location_id", "locations.org_id"],
            name="fk_location_managers_location_org",
            ondelete="CASCADE",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    location_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    org_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID_TYPE, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from courtbook.domain.bookings.statuses import BOOKING_STATUS_PENDING
from courtbook.infra.db import Base, UTCDateTime, UUID_TYPE

if TYPE_CHECKING:  # pragma: no cover
    from courtbook.domain.resources.db_models import Resource

EXCLUSION_CONSTRAINT_NAME = "bookings_resource_time_no_overlap"


class Booking(Base):
    __tablename__ = "bookings"

    booking_id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.resource_id"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID_TYPE, ForeignKey("users.user_id"), nullable=False)
    starts_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=BOOKING_STATUS_PENDING, server_default=BOOKING_STATUS_PENDING
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    resource: Mapped[Resource] = relationship("Resource")

    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="ck_bookings_time_range_valid"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled')", name="ck_bookings_status_valid"
        ),
        Index("ix_bookings_resource_time", "resource_id", "starts_at", "ends_at"),
        Index("ix_bookings_user_time", "user_id", "starts_at"),
        Index("ix_bookings_status", "status"),
    )


# Postgres-only storage guarantee: no two blocking bookings on one resource may overlap.
sa.event.listen(
    Booking.__table__,
    "before_create",
    sa.DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
sa.event.listen(
    Booking.__table__,
    "after_create",
    sa.DDL(
        f"""
        ALTER TABLE bookings
        ADD CONSTRAINT {EXCLUSION_CONSTRAINT_NAME}
        EXCLUDE USING gist (
            resource_id WITH =,
            tstzrange(starts_at, ends_at, '[)') WITH &&
        )
        WHERE (status IN ('pending', 'confirmed'))
        """
    ).execute_if(dialect="postgresql"),
)

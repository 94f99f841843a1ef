from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from courtbook.infra.db import Base

if TYPE_CHECKING:  # pragma: no cover
    from courtbook.domain.locations.db_models import Location


class ResourceType(Base):
    __tablename__ = "resource_types"

    resource_type_id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[int] = mapped_column(
        sa.ForeignKey("organizations.org_id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )


class Resource(Base):
    __tablename__ = "resources"

    resource_id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    location_id: Mapped[int] = mapped_column(
        sa.ForeignKey("locations.location_id"), nullable=False, index=True
    )
    resource_type_id: Mapped[int] = mapped_column(
        sa.ForeignKey("resource_types.resource_type_id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True, server_default=sa.true())
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False
    )

    location: Mapped[Location] = relationship("Location")
    resource_type: Mapped[ResourceType] = relationship("ResourceType")

"""Client persistence model.

A client is a business contact of the freelancer. `position` orders cards
within a single status column of the kanban board; it is only meaningful
relative to the other clients of the same user and status.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.clienter.core.database import Base


class ClientModel(Base):
    """Business contact tracked through the workflow stages."""

    __tablename__ = "clients"
    __table_args__ = (
        Index("ix_clients_user_status_position", "user_id", "status", "position"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    project_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    advance_paid: Mapped[float | None] = mapped_column(
        Float, default=0, server_default=text("0")
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default="uncertain",
        server_default=text("'uncertain'"),
    )
    position: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )

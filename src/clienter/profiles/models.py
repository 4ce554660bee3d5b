"""Profile persistence model.

One row per authenticated user, keyed by the auth provider's user id.
Created lazily by ProfileRepository.get_or_create on first access.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.clienter.core.database import Base


class ProfileModel(Base):
    """Per-user settings used by meetings, dashboards and notifications."""

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    timezone: Mapped[str] = mapped_column(
        String(64), default="UTC", server_default=text("'UTC'")
    )
    default_reminder_minutes: Mapped[int] = mapped_column(
        Integer, default=15, server_default=text("15")
    )
    currency: Mapped[str] = mapped_column(
        String(3), default="USD", server_default=text("'USD'")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )

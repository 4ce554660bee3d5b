"""Meeting persistence model.

client_id references clients with ON DELETE SET NULL: deleting a client
keeps its meeting history. Reminders reference meetings with ON DELETE
CASCADE (see reminders.models).
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.clienter.core.database import Base


class MeetingModel(Base):
    """A scheduled meeting, optionally with a client."""

    __tablename__ = "meetings"
    __table_args__ = (
        Index("ix_meetings_user_time", "user_id", "meeting_time"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    client_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    meeting_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(
        Integer, default=60, server_default=text("60")
    )
    meeting_link: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    reminder_minutes: Mapped[int] = mapped_column(
        Integer, default=15, server_default=text("15")
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

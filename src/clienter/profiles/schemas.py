"""Pydantic v2 schemas for user profiles."""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator


class Profile(BaseModel):
    """A user's settings as stored."""

    id: str
    email: str | None = None
    full_name: str | None = None
    timezone: str = "UTC"
    default_reminder_minutes: int = 15
    currency: str = "USD"
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ProfileUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    full_name: str | None = Field(None, max_length=200)
    timezone: str | None = None
    default_reminder_minutes: int | None = Field(None, ge=0, le=7 * 24 * 60)
    currency: str | None = Field(None, min_length=3, max_length=3)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str | None) -> str | None:
        if value is None:
            return value
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str | None) -> str | None:
        return value.upper() if value else value

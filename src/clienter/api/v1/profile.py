"""Profile endpoints -- the signed-in user's settings."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from src.clienter.api.deps import get_current_user, get_state_repository
from src.clienter.core.user_context import UserContext
from src.clienter.profiles.schemas import ProfileUpdate

router = APIRouter(prefix="/profile", tags=["profile"])


class ProfileResponse(BaseModel):
    id: str
    email: str | None = None
    full_name: str | None = None
    timezone: str = "UTC"
    default_reminder_minutes: int = 15
    currency: str = "USD"
    created_at: str | None = None
    updated_at: str | None = None


def _get_profile_repository(request: Request) -> Any:
    return get_state_repository(request, "profile_repository", "Profiles")


def _profile_to_response(profile: Any) -> ProfileResponse:
    return ProfileResponse(
        id=profile.id,
        email=profile.email,
        full_name=profile.full_name,
        timezone=profile.timezone,
        default_reminder_minutes=profile.default_reminder_minutes,
        currency=profile.currency,
        created_at=profile.created_at.isoformat() if profile.created_at else None,
        updated_at=profile.updated_at.isoformat() if profile.updated_at else None,
    )


@router.get("", response_model=ProfileResponse)
async def get_profile(
    request: Request,
    user: UserContext = Depends(get_current_user),
) -> ProfileResponse:
    """Return the profile, creating it with defaults on first access."""
    repo = _get_profile_repository(request)
    return _profile_to_response(await repo.get_or_create(user.user_id, user.email))


@router.patch("", response_model=ProfileResponse)
async def update_profile(
    body: ProfileUpdate,
    request: Request,
    user: UserContext = Depends(get_current_user),
) -> ProfileResponse:
    repo = _get_profile_repository(request)
    return _profile_to_response(await repo.update(user.user_id, body))

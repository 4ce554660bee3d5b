"""Profile repository -- lazy creation and partial updates of user settings."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.clienter.config import get_settings
from src.clienter.profiles.models import ProfileModel
from src.clienter.profiles.schemas import Profile, ProfileUpdate

logger = structlog.get_logger(__name__)


def _model_to_profile(model: ProfileModel) -> Profile:
    return Profile(
        id=str(model.id),
        email=model.email,
        full_name=model.full_name,
        timezone=model.timezone or "UTC",
        default_reminder_minutes=model.default_reminder_minutes,
        currency=model.currency or "USD",
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class ProfileRepository:
    """Async access to the profiles table.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def get_or_create(self, user_id: str, email: str | None = None) -> Profile:
        """Return the user's profile, inserting defaults on first access."""
        async for session in self._session_factory():
            model = await session.get(ProfileModel, uuid.UUID(user_id))
            if model is None:
                model = ProfileModel(
                    id=uuid.UUID(user_id),
                    email=email,
                    default_reminder_minutes=get_settings().DEFAULT_REMINDER_MINUTES,
                )
                session.add(model)
                await session.commit()
                await session.refresh(model)
                logger.info("profile_created", user_id=user_id)
            return _model_to_profile(model)

    async def update(self, user_id: str, data: ProfileUpdate) -> Profile:
        """Apply a partial update, creating the profile first if needed."""
        await self.get_or_create(user_id)
        async for session in self._session_factory():
            stmt = select(ProfileModel).where(ProfileModel.id == uuid.UUID(user_id))
            model = (await session.execute(stmt)).scalar_one()
            for field, value in data.model_dump(exclude_unset=True).items():
                if value is not None:
                    setattr(model, field, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_profile(model)

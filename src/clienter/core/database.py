"""Async SQLAlchemy engine and session factories for the hosted Postgres store.

Provides:
- Base: Declarative base for all Clienter tables
- get_session(): Plain session (health checks, maintenance)
- get_user_session(): Session with the row-level security variable set to
  the current user
- Pool checkout event that resets session variables (RESET ALL) so a
  previous user's RLS context never leaks into the next checkout
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.clienter.config import get_settings
from src.clienter.core.user_context import get_current_user_context

# ── Module-level engine (lazy init) ────────────────────────────────────────

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.DATABASE_URL,
            pool_size=10,
            max_overflow=5,
            pool_pre_ping=True,
            echo=False,
        )

        @event.listens_for(_engine.sync_engine, "checkout")
        def reset_user_setting(dbapi_conn: Any, connection_record: Any, connection_proxy: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("RESET ALL")
            cursor.close()

    return _engine


# ── Declarative Base ────────────────────────────────────────────────────────


class Base(DeclarativeBase):
    """Base class for all Clienter models (public schema)."""


# ── Identifiers ─────────────────────────────────────────────────────────


def parse_uuid(value: str | None) -> uuid.UUID | None:
    """Parse a client-supplied id; None when it is not a UUID.

    Repositories treat a malformed id like an unknown one, so lookups return
    None and mutations raise their usual "not found" ValueError.
    """
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


# ── Session Factories ───────────────────────────────────────────────────────


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession without user scoping."""
    engine = get_engine()
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


async def get_user_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session whose connection carries the current user's RLS context.

    The user id is bound as a parameter through set_config() rather than
    interpolated, since it originates from a client-supplied token.
    """
    user = get_current_user_context()
    engine = get_engine()

    async with engine.connect() as conn:
        await conn.execute(
            text("SELECT set_config('app.current_user_id', :user_id, false)"),
            {"user_id": user.user_id},
        )
        # End the implicit transaction so the session owns its own commits
        await conn.commit()
        async with AsyncSession(bind=conn, expire_on_commit=False) as session:
            yield session


# ── Lifecycle ───────────────────────────────────────────────────────────────


async def init_db() -> None:
    """Verify connectivity; schema is owned by Alembic migrations."""
    engine = get_engine()
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db() -> None:
    """Dispose of the engine and close all connections."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None

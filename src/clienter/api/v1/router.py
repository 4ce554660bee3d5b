"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.clienter.api.v1 import clients, dashboard, meetings, profile, reminders

router = APIRouter()

router.include_router(profile.router)
router.include_router(clients.router)
router.include_router(meetings.router)
router.include_router(reminders.router)
router.include_router(dashboard.router)

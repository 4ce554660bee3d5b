"""Pydantic v2 schemas for clients and the kanban board."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, computed_field


# ── Enums ────────────────────────────────────────────────────────────────────


class ClientStatus(str, Enum):
    """Workflow stage of a client; one kanban column per value, in this order."""

    UNCERTAIN = "uncertain"
    POTENTIAL = "potential"
    ONGOING = "ongoing"
    COMPLETED = "completed"


STATUS_LABELS: dict[ClientStatus, str] = {
    ClientStatus.UNCERTAIN: "Uncertain",
    ClientStatus.POTENTIAL: "Potential",
    ClientStatus.ONGOING: "Ongoing",
    ClientStatus.COMPLETED: "Completed",
}

# Statuses whose amounts count towards dashboard revenue
REVENUE_STATUSES: tuple[ClientStatus, ...] = (ClientStatus.ONGOING, ClientStatus.POTENTIAL)


# ── Client Models ────────────────────────────────────────────────────────────


class ClientCreate(BaseModel):
    """Request schema for creating a client."""

    name: str = Field(min_length=1, max_length=200)
    phone: str | None = Field(None, max_length=50)
    project_description: str | None = None
    total_amount: float | None = Field(None, ge=0)
    advance_paid: float | None = Field(0, ge=0)
    status: ClientStatus = ClientStatus.UNCERTAIN


class ClientUpdate(BaseModel):
    """Partial update; a status change appends the client to its new column."""

    name: str | None = Field(None, min_length=1, max_length=200)
    phone: str | None = Field(None, max_length=50)
    project_description: str | None = None
    total_amount: float | None = Field(None, ge=0)
    advance_paid: float | None = Field(None, ge=0)
    status: ClientStatus | None = None


class Client(BaseModel):
    """Full client entity."""

    id: str
    user_id: str
    name: str
    phone: str | None = None
    project_description: str | None = None
    total_amount: float | None = None
    advance_paid: float | None = 0
    status: ClientStatus = ClientStatus.UNCERTAIN
    position: int = 0
    created_at: datetime
    updated_at: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def balance(self) -> float:
        """Outstanding amount: total minus what has been paid in advance."""
        return (self.total_amount or 0) - (self.advance_paid or 0)


# ── Kanban Models ────────────────────────────────────────────────────────────


class ClientMove(BaseModel):
    """Drag-and-drop target: destination column and index within it."""

    status: ClientStatus
    index: int = Field(ge=0)


class KanbanColumn(BaseModel):
    status: ClientStatus
    title: str
    clients: list[Client] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def count(self) -> int:
        return len(self.clients)


class KanbanBoard(BaseModel):
    columns: list[KanbanColumn] = Field(default_factory=list)

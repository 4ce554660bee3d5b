"""REST API endpoints for clients and the kanban board.

Provides CRUD with name search, the status board, drag-and-drop moves and
the per-client meeting list. All endpoints require an authenticated user
and only ever see that user's clients.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from src.clienter.api.deps import get_current_user, get_state_repository
from src.clienter.api.v1.meetings import MeetingResponse, _meeting_to_response
from src.clienter.clients.schemas import ClientCreate, ClientMove, ClientUpdate
from src.clienter.core.user_context import UserContext

router = APIRouter(prefix="/clients", tags=["clients"])


# ── Response Schemas ─────────────────────────────────────────────────────────


class ClientResponse(BaseModel):
    """Response for client data, serializes datetimes to ISO strings."""

    id: str
    name: str
    phone: str | None = None
    project_description: str | None = None
    total_amount: float | None = None
    advance_paid: float | None = 0
    balance: float = 0.0
    status: str
    position: int = 0
    created_at: str | None = None
    updated_at: str | None = None


class KanbanColumnResponse(BaseModel):
    status: str
    title: str
    count: int = 0
    clients: list[ClientResponse] = Field(default_factory=list)


class KanbanBoardResponse(BaseModel):
    """Board view with one column per status in workflow order."""

    columns: list[KanbanColumnResponse] = Field(default_factory=list)


# ── Dependency Injection Helpers ─────────────────────────────────────────────


def _get_client_repository(request: Request) -> Any:
    return get_state_repository(request, "client_repository", "Client management")


def _get_meeting_repository(request: Request) -> Any:
    return get_state_repository(request, "meeting_repository", "Meeting scheduling")


# ── Conversion Helpers ───────────────────────────────────────────────────────


def _client_to_response(client: Any) -> ClientResponse:
    """Convert Client to ClientResponse."""
    return ClientResponse(
        id=client.id,
        name=client.name,
        phone=client.phone,
        project_description=client.project_description,
        total_amount=client.total_amount,
        advance_paid=client.advance_paid,
        balance=client.balance,
        status=client.status.value,
        position=client.position,
        created_at=client.created_at.isoformat() if client.created_at else None,
        updated_at=client.updated_at.isoformat() if client.updated_at else None,
    )


def _board_to_response(board: Any) -> KanbanBoardResponse:
    return KanbanBoardResponse(
        columns=[
            KanbanColumnResponse(
                status=column.status.value,
                title=column.title,
                count=column.count,
                clients=[_client_to_response(c) for c in column.clients],
            )
            for column in board.columns
        ]
    )


def _not_found(client_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Client {client_id} not found",
    )


# ── Client Endpoints ─────────────────────────────────────────────────────────


@router.post("", response_model=ClientResponse, status_code=201)
async def create_client(
    body: ClientCreate,
    request: Request,
    user: UserContext = Depends(get_current_user),
) -> ClientResponse:
    """Create a client at the end of its status column."""
    repo = _get_client_repository(request)
    client = await repo.create_client(user.user_id, body)
    return _client_to_response(client)


@router.get("", response_model=list[ClientResponse])
async def list_clients(
    request: Request,
    search: str | None = Query(None, description="Case-insensitive name filter"),
    user: UserContext = Depends(get_current_user),
) -> list[ClientResponse]:
    """List clients, newest first."""
    repo = _get_client_repository(request)
    clients = await repo.list_clients(user.user_id, search=search)
    return [_client_to_response(c) for c in clients]


@router.get("/board", response_model=KanbanBoardResponse)
async def get_board(
    request: Request,
    user: UserContext = Depends(get_current_user),
) -> KanbanBoardResponse:
    """Kanban board: one column per status, each ordered by position."""
    repo = _get_client_repository(request)
    return _board_to_response(await repo.get_board(user.user_id))


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: str,
    request: Request,
    user: UserContext = Depends(get_current_user),
) -> ClientResponse:
    repo = _get_client_repository(request)
    client = await repo.get_client(user.user_id, client_id)
    if client is None:
        raise _not_found(client_id)
    return _client_to_response(client)


@router.patch("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: str,
    body: ClientUpdate,
    request: Request,
    user: UserContext = Depends(get_current_user),
) -> ClientResponse:
    """Partial update; a status change appends the client to its new column."""
    repo = _get_client_repository(request)
    try:
        client = await repo.update_client(user.user_id, client_id, body)
    except ValueError:
        raise _not_found(client_id)
    return _client_to_response(client)


@router.delete("/{client_id}", status_code=204)
async def delete_client(
    client_id: str,
    request: Request,
    user: UserContext = Depends(get_current_user),
) -> None:
    """Delete a client; its meetings are kept without a client."""
    repo = _get_client_repository(request)
    if not await repo.delete_client(user.user_id, client_id):
        raise _not_found(client_id)


@router.post("/{client_id}/move", response_model=KanbanBoardResponse)
async def move_client(
    client_id: str,
    body: ClientMove,
    request: Request,
    user: UserContext = Depends(get_current_user),
) -> KanbanBoardResponse:
    """Move a client to a column and index; returns the updated board."""
    repo = _get_client_repository(request)
    try:
        board = await repo.move_client(user.user_id, client_id, body.status, body.index)
    except ValueError:
        raise _not_found(client_id)
    return _board_to_response(board)


@router.get("/{client_id}/meetings", response_model=list[MeetingResponse])
async def list_client_meetings(
    client_id: str,
    request: Request,
    user: UserContext = Depends(get_current_user),
) -> list[MeetingResponse]:
    """All meetings with this client, ordered by meeting time."""
    repo = _get_client_repository(request)
    if await repo.get_client(user.user_id, client_id) is None:
        raise _not_found(client_id)
    meetings = await _get_meeting_repository(request).list_meetings(
        user.user_id, client_id=client_id
    )
    return [_meeting_to_response(m) for m in meetings]

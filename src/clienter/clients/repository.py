"""Client repository -- async CRUD, search, kanban moves and aggregates.

Uses the session_factory callable pattern shared by every repository in
this service. All methods take user_id as first argument and only ever
touch that user's rows.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.clienter.clients.kanban import build_board, plan_move
from src.clienter.clients.models import ClientModel
from src.clienter.clients.schemas import (
    Client,
    ClientCreate,
    ClientStatus,
    ClientUpdate,
    KanbanBoard,
)
from src.clienter.core.database import parse_uuid

logger = structlog.get_logger(__name__)


def _like_pattern(search: str) -> str:
    """Substring pattern for ILIKE with the user's own wildcards taken literally."""
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _model_to_client(model: ClientModel) -> Client:
    """Convert ClientModel to Client schema."""
    return Client(
        id=str(model.id),
        user_id=str(model.user_id),
        name=model.name,
        phone=model.phone,
        project_description=model.project_description,
        total_amount=model.total_amount,
        advance_paid=model.advance_paid,
        status=ClientStatus(model.status),
        position=model.position,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class ClientRepository:
    """Async CRUD operations for clients.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def _next_position(
        self, session: AsyncSession, user_id: str, status: ClientStatus
    ) -> int:
        stmt = select(func.max(ClientModel.position)).where(
            ClientModel.user_id == uuid.UUID(user_id),
            ClientModel.status == status.value,
        )
        current = (await session.execute(stmt)).scalar_one_or_none()
        return 0 if current is None else current + 1

    async def _load(
        self, session: AsyncSession, user_id: str, client_id: str
    ) -> ClientModel | None:
        client_uuid = parse_uuid(client_id)
        if client_uuid is None:
            return None
        stmt = select(ClientModel).where(
            ClientModel.user_id == uuid.UUID(user_id),
            ClientModel.id == client_uuid,
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    # ── CRUD ─────────────────────────────────────────────────────────────

    async def create_client(self, user_id: str, data: ClientCreate) -> Client:
        """Create a client at the end of its status column."""
        async for session in self._session_factory():
            model = ClientModel(
                user_id=uuid.UUID(user_id),
                name=data.name,
                phone=data.phone,
                project_description=data.project_description,
                total_amount=data.total_amount,
                advance_paid=data.advance_paid,
                status=data.status.value,
                position=await self._next_position(session, user_id, data.status),
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("client_created", client_id=str(model.id), status=model.status)
            return _model_to_client(model)

    async def get_client(self, user_id: str, client_id: str) -> Client | None:
        async for session in self._session_factory():
            model = await self._load(session, user_id, client_id)
            return _model_to_client(model) if model else None

    async def list_clients(
        self, user_id: str, search: str | None = None
    ) -> list[Client]:
        """List clients newest first, optionally filtered by a name substring."""
        async for session in self._session_factory():
            stmt = select(ClientModel).where(ClientModel.user_id == uuid.UUID(user_id))
            if search:
                stmt = stmt.where(ClientModel.name.ilike(_like_pattern(search), escape="\\"))
            stmt = stmt.order_by(ClientModel.created_at.desc())
            models = (await session.execute(stmt)).scalars().all()
            return [_model_to_client(m) for m in models]

    async def update_client(
        self, user_id: str, client_id: str, data: ClientUpdate
    ) -> Client:
        """Apply a partial update.

        Raises:
            ValueError: If the client does not exist for this user.
        """
        async for session in self._session_factory():
            model = await self._load(session, user_id, client_id)
            if model is None:
                raise ValueError(f"Client not found: {client_id}")

            fields = data.model_dump(exclude_unset=True)
            status = fields.pop("status", None)
            for field, value in fields.items():
                if value is None and field == "name":
                    continue
                setattr(model, field, value)
            if status is not None and status.value != model.status:
                model.position = await self._next_position(session, user_id, status)
                model.status = status.value

            await session.commit()
            await session.refresh(model)
            return _model_to_client(model)

    async def delete_client(self, user_id: str, client_id: str) -> bool:
        """Delete a client. Meetings keep existing with client_id cleared."""
        async for session in self._session_factory():
            model = await self._load(session, user_id, client_id)
            if model is None:
                return False
            await session.delete(model)
            await session.commit()
            logger.info("client_deleted", client_id=client_id)
            return True

    # ── Kanban ───────────────────────────────────────────────────────────

    async def get_board(self, user_id: str) -> KanbanBoard:
        return build_board(await self.list_clients(user_id))

    async def move_client(
        self, user_id: str, client_id: str, to_status: ClientStatus, to_index: int
    ) -> KanbanBoard:
        """Move a client to a column/index and persist the renumbering atomically.

        Raises:
            ValueError: If the client does not exist for this user.
        """
        async for session in self._session_factory():
            stmt = select(ClientModel).where(ClientModel.user_id == uuid.UUID(user_id))
            models = (await session.execute(stmt)).scalars().all()
            by_id = {str(m.id): m for m in models}

            changes = plan_move(
                [_model_to_client(m) for m in models], client_id, to_status, to_index
            )
            for changed_id, (status, position) in changes.items():
                by_id[changed_id].status = status.value
                by_id[changed_id].position = position
            await session.commit()

            logger.info(
                "client_moved",
                client_id=client_id,
                status=to_status.value,
                index=to_index,
                rows_changed=len(changes),
            )
            return build_board([_model_to_client(m) for m in models])

    # ── Aggregates ───────────────────────────────────────────────────────

    async def list_recent(self, user_id: str, limit: int = 5) -> list[Client]:
        async for session in self._session_factory():
            stmt = (
                select(ClientModel)
                .where(ClientModel.user_id == uuid.UUID(user_id))
                .order_by(ClientModel.created_at.desc())
                .limit(limit)
            )
            models = (await session.execute(stmt)).scalars().all()
            return [_model_to_client(m) for m in models]

    async def count_clients(self, user_id: str) -> int:
        async for session in self._session_factory():
            stmt = select(func.count()).select_from(ClientModel).where(
                ClientModel.user_id == uuid.UUID(user_id)
            )
            return (await session.execute(stmt)).scalar_one()

    async def revenue_totals(
        self, user_id: str, statuses: tuple[ClientStatus, ...]
    ) -> tuple[float, float]:
        """Sum of total_amount and advance_paid over clients in `statuses`."""
        async for session in self._session_factory():
            stmt = select(
                func.coalesce(func.sum(ClientModel.total_amount), 0),
                func.coalesce(func.sum(ClientModel.advance_paid), 0),
            ).where(
                ClientModel.user_id == uuid.UUID(user_id),
                ClientModel.status.in_([s.value for s in statuses]),
            )
            total, paid = (await session.execute(stmt)).one()
            return float(total), float(paid)

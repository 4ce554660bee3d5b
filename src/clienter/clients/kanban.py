"""Kanban board derivation and drag-and-drop move planning.

Pure functions over lists of Client schemas: no I/O, so the repository can
plan a move against a snapshot and persist only the rows whose status or
position changed.
"""

from __future__ import annotations

from src.clienter.clients.schemas import (
    STATUS_LABELS,
    Client,
    ClientStatus,
    KanbanBoard,
    KanbanColumn,
)


def _column_order(client: Client) -> tuple:
    return (client.position, client.created_at, client.id)


def group_by_status(clients: list[Client]) -> dict[ClientStatus, list[Client]]:
    """Split clients into status columns, each sorted by position."""
    columns: dict[ClientStatus, list[Client]] = {s: [] for s in ClientStatus}
    for client in clients:
        columns[client.status].append(client)
    for status in columns:
        columns[status].sort(key=_column_order)
    return columns


def build_board(clients: list[Client]) -> KanbanBoard:
    """Build the board with one column per status in workflow order."""
    columns = group_by_status(clients)
    return KanbanBoard(
        columns=[
            KanbanColumn(status=status, title=STATUS_LABELS[status], clients=columns[status])
            for status in ClientStatus
        ]
    )


def next_position(clients: list[Client], status: ClientStatus) -> int:
    """Position that appends a client to the end of a column."""
    positions = [c.position for c in clients if c.status == status]
    return max(positions) + 1 if positions else 0


def plan_move(
    clients: list[Client],
    client_id: str,
    to_status: ClientStatus,
    to_index: int,
) -> dict[str, tuple[ClientStatus, int]]:
    """Compute the (status, position) assignments produced by a move.

    The client is removed from its current column and inserted into
    `to_status` at `to_index` (clamped to the column length). Every
    affected column is renumbered 0..n-1.

    Returns:
        Mapping of client id to its new (status, position), containing only
        clients whose status or position actually changes.

    Raises:
        ValueError: If client_id is not among `clients`.
    """
    moving = next((c for c in clients if c.id == client_id), None)
    if moving is None:
        raise ValueError(f"Client not found: {client_id}")

    columns = group_by_status(clients)
    source = [c for c in columns[moving.status] if c.id != client_id]
    target = source if to_status == moving.status else list(columns[to_status])

    index = max(0, min(to_index, len(target)))
    target.insert(index, moving)

    affected = {to_status: target}
    if to_status != moving.status:
        affected[moving.status] = source

    changes: dict[str, tuple[ClientStatus, int]] = {}
    for status, column in affected.items():
        for position, client in enumerate(column):
            if client.status != status or client.position != position:
                changes[client.id] = (status, position)
    return changes

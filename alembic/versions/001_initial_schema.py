"""Create profiles, clients, meetings and reminders.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-03-02

Creates the four user-owned tables with:
- meetings.client_id -> clients.id ON DELETE SET NULL
- reminders.meeting_id -> meetings.id ON DELETE CASCADE, unique per meeting
- RLS policies keyed on the app.current_user_id session setting
- indexes for the board, meeting list and pending-reminder queries
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# table -> column holding the owning user id
_OWNED_TABLES = {
    "profiles": "id",
    "clients": "user_id",
    "meetings": "user_id",
    "reminders": "user_id",
}


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # ── profiles ─────────────────────────────────────────────────────────

    op.create_table(
        "profiles",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("full_name", sa.String(200), nullable=True),
        sa.Column("timezone", sa.String(64), server_default=sa.text("'UTC'"), nullable=False),
        sa.Column(
            "default_reminder_minutes",
            sa.Integer(),
            server_default=sa.text("15"),
            nullable=False,
        ),
        sa.Column("currency", sa.String(3), server_default=sa.text("'USD'"), nullable=False),
        *_timestamps(),
    )

    # ── clients ──────────────────────────────────────────────────────────

    op.create_table(
        "clients",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("project_description", sa.Text(), nullable=True),
        sa.Column("total_amount", sa.Float(), nullable=True),
        sa.Column("advance_paid", sa.Float(), server_default=sa.text("0"), nullable=True),
        sa.Column(
            "status",
            sa.String(20),
            server_default=sa.text("'uncertain'"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), server_default=sa.text("0"), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('uncertain', 'potential', 'ongoing', 'completed')",
            name="ck_clients_status",
        ),
    )
    op.create_index(
        "ix_clients_user_status_position", "clients", ["user_id", "status", "position"]
    )

    # ── meetings ─────────────────────────────────────────────────────────

    op.create_table(
        "meetings",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column(
            "client_id",
            UUID(as_uuid=True),
            sa.ForeignKey("clients.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("meeting_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "duration_minutes", sa.Integer(), server_default=sa.text("60"), nullable=False
        ),
        sa.Column("meeting_link", sa.String(1000), nullable=True),
        sa.Column(
            "reminder_minutes", sa.Integer(), server_default=sa.text("15"), nullable=False
        ),
        *_timestamps(),
    )
    op.create_index("ix_meetings_user_time", "meetings", ["user_id", "meeting_time"])

    # ── reminders ────────────────────────────────────────────────────────

    op.create_table(
        "reminders",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column(
            "meeting_id",
            UUID(as_uuid=True),
            sa.ForeignKey("meetings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("remind_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "is_dismissed", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column("dismissed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.UniqueConstraint("meeting_id", name="uq_reminder_meeting"),
    )
    op.create_index(
        "ix_reminders_user_pending", "reminders", ["user_id", "is_dismissed", "remind_at"]
    )

    # ── Row-level security ───────────────────────────────────────────────

    for table, owner in _OWNED_TABLES.items():
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
        op.execute(f"""
            CREATE POLICY user_isolation ON {table}
            FOR ALL
            USING ({owner}::text = current_setting('app.current_user_id', true))
            WITH CHECK ({owner}::text = current_setting('app.current_user_id', true))
        """)


def downgrade() -> None:
    for table in reversed(list(_OWNED_TABLES)):
        op.execute(f"DROP POLICY IF EXISTS user_isolation ON {table}")
    op.drop_index("ix_reminders_user_pending", table_name="reminders")
    op.drop_table("reminders")
    op.drop_index("ix_meetings_user_time", table_name="meetings")
    op.drop_table("meetings")
    op.drop_index("ix_clients_user_status_position", table_name="clients")
    op.drop_table("clients")
    op.drop_table("profiles")

"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Creates the studio scheduling tables:
users, workspaces, workspace_members, events, event_organizers,
attendees, attendance_history.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("first_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("is_super_admin", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # --- workspaces ---
    op.create_table(
        "workspaces",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("created_by_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # --- workspace_members ---
    op.create_table(
        "workspace_members",
        sa.Column("workspace_id", sa.Integer, sa.ForeignKey("workspaces.id"), primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="STUDENT"),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # --- events (one row per occurrence) ---
    op.create_table(
        "events",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("workspace_id", sa.Integer, sa.ForeignKey("workspaces.id"), nullable=False),
        sa.Column("created_by_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("date_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("date_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("timezone", sa.String(50), nullable=False, server_default="UTC"),
        sa.Column("location", sa.String(500), nullable=True),
        sa.Column("capacity_min", sa.Integer, nullable=True),
        sa.Column("capacity_max", sa.Integer, nullable=True),
        sa.Column("leader_offset", sa.Integer, nullable=False, server_default="0"),
        sa.Column("visibility", sa.String(20), nullable=False, server_default="WORKSPACE_ONLY"),
        sa.Column("is_cancelled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("rrule", sa.String(500), nullable=True),
        sa.Column("parent_event_id", sa.Integer, sa.ForeignKey("events.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_events_workspace_id", "events", ["workspace_id"])
    op.create_index("ix_events_date_start", "events", ["date_start"])
    op.create_index("ix_events_parent_event_id", "events", ["parent_event_id"])

    # --- event_organizers ---
    op.create_table(
        "event_organizers",
        sa.Column("event_id", sa.Integer, sa.ForeignKey("events.id"), primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # --- attendees (user xor guest per occurrence) ---
    op.create_table(
        "attendees",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer, sa.ForeignKey("events.id"), nullable=False),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("guest_email", sa.String(255), nullable=True),
        sa.Column("guest_name", sa.String(200), nullable=True),
        sa.Column("role", sa.String(20), nullable=True),
        sa.Column("was_invited", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "user_id", name="uq_attendees_event_user"),
        sa.UniqueConstraint("event_id", "guest_email", name="uq_attendees_event_guest_email"),
    )
    op.create_index("ix_attendees_event_id", "attendees", ["event_id"])

    # --- attendance_history (append-only) ---
    op.create_table(
        "attendance_history",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("attendee_id", sa.Integer, sa.ForeignKey("attendees.id"), nullable=False),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("previous_role", sa.String(20), nullable=True),
        sa.Column("new_role", sa.String(20), nullable=True),
        sa.Column("performed_by_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("metadata", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_attendance_history_attendee_id", "attendance_history", ["attendee_id"])


def downgrade() -> None:
    op.drop_index("ix_attendance_history_attendee_id", table_name="attendance_history")
    op.drop_table("attendance_history")
    op.drop_index("ix_attendees_event_id", table_name="attendees")
    op.drop_table("attendees")
    op.drop_table("event_organizers")
    op.drop_index("ix_events_parent_event_id", table_name="events")
    op.drop_index("ix_events_date_start", table_name="events")
    op.drop_index("ix_events_workspace_id", table_name="events")
    op.drop_table("events")
    op.drop_table("workspace_members")
    op.drop_table("workspaces")
    op.drop_table("users")

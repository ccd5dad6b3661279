"""Add period edit sessions and snapshots.

Revision ID: 0002_add_period_edit_sessions
Revises: 0001_initial
Create Date: 2026-10-14
"""

from __future__ import annotations

from typing import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "0002_add_period_edit_sessions"
down_revision: str | None = "0001_initial"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


EDIT_SESSION_STATUSES = ("active", "saving", "completed", "cancelled", "expired")

edit_session_status = postgresql.ENUM(*EDIT_SESSION_STATUSES, name="edit_session_status", create_type=False)


def upgrade() -> None:
    bind = op.get_bind()
    is_postgresql = bind.dialect.name == "postgresql"
    if is_postgresql:
        edit_session_status.create(bind, checkfirst=True)

    status_column = edit_session_status if is_postgresql else sa.Enum(*EDIT_SESSION_STATUSES, name="edit_session_status")

    op.create_table(
        "period_edit_sessions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("period_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("status", status_column, nullable=False, server_default=sa.text("'active'")),
        sa.Column("changes", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json" if is_postgresql else "'{}'")),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["period_id"], ["payroll_periods_real.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_period_edit_sessions_company_period", "period_edit_sessions", ["company_id", "period_id"], unique=False
    )
    # At most one active session per period.
    op.create_index(
        "uq_period_edit_sessions_active_period",
        "period_edit_sessions",
        ["period_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "period_edit_snapshots",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("period_id", sa.Uuid(), nullable=False),
        sa.Column("session_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("snapshot_data", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["period_id"], ["payroll_periods_real.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["session_id"], ["period_edit_sessions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_period_edit_snapshots_period", "period_edit_snapshots", ["period_id"], unique=False)

    if is_postgresql:
        op.alter_column("period_edit_sessions", "changes", server_default=None)


def downgrade() -> None:
    bind = op.get_bind()

    op.drop_index("ix_period_edit_snapshots_period", table_name="period_edit_snapshots")
    op.drop_table("period_edit_snapshots")
    op.drop_index("uq_period_edit_sessions_active_period", table_name="period_edit_sessions")
    op.drop_index("ix_period_edit_sessions_company_period", table_name="period_edit_sessions")
    op.drop_table("period_edit_sessions")

    if bind.dialect.name == "postgresql":
        edit_session_status.drop(bind, checkfirst=True)

"""Initial schema - accounts, client_sessions, friend graph, connection requests, liveness pings

Revision ID: 0001
Revises:
Create Date: 2026-10-17

Partial unique indexes carry the idempotency guards:
- one pending friend request per unordered account pair
- one outstanding (sent/replied) connection request per ordered session pair
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # ==========================================================================
    # accounts
    # ==========================================================================
    op.create_table(
        "accounts",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("username", sa.String(32), nullable=False),
        sa.Column("credential_hash", sa.String(64), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
        sa.UniqueConstraint("credential_hash"),
        sa.CheckConstraint(
            "length(username) BETWEEN 1 AND 32",
            name="ck_accounts_username_length",
        ),
    )

    # ==========================================================================
    # client_sessions
    # ==========================================================================
    op.create_table(
        "client_sessions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("handle", sa.String(64), nullable=False),
        sa.Column("account_id", sa.UUID(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("last_heartbeat_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("handle"),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_client_sessions_account_live",
        "client_sessions",
        ["account_id", "is_active", "last_heartbeat_at"],
    )
    op.create_index(
        "ix_client_sessions_last_heartbeat_at", "client_sessions", ["last_heartbeat_at"]
    )

    # ==========================================================================
    # friend_requests
    # ==========================================================================
    op.create_table(
        "friend_requests",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("from_account_id", sa.UUID(), nullable=False),
        sa.Column("to_account_id", sa.UUID(), nullable=False),
        sa.Column("account_low_id", sa.UUID(), nullable=False),
        sa.Column("account_high_id", sa.UUID(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["from_account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["to_account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected')",
            name="ck_friend_requests_status",
        ),
        sa.CheckConstraint(
            "from_account_id <> to_account_id", name="ck_friend_requests_not_self"
        ),
        sa.CheckConstraint(
            "account_low_id < account_high_id", name="ck_friend_requests_pair_order"
        ),
    )
    op.create_index(
        "uq_friend_requests_pending_pair",
        "friend_requests",
        ["account_low_id", "account_high_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index("ix_friend_requests_to_status", "friend_requests", ["to_account_id", "status"])
    op.create_index(
        "ix_friend_requests_from_status", "friend_requests", ["from_account_id", "status"]
    )

    # ==========================================================================
    # friendships
    # ==========================================================================
    op.create_table(
        "friendships",
        sa.Column("account_low_id", sa.UUID(), nullable=False),
        sa.Column("account_high_id", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("account_low_id", "account_high_id"),
        sa.ForeignKeyConstraint(["account_low_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["account_high_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.CheckConstraint("account_low_id < account_high_id", name="ck_friendships_pair_order"),
    )
    op.create_index("ix_friendships_account_high_id", "friendships", ["account_high_id"])

    # ==========================================================================
    # connection_requests
    # ==========================================================================
    op.create_table(
        "connection_requests",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("from_session_handle", sa.String(64), nullable=False),
        sa.Column("to_session_handle", sa.String(64), nullable=False),
        sa.Column("from_account_id", sa.UUID(), nullable=False),
        sa.Column("to_account_id", sa.UUID(), nullable=False),
        sa.Column("from_username", sa.String(32), nullable=False),
        sa.Column("offer", postgresql.JSONB(), nullable=False),
        sa.Column("answer", postgresql.JSONB(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["from_account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["to_account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "status IN ('sent', 'replied', 'completed')",
            name="ck_connection_requests_status",
        ),
    )
    op.create_index(
        "uq_connection_requests_outstanding_pair",
        "connection_requests",
        ["from_session_handle", "to_session_handle"],
        unique=True,
        postgresql_where=sa.text("status IN ('sent', 'replied')"),
    )
    op.create_index(
        "ix_connection_requests_to_status",
        "connection_requests",
        ["to_session_handle", "status"],
    )
    op.create_index(
        "ix_connection_requests_from_status",
        "connection_requests",
        ["from_session_handle", "status"],
    )
    op.create_index(
        "ix_connection_requests_status_created",
        "connection_requests",
        ["status", "created_at"],
    )

    # ==========================================================================
    # liveness_pings
    # ==========================================================================
    op.create_table(
        "liveness_pings",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("pinger_session_handle", sa.String(64), nullable=False),
        sa.Column("target_session_handle", sa.String(64), nullable=False),
        sa.Column("pinger_account_id", sa.UUID(), nullable=False),
        sa.Column("target_account_id", sa.UUID(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("responded_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["pinger_account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["target_account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "status IN ('sent', 'responded')", name="ck_liveness_pings_status"
        ),
    )
    op.create_index(
        "ix_liveness_pings_target_pinger",
        "liveness_pings",
        ["target_session_handle", "pinger_session_handle"],
    )
    op.create_index("ix_liveness_pings_created_at", "liveness_pings", ["created_at"])


def downgrade() -> None:
    op.drop_table("liveness_pings")
    op.drop_table("connection_requests")
    op.drop_table("friendships")
    op.drop_table("friend_requests")
    op.drop_table("client_sessions")
    op.drop_table("accounts")

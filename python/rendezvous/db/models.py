"""SQLAlchemy ORM models for the rendezvous coordinator.

Defines all database tables using SQLAlchemy 2.x declarative patterns.
Status columns are Text guarded by CHECK constraints; the Python enums below
are the single source of truth for their values.

Column types are portable (Uuid, DateTime(timezone=True), JSON with a JSONB
variant) so the same metadata runs on PostgreSQL and on SQLite in tests.
Partial unique indexes carry the idempotency guards that make the
check-and-insert paths atomic.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

HandshakePayloadType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Enums
# =============================================================================


class FriendRequestStatus(str, PyEnum):
    """Friend request lifecycle. Only the recipient moves it off pending."""

    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class ConnectionRequestStatus(str, PyEnum):
    """Signaling handshake states.

    States:
        sent: Offer stored, waiting for the target session to answer
        replied: Answer stored, waiting for the initiator to pick it up
        completed: Either side reported the direct channel open (terminal)
    """

    sent = "sent"
    replied = "replied"
    completed = "completed"


class LivenessPingStatus(str, PyEnum):
    """Liveness probe states."""

    sent = "sent"
    responded = "responded"


# =============================================================================
# Models
# =============================================================================


class Account(Base):
    """Account identity: unique display name plus a durable bearer credential.

    Only the SHA-256 digest of the credential is stored.
    """

    __tablename__ = "accounts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    username: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    credential_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "length(username) BETWEEN 1 AND 32",
            name="ck_accounts_username_length",
        ),
    )

    sessions: Mapped[list["ClientSession"]] = relationship(
        "ClientSession", back_populates="account", cascade="all, delete-orphan"
    )


class ClientSession(Base):
    """One live client attachment (device/tab) of an account.

    A session is live iff is_active AND now - last_heartbeat_at < staleness window.
    Read paths apply that predicate; rows past it are not deleted until the sweep.
    """

    __tablename__ = "client_sessions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    handle: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    account_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, server_default=text("true"), nullable=False
    )
    last_heartbeat_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_client_sessions_account_live", "account_id", "is_active", "last_heartbeat_at"),
        Index("ix_client_sessions_last_heartbeat_at", "last_heartbeat_at"),
    )

    account: Mapped["Account"] = relationship("Account", back_populates="sessions")


class FriendRequest(Base):
    """Directed friend request edge.

    account_low_id/account_high_id hold the canonical (ordered) pair so that
    "at most one pending request per unordered pair" is a partial unique index.
    """

    __tablename__ = "friend_requests"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    from_account_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    to_account_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    account_low_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    account_high_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=FriendRequestStatus.pending.value
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected')",
            name="ck_friend_requests_status",
        ),
        CheckConstraint(
            "from_account_id <> to_account_id",
            name="ck_friend_requests_not_self",
        ),
        CheckConstraint(
            "account_low_id < account_high_id",
            name="ck_friend_requests_pair_order",
        ),
        Index(
            "uq_friend_requests_pending_pair",
            "account_low_id",
            "account_high_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index("ix_friend_requests_to_status", "to_account_id", "status"),
        Index("ix_friend_requests_from_status", "from_account_id", "status"),
    )

    from_account: Mapped["Account"] = relationship("Account", foreign_keys=[from_account_id])
    to_account: Mapped["Account"] = relationship("Account", foreign_keys=[to_account_id])


class Friendship(Base):
    """Symmetric friend edge, one row per pair, stored in canonical order."""

    __tablename__ = "friendships"

    account_low_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True
    )
    account_high_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "account_low_id < account_high_id",
            name="ck_friendships_pair_order",
        ),
        Index("ix_friendships_account_high_id", "account_high_id"),
    )


class ConnectionRequest(Base):
    """Signaling handshake record relayed between two sessions.

    Participant account ids are captured at open time so participant checks
    still work after either session row is gone.
    """

    __tablename__ = "connection_requests"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    from_session_handle: Mapped[str] = mapped_column(String(64), nullable=False)
    to_session_handle: Mapped[str] = mapped_column(String(64), nullable=False)
    from_account_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    to_account_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    from_username: Mapped[str] = mapped_column(String(32), nullable=False)
    offer: Mapped[Any] = mapped_column(HandshakePayloadType, nullable=False)
    answer: Mapped[Any | None] = mapped_column(HandshakePayloadType, nullable=True)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=ConnectionRequestStatus.sent.value
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('sent', 'replied', 'completed')",
            name="ck_connection_requests_status",
        ),
        Index(
            "uq_connection_requests_outstanding_pair",
            "from_session_handle",
            "to_session_handle",
            unique=True,
            postgresql_where=text("status IN ('sent', 'replied')"),
            sqlite_where=text("status IN ('sent', 'replied')"),
        ),
        Index("ix_connection_requests_to_status", "to_session_handle", "status"),
        Index("ix_connection_requests_from_status", "from_session_handle", "status"),
        Index("ix_connection_requests_status_created", "status", "created_at"),
    )


class LivenessPing(Base):
    """Ephemeral probe from one session to another.

    target_account_id is None when the target session did not exist at ping
    time; such a ping can never be answered and simply ages out.
    """

    __tablename__ = "liveness_pings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    pinger_session_handle: Mapped[str] = mapped_column(String(64), nullable=False)
    target_session_handle: Mapped[str] = mapped_column(String(64), nullable=False)
    pinger_account_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    target_account_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=LivenessPingStatus.sent.value
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('sent', 'responded')",
            name="ck_liveness_pings_status",
        ),
        Index("ix_liveness_pings_target_pinger", "target_session_handle", "pinger_session_handle"),
        Index("ix_liveness_pings_created_at", "created_at"),
    )

"""Database module for the rendezvous coordinator.

Provides engine creation, session management, transaction helpers, and ORM models.
"""

from rendezvous.db.engine import create_db_engine, get_engine
from rendezvous.db.models import (
    Account,
    Base,
    ClientSession,
    ConnectionRequest,
    ConnectionRequestStatus,
    FriendRequest,
    FriendRequestStatus,
    Friendship,
    LivenessPing,
    LivenessPingStatus,
)
from rendezvous.db.session import get_db, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "get_db",
    "transaction",
    # Base
    "Base",
    # Enums
    "FriendRequestStatus",
    "ConnectionRequestStatus",
    "LivenessPingStatus",
    # Models
    "Account",
    "ClientSession",
    "FriendRequest",
    "Friendship",
    "ConnectionRequest",
    "LivenessPing",
]

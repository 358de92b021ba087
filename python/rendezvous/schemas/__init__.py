"""Pydantic schemas for API request/response models."""

from rendezvous.schemas.accounts import AccountOut, MeOut
from rendezvous.schemas.friends import (
    FriendOut,
    FriendRequestOut,
    PendingRequestCountOut,
    RespondFriendRequestRequest,
    SendFriendRequestRequest,
)
from rendezvous.schemas.liveness import (
    LivenessPingOut,
    LivenessPingStatusOut,
    SendLivenessPingRequest,
)
from rendezvous.schemas.sessions import (
    AccountPresenceOut,
    HeartbeatOut,
    RegisterSessionOut,
    SessionOut,
)
from rendezvous.schemas.signaling import (
    ConnectionRequestOut,
    OpenConnectionRequestRequest,
    ReplyConnectionRequestRequest,
    SweepResultOut,
)

__all__ = [
    "AccountOut",
    "MeOut",
    "SessionOut",
    "RegisterSessionOut",
    "HeartbeatOut",
    "AccountPresenceOut",
    "SendFriendRequestRequest",
    "RespondFriendRequestRequest",
    "FriendRequestOut",
    "FriendOut",
    "PendingRequestCountOut",
    "OpenConnectionRequestRequest",
    "ReplyConnectionRequestRequest",
    "ConnectionRequestOut",
    "SweepResultOut",
    "SendLivenessPingRequest",
    "LivenessPingOut",
    "LivenessPingStatusOut",
]

"""Friend graph Pydantic schemas.

Contains request and response models for friend requests and the friend list.
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

FriendRequestDecision = Literal["accepted", "rejected"]
FriendRequestStatusValue = Literal["pending", "accepted", "rejected"]

# =============================================================================
# Request Schemas
# =============================================================================


class SendFriendRequestRequest(BaseModel):
    """Request body for sending a friend request."""

    to_username: str = Field(..., min_length=1, max_length=64, description="Recipient username")


class RespondFriendRequestRequest(BaseModel):
    """Request body for accepting or rejecting a friend request."""

    decision: FriendRequestDecision = Field(
        ..., description="Decision ('accepted' or 'rejected')"
    )


# =============================================================================
# Response Schemas
# =============================================================================


class FriendRequestOut(BaseModel):
    """Response schema for a friend request, with both usernames resolved."""

    id: UUID
    from_account_id: UUID
    from_username: str
    to_account_id: UUID
    to_username: str
    status: FriendRequestStatusValue
    created_at: datetime
    updated_at: datetime


class FriendOut(BaseModel):
    """A friend of the viewer with presence summary.

    last_seen is the most recent heartbeat across all of the friend's sessions
    still on record, live or not; None if none remain.
    """

    account_id: UUID
    username: str
    is_online: bool
    live_session_count: int
    last_seen: datetime | None
    friends_since: datetime


class PendingRequestCountOut(BaseModel):
    count: int

"""Session registry Pydantic schemas.

Contains response models for session registration, heartbeats and presence reads.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class SessionOut(BaseModel):
    """Response schema for a live client session."""

    handle: str
    account_id: UUID
    is_active: bool
    last_heartbeat_at: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RegisterSessionOut(BaseModel):
    """Response schema for session registration.

    Carries the timing contract the client's heartbeat loop must honor.
    """

    handle: str
    heartbeat_interval_seconds: int
    staleness_seconds: int
    created_at: datetime


class HeartbeatOut(BaseModel):
    """Acknowledgement of a heartbeat."""

    handle: str
    last_heartbeat_at: datetime


class AccountPresenceOut(BaseModel):
    """An account with at least one live session."""

    account_id: UUID
    username: str
    sessions: list[SessionOut]

"""Liveness prober Pydantic schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

LivenessPingStatusValue = Literal["sent", "responded"]


class SendLivenessPingRequest(BaseModel):
    """Request body for probing a session."""

    from_session_handle: str = Field(..., min_length=1, max_length=64)
    to_session_handle: str = Field(..., min_length=1, max_length=64)


class LivenessPingOut(BaseModel):
    id: UUID
    pinger_session_handle: str
    target_session_handle: str
    status: LivenessPingStatusValue
    created_at: datetime
    responded_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class LivenessPingStatusOut(BaseModel):
    """Poll result. status is None once the ping is gone (superseded, dismissed or swept)."""

    id: UUID
    status: LivenessPingStatusValue | None

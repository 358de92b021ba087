"""Connection request (signaling) Pydantic schemas.

Handshake payloads are opaque JSON values produced by the client transport
adapter. They are relayed as-is and never interpreted here.
"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

ConnectionRequestStatusValue = Literal["sent", "replied", "completed"]

# =============================================================================
# Request Schemas
# =============================================================================


class OpenConnectionRequestRequest(BaseModel):
    """Request body for opening a connection request."""

    from_session_handle: str = Field(..., min_length=1, max_length=64)
    to_session_handle: str = Field(..., min_length=1, max_length=64)
    offer: Any = Field(..., description="Opaque handshake payload (offer)")


class ReplyConnectionRequestRequest(BaseModel):
    """Request body for replying to a connection request."""

    answer: Any = Field(..., description="Opaque counter-payload (answer)")


# =============================================================================
# Response Schemas
# =============================================================================


class ConnectionRequestOut(BaseModel):
    """Response schema for a connection request."""

    id: UUID
    from_session_handle: str
    to_session_handle: str
    from_username: str
    offer: Any
    answer: Any | None = None
    status: ConnectionRequestStatusValue
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SweepResultOut(BaseModel):
    """Counts of rows touched by one pass of every sweep."""

    sessions_deactivated: int = 0
    sessions_deleted: int = 0
    connection_requests_expired: int = 0
    connection_requests_purged: int = 0
    liveness_pings_deleted: int = 0

"""Test helpers for authentication and clock manipulation.

Provides:
- Header generation for test requests
- Backdating helpers that move rows into the past, so staleness and expiry
  windows can be tested without sleeping
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from rendezvous.db.models import ClientSession, ConnectionRequest, LivenessPing

INTERNAL_SECRET = "test-internal-secret"


def auth_headers(credential: str, **extra_headers: str) -> dict[str, str]:
    """Build Authorization headers for a bearer credential."""
    return {"Authorization": f"Bearer {credential}", **extra_headers}


def seconds_ago(seconds: float) -> datetime:
    return datetime.now(UTC) - timedelta(seconds=seconds)


def backdate_session(session: Session, handle: str, seconds: float) -> None:
    """Pretend the session's last heartbeat happened `seconds` ago."""
    session.execute(
        update(ClientSession)
        .where(ClientSession.handle == handle)
        .values(last_heartbeat_at=seconds_ago(seconds))
    )
    session.commit()


def backdate_connection_request(session: Session, request_id: UUID | str, seconds: float) -> None:
    """Move both timestamps of a connection request `seconds` into the past.

    Accepts the id as returned in a JSON body.
    """
    request_id = UUID(str(request_id))
    when = seconds_ago(seconds)
    session.execute(
        update(ConnectionRequest)
        .where(ConnectionRequest.id == request_id)
        .values(created_at=when, updated_at=when)
    )
    session.commit()


def backdate_liveness_ping(session: Session, ping_id: UUID | str, seconds: float) -> None:
    session.execute(
        update(LivenessPing)
        .where(LivenessPing.id == UUID(str(ping_id)))
        .values(created_at=seconds_ago(seconds))
    )
    session.commit()

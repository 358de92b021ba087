"""Peer link orchestration over connection requests.

The coordinator only relays opaque offer/answer payloads; producing and
consuming them is the job of a TransportAdapter (a WebRTC stack, a TCP
hole-puncher, a fake in tests). PeerLink is the per-peer context object that
drives one connection request through open -> reply -> complete. Each link is
owned by its caller; there is no module-level connection state.

Simultaneous open:
- When two sessions open toward each other at the same moment, the server
  keeps both requests (they are different ordered pairs)
- Both sides resolve the conflict the same way: the request opened by the
  lexicographically lower session handle survives, the other is retired
"""

from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from rendezvous.client.api import CoordinatorClient
from rendezvous.logging import get_logger, handle_prefix
from rendezvous.schemas.signaling import ConnectionRequestOut

logger = get_logger(__name__)


class TransportAdapter(Protocol):
    """Produces and consumes handshake payloads for one direct link."""

    def create_offer(self) -> Any: ...

    def create_answer(self, offer: Any) -> Any: ...

    def accept_answer(self, answer: Any) -> None: ...

    def close(self) -> None: ...


class PeerLinkState(str, Enum):
    IDLE = "idle"
    OFFERING = "offering"
    ANSWERING = "answering"
    CONNECTED = "connected"
    CLOSED = "closed"


def should_initiate(local_handle: str, remote_handle: str) -> bool:
    """Return True if the local session should be the one to open."""
    return local_handle < remote_handle


def resolve_simultaneous_open(
    outgoing: ConnectionRequestOut, incoming: ConnectionRequestOut
) -> ConnectionRequestOut:
    """Pick the request both peers keep when each opened toward the other."""
    if should_initiate(outgoing.from_session_handle, incoming.from_session_handle):
        return outgoing
    return incoming


class PeerLink:
    """One direct link attempt between a local session and a remote session."""

    def __init__(
        self,
        client: CoordinatorClient,
        transport: TransportAdapter,
        local_handle: str,
        remote_handle: str,
    ):
        self._client = client
        self._transport = transport
        self.local_handle = local_handle
        self.remote_handle = remote_handle
        self.state = PeerLinkState.IDLE
        self.request_id: UUID | None = None

    def initiate(self) -> ConnectionRequestOut:
        """Open a connection request carrying a fresh offer."""
        offer = self._transport.create_offer()
        request = self._client.open_connection_request(
            self.local_handle, self.remote_handle, offer
        )
        self.request_id = request.id
        self.state = PeerLinkState.OFFERING
        logger.info(
            "peer_link_offer_sent",
            request_id=str(request.id),
            remote_handle_prefix=handle_prefix(self.remote_handle),
        )
        return request

    def accept(self, request: ConnectionRequestOut) -> ConnectionRequestOut:
        """Answer an incoming request addressed to the local session."""
        answer = self._transport.create_answer(request.offer)
        replied = self._client.reply_connection_request(request.id, answer)
        self.request_id = request.id
        self.state = PeerLinkState.ANSWERING
        return replied

    def poll_answer(self) -> bool:
        """Check an outgoing request for an answer; apply it and complete if present.

        Returns True once the link is connected.
        """
        if self.state == PeerLinkState.CONNECTED:
            return True
        if self.request_id is None or self.state != PeerLinkState.OFFERING:
            return False

        request = self._client.check_connection_request_status(self.request_id)
        if request.status == "replied":
            self._transport.accept_answer(request.answer)
            self._client.complete_connection_request(self.request_id)
            self.state = PeerLinkState.CONNECTED
        elif request.status == "completed":
            self.state = PeerLinkState.CONNECTED
        return self.state == PeerLinkState.CONNECTED

    def mark_connected(self) -> None:
        """Called by the answering side once the transport reports the link is up."""
        if self.request_id is not None:
            self._client.complete_connection_request(self.request_id)
        self.state = PeerLinkState.CONNECTED

    def resolve_conflict(self, incoming: ConnectionRequestOut) -> ConnectionRequestOut:
        """Handle an incoming request from the peer while our own offer is outstanding.

        If ours survives, the incoming request is left for the peer to retire.
        Otherwise our outgoing request is completed (retired) and the incoming
        one is answered.
        """
        if self.request_id is None:
            return self.accept(incoming)

        outgoing = self._client.check_connection_request_status(self.request_id)
        survivor = resolve_simultaneous_open(outgoing, incoming)
        if survivor.id == outgoing.id:
            return outgoing

        self._client.complete_connection_request(outgoing.id)
        logger.info(
            "peer_link_simultaneous_open_yielded",
            retired_request_id=str(outgoing.id),
            surviving_request_id=str(incoming.id),
        )
        return self.accept(incoming)

    def close(self) -> None:
        self._transport.close()
        self.state = PeerLinkState.CLOSED

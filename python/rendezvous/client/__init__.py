"""Client SDK for the rendezvous coordinator."""

from rendezvous.client.api import CoordinatorClient, CoordinatorError
from rendezvous.client.heartbeat import HeartbeatLoop
from rendezvous.client.peer import (
    PeerLink,
    PeerLinkState,
    TransportAdapter,
    resolve_simultaneous_open,
    should_initiate,
)
from rendezvous.client.probe import (
    answer_incoming_pings,
    probe_session,
    verify_and_list_sessions,
)

__all__ = [
    "CoordinatorClient",
    "CoordinatorError",
    "HeartbeatLoop",
    "PeerLink",
    "PeerLinkState",
    "TransportAdapter",
    "answer_incoming_pings",
    "probe_session",
    "resolve_simultaneous_open",
    "should_initiate",
    "verify_and_list_sessions",
]

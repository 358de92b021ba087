"""Active liveness verification.

Heartbeat recency only says a session was alive recently. Before opening a
handshake toward a session, probe it: send a ping, poll until the target
answers or the timeout passes, then dismiss the ping.

verify_and_list_sessions is the active counterpart to the passive
list_other_live_sessions read; it never mutates or deletes sessions.
"""

import time
from collections.abc import Callable

from rendezvous.client.api import CoordinatorClient, CoordinatorError
from rendezvous.logging import get_logger, handle_prefix
from rendezvous.schemas.sessions import SessionOut

logger = get_logger(__name__)

DEFAULT_PROBE_TIMEOUT_SECONDS = 3.0
DEFAULT_POLL_INTERVAL_SECONDS = 0.25


def probe_session(
    client: CoordinatorClient,
    from_session_handle: str,
    to_session_handle: str,
    timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Return True iff the target answered a fresh ping within timeout.

    A ping that disappears (status None) or is still 'sent' at the deadline
    means the target is unresponsive.
    """
    ping = client.send_liveness_ping(from_session_handle, to_session_handle)
    deadline = clock() + timeout
    try:
        while True:
            status = client.poll_liveness_ping(ping.id)
            if status == "responded":
                return True
            if status is None or clock() >= deadline:
                logger.info(
                    "probe_unresponsive",
                    target_handle_prefix=handle_prefix(to_session_handle),
                    status=status,
                )
                return False
            sleep(poll_interval)
    finally:
        try:
            client.dismiss_liveness_ping(ping.id)
        except CoordinatorError as e:
            # The sweep reclaims undismissed pings.
            logger.warning("probe_dismiss_failed", code=e.code)


def answer_incoming_pings(client: CoordinatorClient, session_handle: str) -> int:
    """Respond to every ping waiting on one of our sessions. Returns how many."""
    pings = client.list_incoming_pings(session_handle)
    for ping in pings:
        client.respond_liveness_ping(ping.id)
    return len(pings)


def verify_and_list_sessions(
    client: CoordinatorClient,
    from_session_handle: str,
    username: str,
    timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> list[SessionOut]:
    """List another account's live sessions, keeping only those that answer a probe."""
    sessions = client.list_other_live_sessions(username)
    return [
        session
        for session in sessions
        if probe_session(
            client,
            from_session_handle,
            session.handle,
            timeout=timeout,
            poll_interval=poll_interval,
            clock=clock,
            sleep=sleep,
        )
    ]

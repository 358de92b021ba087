"""Tests for the client SDK.

The coordinator client runs against the real app through FastAPI's TestClient
(an httpx.Client), so these tests drive the same routes production clients do.
Transport failures are simulated with respx.

Tests cover:
- Envelope unwrapping and error-code propagation
- HeartbeatLoop stops and reports not-live on the first failure
- probe_session / verify_and_list_sessions with a controllable clock
- PeerLink offer/answer flow and simultaneous-open resolution
"""

import threading
import time

import httpx
import pytest
import respx

from rendezvous.client import (
    CoordinatorClient,
    CoordinatorError,
    HeartbeatLoop,
    PeerLink,
    PeerLinkState,
    answer_incoming_pings,
    probe_session,
    resolve_simultaneous_open,
    should_initiate,
    verify_and_list_sessions,
)
from tests.factories import make_friends

COORDINATOR_URL = "http://coordinator.test"


class FakeTransport:
    """Transport adapter that produces labelled payloads and records what it saw."""

    def __init__(self, name: str):
        self.name = name
        self.accepted_answer = None
        self.answered_offer = None
        self.closed = False

    def create_offer(self):
        return {"type": "offer", "from": self.name}

    def create_answer(self, offer):
        self.answered_offer = offer
        return {"type": "answer", "from": self.name}

    def accept_answer(self, answer):
        self.accepted_answer = answer

    def close(self):
        self.closed = True


class FakeClock:
    """Monotonic clock advanced by sleep(); runs an optional hook on each sleep."""

    def __init__(self, on_sleep=None):
        self.now = 0.0
        self.on_sleep = on_sleep

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds
        if self.on_sleep is not None:
            self.on_sleep()


@pytest.fixture
def alice_client(client, alice):
    return CoordinatorClient(credential=alice.credential, http_client=client)


@pytest.fixture
def bob_client(client, bob):
    return CoordinatorClient(credential=bob.credential, http_client=client)


@pytest.fixture
def carol_client(client, carol):
    return CoordinatorClient(credential=carol.credential, http_client=client)


class TestCoordinatorClient:
    def test_me(self, alice_client, alice):
        me = alice_client.me()

        assert me.account_id == alice.account_id
        assert me.username == "alice"

    def test_register_and_list_sessions(self, alice_client):
        registered = alice_client.register_session()

        assert [s.handle for s in alice_client.list_live_sessions()] == [registered.handle]

    def test_error_envelope_becomes_coordinator_error(self, alice_client, carol_client):
        s1 = alice_client.register_session().handle
        s3 = carol_client.register_session().handle

        with pytest.raises(CoordinatorError) as exc_info:
            alice_client.open_connection_request(s1, s3, {"sdp": "x"})

        assert exc_info.value.code == "E_NOT_FRIENDS"
        assert exc_info.value.status_code == 403

    def test_friend_flow(self, alice_client, bob_client):
        request = alice_client.send_friend_request("bob")
        assert bob_client.pending_friend_request_count() == 1

        bob_client.respond_friend_request(request.id, "accepted")

        assert [f.username for f in alice_client.list_friends()] == ["bob"]
        alice_client.unfriend("bob")
        assert bob_client.list_friends() == []

    def test_missing_credential_is_unauthenticated(self, client):
        anonymous = CoordinatorClient(http_client=client)

        with pytest.raises(CoordinatorError) as exc_info:
            anonymous.me()

        assert exc_info.value.code == "E_UNAUTHENTICATED"

    def test_base_url_required_without_http_client(self):
        with pytest.raises(ValueError):
            CoordinatorClient(credential="x")

    @respx.mock
    def test_transport_failure_is_unreachable(self):
        respx.get(f"{COORDINATOR_URL}/me").mock(side_effect=httpx.ConnectError("refused"))

        with CoordinatorClient(COORDINATOR_URL, credential="x") as coordinator:
            with pytest.raises(CoordinatorError) as exc_info:
                coordinator.me()

        assert exc_info.value.code == "E_UNREACHABLE"
        assert exc_info.value.status_code is None

    @respx.mock
    def test_non_envelope_error_is_internal(self):
        respx.get(f"{COORDINATOR_URL}/me").mock(
            return_value=httpx.Response(502, text="Bad Gateway")
        )

        with CoordinatorClient(COORDINATOR_URL, credential="x") as coordinator:
            with pytest.raises(CoordinatorError) as exc_info:
                coordinator.me()

        assert exc_info.value.code == "E_INTERNAL"
        assert exc_info.value.status_code == 502

    @respx.mock
    def test_bearer_header_sent(self):
        route = respx.get(f"{COORDINATOR_URL}/me").mock(
            return_value=httpx.Response(
                200,
                json={
                    "data": {
                        "account_id": "7f2c0e9a-1b2c-4d5e-8f90-abcdef012345",
                        "username": "alice",
                    }
                },
            )
        )

        with CoordinatorClient(COORDINATOR_URL, credential="secret-token") as coordinator:
            coordinator.me()

        assert route.calls.last.request.headers["Authorization"] == "Bearer secret-token"


class TestHeartbeatLoop:
    def test_beat_succeeds_while_session_exists(self, alice_client):
        handle = alice_client.register_session().handle
        loop = HeartbeatLoop(alice_client, handle)

        assert loop.beat() is True
        assert loop.is_live is True

    def test_first_failure_stops_loop_without_retry(self, alice_client):
        handle = alice_client.register_session().handle
        stopped = []
        loop = HeartbeatLoop(alice_client, handle, on_stopped=stopped.append)
        alice_client.deactivate_session(handle)

        assert loop.beat() is False
        assert loop.is_live is False
        assert loop.last_error.code == "E_SESSION_NOT_FOUND"
        assert [e.code for e in stopped] == ["E_SESSION_NOT_FOUND"]

        # Stopped for good: no further calls, no second notification.
        assert loop.beat() is False
        assert len(stopped) == 1

    @respx.mock
    def test_unreachable_coordinator_reports_not_live(self):
        respx.post(f"{COORDINATOR_URL}/sessions/h1/heartbeat").mock(
            side_effect=httpx.ConnectTimeout("timed out")
        )

        with CoordinatorClient(COORDINATOR_URL, credential="x") as coordinator:
            loop = HeartbeatLoop(coordinator, "h1")
            assert loop.beat() is False

        assert loop.last_error.code == "E_UNREACHABLE"

    def test_background_thread_heartbeats_until_stopped(self):
        with respx.mock(base_url=COORDINATOR_URL) as router:
            route = router.post("/sessions/h1/heartbeat").mock(
                return_value=httpx.Response(
                    200,
                    json={"data": {"handle": "h1", "last_heartbeat_at": "2026-10-17T12:00:00Z"}},
                )
            )
            coordinator = CoordinatorClient(COORDINATOR_URL, credential="x")
            loop = HeartbeatLoop(coordinator, "h1", interval_seconds=0.01)

            loop.start()
            deadline = time.monotonic() + 2.0
            while route.call_count < 2 and time.monotonic() < deadline:
                time.sleep(0.01)
            loop.stop(timeout=1.0)
            coordinator.close()

        assert route.call_count >= 2
        assert loop.is_live is True

    def test_on_stopped_callback_may_stop_the_loop(self):
        not_found = {
            "error": {"code": "E_SESSION_NOT_FOUND", "message": "Session not found", "request_id": "r"}
        }
        done = threading.Event()
        errors = []

        def on_stopped(error):
            try:
                loop.stop(timeout=1.0)
            except RuntimeError as e:
                errors.append(e)
            done.set()

        with respx.mock(base_url=COORDINATOR_URL) as router:
            router.post("/sessions/h1/heartbeat").mock(
                return_value=httpx.Response(404, json=not_found)
            )
            coordinator = CoordinatorClient(COORDINATOR_URL, credential="x")
            loop = HeartbeatLoop(coordinator, "h1", interval_seconds=0.01, on_stopped=on_stopped)

            loop.start()
            assert done.wait(timeout=2.0)
            loop.stop(timeout=1.0)
            coordinator.close()

        assert errors == []
        assert loop.is_live is False
        assert loop.last_error.code == "E_SESSION_NOT_FOUND"


class TestProbe:
    def test_responsive_target(self, alice_client, bob_client):
        s1 = alice_client.register_session().handle
        s2 = bob_client.register_session().handle
        clock = FakeClock(on_sleep=lambda: answer_incoming_pings(bob_client, s2))

        assert probe_session(alice_client, s1, s2, clock=clock, sleep=clock.sleep) is True
        # The probe dismisses its ping.
        assert bob_client.list_incoming_pings(s2) == []

    def test_unresponsive_target_times_out(self, alice_client, bob_client):
        s1 = alice_client.register_session().handle
        s2 = bob_client.register_session().handle
        clock = FakeClock()

        result = probe_session(
            alice_client, s1, s2, timeout=1.0, poll_interval=0.25, clock=clock, sleep=clock.sleep
        )

        assert result is False
        assert clock.now >= 1.0

    def test_verify_and_list_keeps_only_responsive_sessions(self, alice_client, bob_client):
        s1 = alice_client.register_session().handle
        awake = bob_client.register_session().handle
        bob_client.register_session()
        clock = FakeClock(on_sleep=lambda: answer_incoming_pings(bob_client, awake))

        sessions = verify_and_list_sessions(
            alice_client, s1, "bob", timeout=1.0, clock=clock, sleep=clock.sleep
        )

        assert [s.handle for s in sessions] == [awake]
        # Unresponsive sessions are reported, never deleted.
        assert len(alice_client.list_other_live_sessions("bob")) == 2


class TestTieBreak:
    def test_lower_handle_initiates(self):
        assert should_initiate("aaa", "bbb") is True
        assert should_initiate("bbb", "aaa") is False

    def test_both_sides_pick_the_same_survivor(self, alice_client, bob_client, db_session, alice, bob):
        make_friends(db_session, alice.account_id, bob.account_id)
        s1 = alice_client.register_session().handle
        s2 = bob_client.register_session().handle
        a_to_b = alice_client.open_connection_request(s1, s2, {"sdp": "a"})
        b_to_a = bob_client.open_connection_request(s2, s1, {"sdp": "b"})

        from_alice = resolve_simultaneous_open(outgoing=a_to_b, incoming=b_to_a)
        from_bob = resolve_simultaneous_open(outgoing=b_to_a, incoming=a_to_b)

        assert from_alice.id == from_bob.id
        assert from_alice.from_session_handle == min(s1, s2)


class TestPeerLink:
    @pytest.fixture
    def friends(self, db_session, alice, bob):
        make_friends(db_session, alice.account_id, bob.account_id)

    def test_offer_answer_flow(self, friends, alice_client, bob_client):
        s1 = alice_client.register_session().handle
        s2 = bob_client.register_session().handle
        alice_transport, bob_transport = FakeTransport("alice"), FakeTransport("bob")
        alice_link = PeerLink(alice_client, alice_transport, s1, s2)
        bob_link = PeerLink(bob_client, bob_transport, s2, s1)

        alice_link.initiate()
        assert alice_link.state == PeerLinkState.OFFERING
        assert alice_link.poll_answer() is False

        (incoming,) = bob_client.list_incoming_connection_requests(s2)
        bob_link.accept(incoming)
        assert bob_transport.answered_offer == {"type": "offer", "from": "alice"}

        assert alice_link.poll_answer() is True
        assert alice_transport.accepted_answer == {"type": "answer", "from": "bob"}
        assert alice_link.state == PeerLinkState.CONNECTED
        status = bob_client.check_connection_request_status(alice_link.request_id)
        assert status.status == "completed"

        alice_link.close()
        assert alice_transport.closed is True
        assert alice_link.state == PeerLinkState.CLOSED

    def test_simultaneous_open_converges_on_one_request(self, friends, alice_client, bob_client):
        s1 = alice_client.register_session().handle
        s2 = bob_client.register_session().handle
        links = {
            s1: PeerLink(alice_client, FakeTransport("alice"), s1, s2),
            s2: PeerLink(bob_client, FakeTransport("bob"), s2, s1),
        }
        clients = {s1: alice_client, s2: bob_client}
        for link in links.values():
            link.initiate()
        incoming = {
            handle: clients[handle].list_incoming_connection_requests(handle)[0]
            for handle in links
        }

        for handle, link in links.items():
            link.resolve_conflict(incoming[handle])

        initiator = links[min(s1, s2)]
        responder = links[max(s1, s2)]
        assert responder.state == PeerLinkState.ANSWERING
        assert responder.request_id == initiator.request_id
        assert initiator.poll_answer() is True

        # The yielded request was retired, so nothing is left outstanding.
        for handle, coordinator in clients.items():
            assert coordinator.list_outgoing_connection_requests(handle) == []

"""Tests for the connection request coordinator.

Tests cover:
- The full offer/answer handshake between two friends
- Friend gating: no request (and no row) between non-friends
- Preconditions: owned live from-session, live target, no duplicate in flight
- reply is single-shot: the second reply fails and the first answer survives
- complete is participant-only and idempotent
- Expired 'sent' requests read as not found, before and after the sweep
- Handshake payload validation
"""

import pytest
from sqlalchemy import func, select

from rendezvous.config import get_settings
from rendezvous.db.models import ConnectionRequest
from rendezvous.errors import ApiErrorCode, InvalidRequestError
from rendezvous.services.signaling import sweep_expired_requests, validate_handshake_payload
from tests.factories import create_test_session, make_friends
from tests.helpers import backdate_connection_request, backdate_session

OFFER = {"type": "offer", "sdp": "v=0\r\no=alice 1 1 IN IP4 0.0.0.0\r\n"}
ANSWER = {"type": "answer", "sdp": "v=0\r\no=bob 1 1 IN IP4 0.0.0.0\r\n"}


@pytest.fixture
def friends_with_sessions(db_session, alice, bob):
    """alice and bob are friends; each has one live session."""
    make_friends(db_session, alice.account_id, bob.account_id)
    return (
        create_test_session(db_session, alice.account_id),
        create_test_session(db_session, bob.account_id),
    )


def _open(client, user, from_handle, to_handle, offer=OFFER):
    return client.post(
        "/connection-requests",
        json={"from_session_handle": from_handle, "to_session_handle": to_handle, "offer": offer},
        headers=user.headers,
    )


def _reply(client, user, request_id, answer=ANSWER):
    return client.post(
        f"/connection-requests/{request_id}/reply", json={"answer": answer}, headers=user.headers
    )


def _count_requests(db_session) -> int:
    return db_session.scalar(select(func.count()).select_from(ConnectionRequest))


class TestHandshake:
    def test_full_handshake_between_friends(self, client, alice, bob, friends_with_sessions):
        s1, s2 = friends_with_sessions

        opened = _open(client, alice, s1, s2)
        assert opened.status_code == 201
        request_id = opened.json()["data"]["id"]
        assert opened.json()["data"]["status"] == "sent"

        incoming = client.get(
            f"/sessions/{s2}/connection-requests/incoming", headers=bob.headers
        ).json()["data"]
        assert [r["id"] for r in incoming] == [request_id]
        assert incoming[0]["offer"] == OFFER
        assert incoming[0]["from_username"] == "alice"

        replied = _reply(client, bob, request_id)
        assert replied.status_code == 200
        assert replied.json()["data"]["status"] == "replied"

        status = client.get(f"/connection-requests/{request_id}", headers=alice.headers)
        assert status.json()["data"]["status"] == "replied"
        assert status.json()["data"]["answer"] == ANSWER

        completed = client.post(
            f"/connection-requests/{request_id}/complete", headers=alice.headers
        )
        assert completed.json()["data"]["status"] == "completed"

        for user in (alice, bob):
            final = client.get(f"/connection-requests/{request_id}", headers=user.headers)
            assert final.json()["data"]["status"] == "completed"

    def test_outgoing_listing_tracks_request(self, client, alice, friends_with_sessions):
        s1, s2 = friends_with_sessions
        request_id = _open(client, alice, s1, s2).json()["data"]["id"]

        outgoing = client.get(
            f"/sessions/{s1}/connection-requests/outgoing", headers=alice.headers
        ).json()["data"]

        assert [r["id"] for r in outgoing] == [request_id]

    def test_replied_request_leaves_incoming(self, client, alice, bob, friends_with_sessions):
        s1, s2 = friends_with_sessions
        request_id = _open(client, alice, s1, s2).json()["data"]["id"]
        _reply(client, bob, request_id)

        incoming = client.get(
            f"/sessions/{s2}/connection-requests/incoming", headers=bob.headers
        ).json()["data"]

        assert incoming == []


class TestFriendGating:
    def test_open_toward_non_friend_is_forbidden_and_creates_nothing(
        self, client, db_session, alice, carol
    ):
        s1 = create_test_session(db_session, alice.account_id)
        s3 = create_test_session(db_session, carol.account_id)

        response = _open(client, alice, s1, s3)

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "E_NOT_FRIENDS"
        incoming = client.get(
            f"/sessions/{s3}/connection-requests/incoming", headers=carol.headers
        ).json()["data"]
        assert incoming == []
        assert _count_requests(db_session) == 0

    def test_unfriended_pair_can_no_longer_open(self, client, alice, friends_with_sessions):
        s1, s2 = friends_with_sessions
        client.delete("/friends/bob", headers=alice.headers)

        response = _open(client, alice, s1, s2)

        assert response.json()["error"]["code"] == "E_NOT_FRIENDS"

    def test_open_between_own_sessions_is_forbidden(
        self, client, db_session, alice
    ):
        laptop = create_test_session(db_session, alice.account_id)
        phone = create_test_session(db_session, alice.account_id)

        # An account is not its own friend.
        response = _open(client, alice, laptop, phone)

        assert response.status_code == 403


class TestOpenPreconditions:
    def test_from_session_must_be_owned(self, client, bob, carol, friends_with_sessions):
        s1, s2 = friends_with_sessions

        response = _open(client, carol, s1, s2)

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "E_UNAUTHORIZED"

    @pytest.mark.parametrize("offer", [None, {"sdp": "x" * 70000}])
    def test_foreign_session_checked_before_payload(
        self, client, carol, friends_with_sessions, offer
    ):
        s1, s2 = friends_with_sessions

        response = _open(client, carol, s1, s2, offer=offer)

        assert response.json()["error"]["code"] == "E_UNAUTHORIZED"

    def test_foreign_session_checked_before_same_handle(
        self, client, carol, friends_with_sessions
    ):
        s1, _ = friends_with_sessions

        response = _open(client, carol, s1, s1)

        assert response.json()["error"]["code"] == "E_UNAUTHORIZED"

    def test_from_session_must_exist(self, client, alice, friends_with_sessions):
        _, s2 = friends_with_sessions

        response = _open(client, alice, "missing", s2)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_SESSION_NOT_FOUND"

    def test_stale_from_session_is_not_found(
        self, client, db_session, alice, friends_with_sessions
    ):
        s1, s2 = friends_with_sessions
        backdate_session(db_session, s1, get_settings().session_staleness_seconds + 5)

        response = _open(client, alice, s1, s2)

        assert response.json()["error"]["code"] == "E_SESSION_NOT_FOUND"

    def test_stale_target_is_unavailable(self, client, db_session, alice, friends_with_sessions):
        s1, s2 = friends_with_sessions
        backdate_session(db_session, s2, get_settings().session_staleness_seconds + 5)

        response = _open(client, alice, s1, s2)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "E_TARGET_UNAVAILABLE"

    def test_unknown_target_is_unavailable(self, client, alice, friends_with_sessions):
        s1, _ = friends_with_sessions

        response = _open(client, alice, s1, "no-such-handle")

        assert response.json()["error"]["code"] == "E_TARGET_UNAVAILABLE"

    def test_same_handle_rejected(self, client, alice, friends_with_sessions):
        s1, _ = friends_with_sessions

        response = _open(client, alice, s1, s1)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_ARGUMENT"

    def test_duplicate_open_rejected(self, client, db_session, alice, friends_with_sessions):
        s1, s2 = friends_with_sessions
        _open(client, alice, s1, s2)

        response = _open(client, alice, s1, s2)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "E_DUPLICATE_REQUEST"
        assert _count_requests(db_session) == 1

    def test_duplicate_while_replied(self, client, alice, bob, friends_with_sessions):
        s1, s2 = friends_with_sessions
        request_id = _open(client, alice, s1, s2).json()["data"]["id"]
        _reply(client, bob, request_id)

        assert _open(client, alice, s1, s2).json()["error"]["code"] == "E_DUPLICATE_REQUEST"

    def test_reopen_after_completion(self, client, alice, friends_with_sessions):
        s1, s2 = friends_with_sessions
        request_id = _open(client, alice, s1, s2).json()["data"]["id"]
        client.post(f"/connection-requests/{request_id}/complete", headers=alice.headers)

        assert _open(client, alice, s1, s2).status_code == 201

    def test_opposite_direction_is_not_a_duplicate(
        self, client, alice, bob, friends_with_sessions
    ):
        s1, s2 = friends_with_sessions
        _open(client, alice, s1, s2)

        response = _open(client, bob, s2, s1, offer={"type": "offer", "sdp": "bob"})

        assert response.status_code == 201

    def test_expired_request_does_not_block_new_open(
        self, client, db_session, alice, friends_with_sessions
    ):
        s1, s2 = friends_with_sessions
        old_id = _open(client, alice, s1, s2).json()["data"]["id"]
        backdate_connection_request(
            db_session, old_id, get_settings().connection_request_expiry_seconds + 5
        )

        response = _open(client, alice, s1, s2)

        assert response.status_code == 201
        assert response.json()["data"]["id"] != old_id


class TestReply:
    def test_second_reply_fails_and_keeps_first_answer(
        self, client, alice, bob, friends_with_sessions
    ):
        s1, s2 = friends_with_sessions
        request_id = _open(client, alice, s1, s2).json()["data"]["id"]
        _reply(client, bob, request_id)

        second = _reply(client, bob, request_id, answer={"type": "answer", "sdp": "other"})

        assert second.status_code == 409
        assert second.json()["error"]["code"] == "E_INVALID_STATE"
        status = client.get(f"/connection-requests/{request_id}", headers=alice.headers)
        assert status.json()["data"]["answer"] == ANSWER

    def test_only_target_may_reply(self, client, alice, carol, friends_with_sessions):
        s1, s2 = friends_with_sessions
        request_id = _open(client, alice, s1, s2).json()["data"]["id"]

        for user in (alice, carol):
            response = _reply(client, user, request_id)
            assert response.status_code == 403
            assert response.json()["error"]["code"] == "E_UNAUTHORIZED"

    def test_reply_to_completed_request_fails(self, client, alice, bob, friends_with_sessions):
        s1, s2 = friends_with_sessions
        request_id = _open(client, alice, s1, s2).json()["data"]["id"]
        client.post(f"/connection-requests/{request_id}/complete", headers=alice.headers)

        assert _reply(client, bob, request_id).json()["error"]["code"] == "E_INVALID_STATE"

    def test_reply_to_unknown_request(self, client, bob):
        response = _reply(client, bob, "00000000-0000-0000-0000-000000000000")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_CONNECTION_REQUEST_NOT_FOUND"


class TestComplete:
    def test_either_participant_may_complete(self, client, alice, bob, friends_with_sessions):
        s1, s2 = friends_with_sessions
        request_id = _open(client, alice, s1, s2).json()["data"]["id"]
        _reply(client, bob, request_id)

        response = client.post(f"/connection-requests/{request_id}/complete", headers=bob.headers)

        assert response.json()["data"]["status"] == "completed"

    def test_complete_is_idempotent(self, client, alice, bob, friends_with_sessions):
        s1, s2 = friends_with_sessions
        request_id = _open(client, alice, s1, s2).json()["data"]["id"]

        first = client.post(f"/connection-requests/{request_id}/complete", headers=alice.headers)
        second = client.post(f"/connection-requests/{request_id}/complete", headers=bob.headers)

        assert first.status_code == second.status_code == 200
        assert second.json()["data"]["status"] == "completed"

    def test_non_participant_cannot_complete_or_read(
        self, client, alice, carol, friends_with_sessions
    ):
        s1, s2 = friends_with_sessions
        request_id = _open(client, alice, s1, s2).json()["data"]["id"]

        complete = client.post(f"/connection-requests/{request_id}/complete", headers=carol.headers)
        read = client.get(f"/connection-requests/{request_id}", headers=carol.headers)

        assert complete.status_code == 403
        assert read.status_code == 403


class TestExpiry:
    def test_expired_sent_request_reads_as_not_found(
        self, client, db_session, alice, bob, friends_with_sessions
    ):
        s1, s2 = friends_with_sessions
        request_id = _open(client, alice, s1, s2).json()["data"]["id"]
        backdate_connection_request(
            db_session, request_id, get_settings().connection_request_expiry_seconds + 5
        )

        before_sweep = client.get(f"/connection-requests/{request_id}", headers=alice.headers)
        assert before_sweep.status_code == 404
        assert _reply(client, bob, request_id).status_code == 404
        incoming = client.get(
            f"/sessions/{s2}/connection-requests/incoming", headers=bob.headers
        ).json()["data"]
        assert incoming == []

        expired, _ = sweep_expired_requests(db_session)
        assert expired == 1

        after_sweep = client.get(f"/connection-requests/{request_id}", headers=alice.headers)
        assert after_sweep.status_code == 404
        assert after_sweep.json()["error"]["code"] == "E_CONNECTION_REQUEST_NOT_FOUND"

    def test_replied_request_does_not_expire(
        self, client, db_session, alice, bob, friends_with_sessions
    ):
        s1, s2 = friends_with_sessions
        request_id = _open(client, alice, s1, s2).json()["data"]["id"]
        _reply(client, bob, request_id)
        backdate_connection_request(
            db_session, request_id, get_settings().connection_request_expiry_seconds + 5
        )

        response = client.get(f"/connection-requests/{request_id}", headers=alice.headers)

        assert response.json()["data"]["status"] == "replied"


class TestListingAuthorization:
    @pytest.mark.parametrize("direction", ["incoming", "outgoing"])
    def test_foreign_session_listing_unauthorized(
        self, client, carol, friends_with_sessions, direction
    ):
        s1, _ = friends_with_sessions

        response = client.get(
            f"/sessions/{s1}/connection-requests/{direction}", headers=carol.headers
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "E_UNAUTHORIZED"

    def test_unknown_session_listing_unauthorized(self, client, alice):
        response = client.get("/sessions/nope/connection-requests/incoming", headers=alice.headers)

        assert response.status_code == 403


class TestPayloadValidation:
    @pytest.mark.parametrize("payload", [None, "", {}])
    def test_empty_offer_rejected(self, client, alice, friends_with_sessions, payload):
        s1, s2 = friends_with_sessions

        response = _open(client, alice, s1, s2, offer=payload)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_ARGUMENT"

    def test_oversized_payload_rejected(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "max_handshake_payload_bytes", 16)

        with pytest.raises(InvalidRequestError) as exc_info:
            validate_handshake_payload({"sdp": "x" * 64}, "offer")

        assert exc_info.value.code == ApiErrorCode.E_PAYLOAD_TOO_LARGE

    def test_opaque_payloads_round_trip(self, client, alice, bob, friends_with_sessions):
        s1, s2 = friends_with_sessions
        offer = "opaque-string-offer"

        request_id = _open(client, alice, s1, s2, offer=offer).json()["data"]["id"]
        data = client.get(f"/connection-requests/{request_id}", headers=bob.headers).json()["data"]

        assert data["offer"] == offer

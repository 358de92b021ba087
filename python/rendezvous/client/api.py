"""HTTP client for the rendezvous coordinator.

One method per coordinator operation. Responses are unwrapped from the
{"data": ...} envelope and parsed into the same Pydantic models the server
emits; error envelopes become CoordinatorError carrying the error code, so
callers can tell "not friends" from "already in progress" from "session gone".

Rules:
- No retries here; retry and backoff policy belongs to the caller
- Credentials and handshake payloads are never logged
"""

from typing import Any
from uuid import UUID

import httpx

from rendezvous.schemas.accounts import MeOut
from rendezvous.schemas.friends import FriendOut, FriendRequestOut
from rendezvous.schemas.liveness import LivenessPingOut
from rendezvous.schemas.sessions import (
    AccountPresenceOut,
    HeartbeatOut,
    RegisterSessionOut,
    SessionOut,
)
from rendezvous.schemas.signaling import ConnectionRequestOut

DEFAULT_TIMEOUT_SECONDS = 10.0

# Client-side code for failures that never reached the coordinator
E_UNREACHABLE = "E_UNREACHABLE"


class CoordinatorError(Exception):
    """A coordinator call failed.

    Attributes:
        code: Error code from the envelope (E_...), or E_UNREACHABLE on transport failure.
        message: Human-readable message.
        status_code: HTTP status, None if no response was received.
    """

    def __init__(self, code: str, message: str, status_code: int | None = None):
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(f"{code}: {message}")


class CoordinatorClient:
    """Synchronous coordinator client.

    Args:
        base_url: Coordinator base URL. Ignored when http_client is given.
        credential: Bearer credential for the account this client acts as.
        http_client: Optional pre-built httpx.Client (shared pool, or a test client).
    """

    def __init__(
        self,
        base_url: str | None = None,
        credential: str | None = None,
        *,
        http_client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        if http_client is None:
            if base_url is None:
                raise ValueError("base_url is required when http_client is not provided")
            http_client = httpx.Client(base_url=base_url, timeout=httpx.Timeout(timeout))
            self._owns_http_client = True
        else:
            self._owns_http_client = False
        self._http = http_client
        self._credential = credential

    def close(self) -> None:
        if self._owns_http_client:
            self._http.close()

    def __enter__(self) -> "CoordinatorClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _request(self, method: str, path: str, json: Any = None) -> Any:
        headers = {}
        if self._credential:
            headers["Authorization"] = f"Bearer {self._credential}"

        try:
            response = self._http.request(method, path, json=json, headers=headers)
        except httpx.TransportError as e:
            raise CoordinatorError(E_UNREACHABLE, str(e) or type(e).__name__) from e

        if response.status_code == 204:
            return None

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            error = body.get("error") if isinstance(body, dict) else None
            if not isinstance(error, dict):
                raise CoordinatorError(
                    "E_INTERNAL", f"Unexpected response ({response.status_code})", response.status_code
                )
            raise CoordinatorError(
                error.get("code", "E_INTERNAL"),
                error.get("message", ""),
                response.status_code,
            )

        if not isinstance(body, dict) or "data" not in body:
            raise CoordinatorError(
                "E_INTERNAL", "Response is missing the data envelope", response.status_code
            )
        return body["data"]

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    def me(self) -> MeOut:
        return MeOut.model_validate(self._request("GET", "/me"))

    # -------------------------------------------------------------------------
    # Session registry
    # -------------------------------------------------------------------------

    def register_session(self) -> RegisterSessionOut:
        return RegisterSessionOut.model_validate(self._request("POST", "/sessions"))

    def heartbeat(self, handle: str) -> HeartbeatOut:
        return HeartbeatOut.model_validate(self._request("POST", f"/sessions/{handle}/heartbeat"))

    def deactivate_session(self, handle: str) -> None:
        self._request("DELETE", f"/sessions/{handle}")

    def list_live_sessions(self) -> list[SessionOut]:
        return [SessionOut.model_validate(s) for s in self._request("GET", "/sessions")]

    def list_other_live_sessions(self, username: str) -> list[SessionOut]:
        data = self._request("GET", f"/accounts/{username}/sessions")
        return [SessionOut.model_validate(s) for s in data]

    def list_active_accounts(self) -> list[AccountPresenceOut]:
        return [AccountPresenceOut.model_validate(a) for a in self._request("GET", "/presence")]

    # -------------------------------------------------------------------------
    # Friend graph
    # -------------------------------------------------------------------------

    def send_friend_request(self, to_username: str) -> FriendRequestOut:
        data = self._request("POST", "/friend-requests", json={"to_username": to_username})
        return FriendRequestOut.model_validate(data)

    def respond_friend_request(self, request_id: UUID, decision: str) -> FriendRequestOut:
        data = self._request(
            "POST", f"/friend-requests/{request_id}/respond", json={"decision": decision}
        )
        return FriendRequestOut.model_validate(data)

    def list_incoming_friend_requests(self) -> list[FriendRequestOut]:
        data = self._request("GET", "/friend-requests/incoming")
        return [FriendRequestOut.model_validate(r) for r in data]

    def list_outgoing_friend_requests(self) -> list[FriendRequestOut]:
        data = self._request("GET", "/friend-requests/outgoing")
        return [FriendRequestOut.model_validate(r) for r in data]

    def pending_friend_request_count(self) -> int:
        return self._request("GET", "/friend-requests/count")["count"]

    def list_friends(self) -> list[FriendOut]:
        return [FriendOut.model_validate(f) for f in self._request("GET", "/friends")]

    def unfriend(self, username: str) -> None:
        self._request("DELETE", f"/friends/{username}")

    # -------------------------------------------------------------------------
    # Connection requests
    # -------------------------------------------------------------------------

    def open_connection_request(
        self, from_session_handle: str, to_session_handle: str, offer: Any
    ) -> ConnectionRequestOut:
        data = self._request(
            "POST",
            "/connection-requests",
            json={
                "from_session_handle": from_session_handle,
                "to_session_handle": to_session_handle,
                "offer": offer,
            },
        )
        return ConnectionRequestOut.model_validate(data)

    def reply_connection_request(self, request_id: UUID, answer: Any) -> ConnectionRequestOut:
        data = self._request(
            "POST", f"/connection-requests/{request_id}/reply", json={"answer": answer}
        )
        return ConnectionRequestOut.model_validate(data)

    def list_incoming_connection_requests(self, handle: str) -> list[ConnectionRequestOut]:
        data = self._request("GET", f"/sessions/{handle}/connection-requests/incoming")
        return [ConnectionRequestOut.model_validate(r) for r in data]

    def list_outgoing_connection_requests(self, handle: str) -> list[ConnectionRequestOut]:
        data = self._request("GET", f"/sessions/{handle}/connection-requests/outgoing")
        return [ConnectionRequestOut.model_validate(r) for r in data]

    def check_connection_request_status(self, request_id: UUID) -> ConnectionRequestOut:
        data = self._request("GET", f"/connection-requests/{request_id}")
        return ConnectionRequestOut.model_validate(data)

    def complete_connection_request(self, request_id: UUID) -> ConnectionRequestOut:
        data = self._request("POST", f"/connection-requests/{request_id}/complete")
        return ConnectionRequestOut.model_validate(data)

    # -------------------------------------------------------------------------
    # Liveness pings
    # -------------------------------------------------------------------------

    def send_liveness_ping(self, from_session_handle: str, to_session_handle: str) -> LivenessPingOut:
        data = self._request(
            "POST",
            "/liveness-pings",
            json={
                "from_session_handle": from_session_handle,
                "to_session_handle": to_session_handle,
            },
        )
        return LivenessPingOut.model_validate(data)

    def respond_liveness_ping(self, ping_id: UUID) -> None:
        self._request("POST", f"/liveness-pings/{ping_id}/respond")

    def poll_liveness_ping(self, ping_id: UUID) -> str | None:
        """Return 'sent', 'responded', or None once the ping is gone."""
        return self._request("GET", f"/liveness-pings/{ping_id}")["status"]

    def list_incoming_pings(self, handle: str) -> list[LivenessPingOut]:
        data = self._request("GET", f"/sessions/{handle}/liveness-pings/incoming")
        return [LivenessPingOut.model_validate(p) for p in data]

    def dismiss_liveness_ping(self, ping_id: UUID) -> None:
        self._request("DELETE", f"/liveness-pings/{ping_id}")

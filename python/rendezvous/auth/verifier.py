"""Bearer credential verification.

Provides:
- CredentialVerifier: Protocol for credential verification
- VerifiedIdentity: The account a credential resolves to
- DatabaseCredentialVerifier: Verifier backed by the identity store

Credentials are opaque random tokens. They are compared by SHA-256 digest, so
the plaintext never touches the database and never appears in logs.
"""

from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from rendezvous.errors import ApiError, ApiErrorCode
from rendezvous.logging import get_logger
from rendezvous.services.accounts import resolve_credential

logger = get_logger(__name__)


@dataclass(frozen=True)
class VerifiedIdentity:
    account_id: UUID
    username: str


class CredentialVerifier(Protocol):
    """Protocol for credential verification."""

    def verify(self, credential: str) -> VerifiedIdentity:
        """Resolve a bearer credential to an account.

        Raises:
            ApiError(E_UNAUTHENTICATED): Credential is unknown or malformed.
        """
        ...


class DatabaseCredentialVerifier:
    """Production verifier: looks the credential digest up in the accounts table.

    Opens a short-lived session per verification so that the auth middleware
    never shares a session with the route handler.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def verify(self, credential: str) -> VerifiedIdentity:
        if not credential:
            raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")

        db = self._session_factory()
        try:
            account = resolve_credential(db, credential)
            if account is None:
                logger.info("auth_failure", reason="unknown_credential")
                raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid credential")
            return VerifiedIdentity(account_id=account.id, username=account.username)
        finally:
            db.close()

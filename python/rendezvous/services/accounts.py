"""Identity store service.

Accounts map a unique display name to a durable opaque bearer credential.
Only the SHA-256 digest of the credential is persisted, so a credential is
shown exactly once: in the return value of create_account.
"""

import hashlib
import re
import secrets
import string
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rendezvous.db.models import Account
from rendezvous.db.session import transaction
from rendezvous.errors import (
    ApiErrorCode,
    ConflictError,
    InvalidRequestError,
    NotFoundError,
)
from rendezvous.logging import get_logger

logger = get_logger(__name__)

TOKEN_ALPHABET = string.ascii_letters + string.digits
CREDENTIAL_LENGTH = 32
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,32}$")


def generate_token(length: int) -> str:
    """Generate an unguessable alphanumeric token.

    32 characters over 62 symbols is ~190 bits, well past collision concerns.
    """
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def hash_credential(credential: str) -> str:
    return hashlib.sha256(credential.encode("utf-8")).hexdigest()


def normalize_username(username: str) -> str:
    """Trim and validate a username.

    Raises:
        InvalidRequestError(E_USERNAME_INVALID): Not 1-32 chars of [A-Za-z0-9_.-].
    """
    username = username.strip()
    if not USERNAME_PATTERN.match(username):
        raise InvalidRequestError(
            ApiErrorCode.E_USERNAME_INVALID,
            "Username must be 1-32 characters of letters, digits, '_', '.' or '-'",
        )
    return username


def create_account(db: Session, username: str) -> tuple[Account, str]:
    """Create an account and mint its bearer credential.

    Returns:
        (account, credential). The plaintext credential is not recoverable later.

    Raises:
        InvalidRequestError: Username is malformed.
        ConflictError(E_USERNAME_TAKEN): Username already exists.
    """
    username = normalize_username(username)
    credential = generate_token(CREDENTIAL_LENGTH)

    account = Account(
        username=username,
        credential_hash=hash_credential(credential),
        created_at=datetime.now(UTC),
    )
    try:
        with transaction(db):
            db.add(account)
            db.flush()
    except IntegrityError:
        raise ConflictError(ApiErrorCode.E_USERNAME_TAKEN, "Username already taken") from None

    logger.info("account_created", account_id=str(account.id))
    return account, credential


def resolve_credential(db: Session, credential: str) -> Account | None:
    """Look up the account owning a bearer credential."""
    if not credential:
        return None
    return db.scalar(
        select(Account).where(Account.credential_hash == hash_credential(credential))
    )


def get_account(db: Session, account_id: UUID) -> Account | None:
    return db.get(Account, account_id)


def get_account_by_username(db: Session, username: str) -> Account | None:
    return db.scalar(select(Account).where(Account.username == username.strip()))


def require_account_by_username(db: Session, username: str) -> Account:
    """Resolve a username or raise NotFoundError(E_ACCOUNT_NOT_FOUND)."""
    account = get_account_by_username(db, username)
    if account is None:
        raise NotFoundError(ApiErrorCode.E_ACCOUNT_NOT_FOUND, "Account not found")
    return account

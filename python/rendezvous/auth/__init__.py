"""Authentication and authorization module.

This module provides:
- Credential verification (identity store backed)
- Auth middleware for FastAPI
- Request state with viewer identity
- Ownership and liveness guards shared by the services
"""

from rendezvous.auth.middleware import AuthMiddleware, Viewer, get_viewer
from rendezvous.auth.verifier import (
    CredentialVerifier,
    DatabaseCredentialVerifier,
    VerifiedIdentity,
)

__all__ = [
    "AuthMiddleware",
    "Viewer",
    "get_viewer",
    "CredentialVerifier",
    "DatabaseCredentialVerifier",
    "VerifiedIdentity",
]

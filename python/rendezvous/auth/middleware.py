"""Authentication middleware for FastAPI.

Provides:
- AuthMiddleware: Global middleware for bearer credential + internal header verification
- get_viewer: Dependency for accessing authenticated viewer identity
"""

import hmac
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from rendezvous.auth.verifier import CredentialVerifier
from rendezvous.errors import ApiError, ApiErrorCode
from rendezvous.logging import get_logger, set_request_context
from rendezvous.responses import error_response

logger = get_logger(__name__)

# Header names
AUTHORIZATION_HEADER = "authorization"
INTERNAL_HEADER = "x-rendezvous-internal"

# Paths that don't require authentication
PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}
INTERNAL_PATH_PREFIX = "/internal/"


@dataclass
class Viewer:
    """Authenticated viewer identity.

    Attributes:
        account_id: The account the bearer credential resolved to.
        username: That account's display name.
    """

    account_id: UUID
    username: str


class AuthMiddleware(BaseHTTPMiddleware):
    """Authentication middleware for FastAPI.

    Enforces:
    - Bearer credential authentication on all non-public, non-internal paths
    - Internal header verification on /internal/* paths (operator routes, no viewer)

    Order of checks:
    1. Skip if public path
    2. If internal path: verify internal header and stop
    3. Extract and parse bearer credential
    4. Verify credential via CredentialVerifier
    5. Attach Viewer to request state
    """

    def __init__(
        self,
        app: ASGIApp,
        verifier: CredentialVerifier,
        internal_secret: str | None = None,
    ):
        """Initialize the auth middleware.

        Args:
            app: The ASGI application.
            verifier: CredentialVerifier implementation.
            internal_secret: Expected X-Rendezvous-Internal value. If None,
                internal routes are unreachable.
        """
        super().__init__(app)
        self.verifier = verifier
        self.internal_secret = internal_secret

    async def dispatch(self, request: Request, call_next) -> JSONResponse:
        """Process the request through auth checks."""
        path = request.url.path
        if path in PUBLIC_PATHS:
            return await call_next(request)

        if path.startswith(INTERNAL_PATH_PREFIX):
            error_response_obj = self._verify_internal_header(request)
            if error_response_obj:
                return error_response_obj
            return await call_next(request)

        credential, error_response_obj = self._extract_bearer_credential(request)
        if error_response_obj:
            return error_response_obj

        # Verification hits the database; keep it off the event loop.
        try:
            identity = await run_in_threadpool(self.verifier.verify, credential)
        except ApiError as e:
            return self._error_json_response(e.code, e.message, e.status_code)

        request.state.viewer = Viewer(account_id=identity.account_id, username=identity.username)
        set_request_context(
            getattr(request.state, "request_id", None), account_id=str(identity.account_id)
        )

        return await call_next(request)

    def _verify_internal_header(self, request: Request) -> JSONResponse | None:
        """Verify the internal header using constant-time comparison.

        Returns:
            JSONResponse if verification fails, None if successful.
        """
        header_value = request.headers.get(INTERNAL_HEADER)

        if header_value is None or not self.internal_secret:
            logger.warning(
                "auth_failure",
                reason="internal_header_missing" if header_value is None else "internal_disabled",
                request_path=request.url.path,
            )
            return self._error_json_response(
                ApiErrorCode.E_INTERNAL_ONLY,
                "Internal API access required",
                403,
            )

        if not hmac.compare_digest(header_value.encode(), self.internal_secret.encode()):
            logger.warning(
                "auth_failure",
                reason="internal_header_mismatch",
                request_path=request.url.path,
            )
            return self._error_json_response(
                ApiErrorCode.E_INTERNAL_ONLY,
                "Internal API access required",
                403,
            )

        return None

    def _extract_bearer_credential(self, request: Request) -> tuple[str, JSONResponse | None]:
        """Extract bearer credential from Authorization header.

        Returns:
            Tuple of (credential, error_response). Credential is empty string if error.
        """
        auth_header = request.headers.get(AUTHORIZATION_HEADER)

        if not auth_header:
            logger.warning(
                "auth_failure", reason="missing_header", request_path=request.url.path
            )
            return "", self._error_json_response(
                ApiErrorCode.E_UNAUTHENTICATED,
                "Authentication required",
                401,
            )

        # Bearer prefix is case-insensitive
        if not auth_header.lower().startswith("bearer "):
            logger.warning(
                "auth_failure", reason="invalid_header_format", request_path=request.url.path
            )
            return "", self._error_json_response(
                ApiErrorCode.E_UNAUTHENTICATED,
                "Invalid authorization header format",
                401,
            )

        credential = auth_header[7:].strip()
        if not credential:
            logger.warning(
                "auth_failure", reason="invalid_header_format", request_path=request.url.path
            )
            return "", self._error_json_response(
                ApiErrorCode.E_UNAUTHENTICATED,
                "Invalid authorization header format",
                401,
            )

        return credential, None

    def _error_json_response(
        self, code: ApiErrorCode, message: str, status_code: int
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content=error_response(code, message),
        )


def get_viewer(request: Request) -> Viewer:
    """FastAPI dependency to get the authenticated viewer.

    Raises:
        ApiError: If viewer is not set (middleware didn't run or path is public).
    """
    viewer = getattr(request.state, "viewer", None)
    if viewer is None:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
    return viewer


# Type alias for dependency injection
ViewerDep = Depends(get_viewer)

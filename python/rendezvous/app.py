"""FastAPI application creation and configuration.

This module creates and configures the FastAPI application instance.
It registers exception handlers, auth middleware, request-id middleware, and routes.

Credential Verification:
- Bearer credentials are opaque tokens resolved against the identity store
  (DatabaseCredentialVerifier); tests inject a verifier bound to their engine

Middleware Ordering (Critical):
- Middleware runs in reverse order of registration
- RequestIDMiddleware is added LAST so it runs FIRST (outermost)
- This ensures all requests (including auth failures) get X-Request-ID

Actual execution order per request:
1. RequestIDMiddleware (sets request_id, starts timer)
2. AuthMiddleware (verifies credential, sets viewer)
3. Route handler
4. AuthMiddleware (returns response)
5. RequestIDMiddleware (logs, sets response header)

Redis Lifecycle:
- A sync Redis client is created at startup when REDIS_URL is set
- It backs the per-account rate limiter; without it limits fail open
"""

import json
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from rendezvous.api.routes import create_api_router
from rendezvous.auth.middleware import AuthMiddleware
from rendezvous.auth.verifier import CredentialVerifier, DatabaseCredentialVerifier
from rendezvous.config import get_settings
from rendezvous.db.session import get_session_factory
from rendezvous.errors import ApiError, ApiErrorCode
from rendezvous.logging import configure_logging, get_logger
from rendezvous.middleware.request_id import RequestIDMiddleware
from rendezvous.responses import (
    api_error_handler,
    error_response,
    http_exception_handler,
    unhandled_exception_handler,
)
from rendezvous.services.rate_limit import RateLimiter, set_rate_limiter

logger = get_logger(__name__)


def create_credential_verifier() -> CredentialVerifier:
    """Create the production verifier bound to the default session factory."""
    return DatabaseCredentialVerifier(get_session_factory())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle resources.

    - Connects to Redis (optional) and installs the rate limiter
    - Closes Redis on shutdown
    """
    settings = get_settings()

    redis_client = None
    if settings.redis_url:
        try:
            redis_client = redis.Redis.from_url(
                settings.redis_url, decode_responses=True, socket_timeout=5
            )
            redis_client.ping()
            logger.info("redis_client_initialized")
        except redis.RedisError as e:
            logger.warning("redis_client_init_failed", error=str(e))
            redis_client = None

    app.state.redis_client = redis_client
    set_rate_limiter(RateLimiter(redis_client=redis_client, rpm_limit=settings.rate_limit_rpm))

    yield

    if redis_client is not None:
        try:
            redis_client.close()
        except redis.RedisError as e:
            logger.warning("redis_client_close_failed", error=str(e))
    set_rate_limiter(None)


def create_app(
    skip_auth_middleware: bool = False,
    credential_verifier: CredentialVerifier | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        skip_auth_middleware: If True, skip adding auth middleware (for testing).
        credential_verifier: Optional custom verifier (for testing).

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()
    configure_logging(json_format=settings.json_logs)

    app = FastAPI(
        title="Rendezvous API",
        description="Rendezvous and signaling coordinator for direct peer connections",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Register exception handlers
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request validation errors (including malformed JSON)."""
        return JSONResponse(
            status_code=400,
            content=error_response(ApiErrorCode.E_INVALID_REQUEST, "Invalid request body"),
        )

    @app.middleware("http")
    async def catch_json_decode_errors(request: Request, call_next):
        """Reject malformed JSON bodies before they reach route handlers."""
        if request.method in ("POST", "PUT", "PATCH"):
            content_type = request.headers.get("content-type", "")
            if "application/json" in content_type:
                body = await request.body()
                if body:
                    try:
                        json.loads(body)
                    except json.JSONDecodeError:
                        return JSONResponse(
                            status_code=400,
                            content=error_response(
                                ApiErrorCode.E_INVALID_REQUEST, "Malformed JSON body"
                            ),
                        )
        return await call_next(request)

    app.include_router(create_api_router())

    if not skip_auth_middleware:
        app.add_middleware(
            AuthMiddleware,
            verifier=credential_verifier or create_credential_verifier(),
            internal_secret=settings.rendezvous_internal_secret,
        )
        logger.info(
            "auth_middleware_enabled",
            env=settings.rendezvous_env.value,
            internal_routes_enabled=bool(settings.rendezvous_internal_secret),
        )

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware to the app.

    Call this AFTER all other middleware is added, so it runs FIRST and every
    response (auth failures included) carries X-Request-ID.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)

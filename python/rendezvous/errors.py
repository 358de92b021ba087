"""API error definitions.

All API errors are defined here with their corresponding HTTP status codes.
The error code, not just the status, is part of the client contract: a client
must be able to tell "not friends" from "already in progress" from "session gone".
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API.

    Format: E_CATEGORY_NAME
    """

    # Authentication errors (401)
    E_UNAUTHENTICATED = "E_UNAUTHENTICATED"

    # Authorization errors (403)
    E_UNAUTHORIZED = "E_UNAUTHORIZED"  # credential does not own the resource
    E_NOT_FRIENDS = "E_NOT_FRIENDS"  # friend-gated signaling refused
    E_INTERNAL_ONLY = "E_INTERNAL_ONLY"

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_ACCOUNT_NOT_FOUND = "E_ACCOUNT_NOT_FOUND"
    E_SESSION_NOT_FOUND = "E_SESSION_NOT_FOUND"
    E_FRIEND_REQUEST_NOT_FOUND = "E_FRIEND_REQUEST_NOT_FOUND"
    E_CONNECTION_REQUEST_NOT_FOUND = "E_CONNECTION_REQUEST_NOT_FOUND"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_ARGUMENT = "E_INVALID_ARGUMENT"
    E_USERNAME_INVALID = "E_USERNAME_INVALID"
    E_PAYLOAD_TOO_LARGE = "E_PAYLOAD_TOO_LARGE"

    # State machine / idempotency guards (409)
    E_INVALID_STATE = "E_INVALID_STATE"
    E_DUPLICATE_REQUEST = "E_DUPLICATE_REQUEST"
    E_ALREADY_FRIENDS = "E_ALREADY_FRIENDS"
    E_REQUEST_EXISTS = "E_REQUEST_EXISTS"
    E_TARGET_UNAVAILABLE = "E_TARGET_UNAVAILABLE"
    E_USERNAME_TAKEN = "E_USERNAME_TAKEN"

    # Throttling (429)
    E_RATE_LIMITED = "E_RATE_LIMITED"

    # Server errors (500)
    E_INTERNAL = "E_INTERNAL"


ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_UNAUTHENTICATED: 401,
    ApiErrorCode.E_UNAUTHORIZED: 403,
    ApiErrorCode.E_NOT_FRIENDS: 403,
    ApiErrorCode.E_INTERNAL_ONLY: 403,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_ACCOUNT_NOT_FOUND: 404,
    ApiErrorCode.E_SESSION_NOT_FOUND: 404,
    ApiErrorCode.E_FRIEND_REQUEST_NOT_FOUND: 404,
    ApiErrorCode.E_CONNECTION_REQUEST_NOT_FOUND: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_INVALID_ARGUMENT: 400,
    ApiErrorCode.E_USERNAME_INVALID: 400,
    ApiErrorCode.E_PAYLOAD_TOO_LARGE: 400,
    ApiErrorCode.E_INVALID_STATE: 409,
    ApiErrorCode.E_DUPLICATE_REQUEST: 409,
    ApiErrorCode.E_ALREADY_FRIENDS: 409,
    ApiErrorCode.E_REQUEST_EXISTS: 409,
    ApiErrorCode.E_TARGET_UNAVAILABLE: 409,
    ApiErrorCode.E_USERNAME_TAKEN: 409,
    ApiErrorCode.E_RATE_LIMITED: 429,
    ApiErrorCode.E_INTERNAL: 500,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class NotFoundError(ApiError):
    """Resource not found error (includes logically expired resources)."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class UnauthorizedError(ApiError):
    """The authenticated account does not own the resource it acted on."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_UNAUTHORIZED, message: str = "Not authorized"
    ):
        super().__init__(code, message)


class ForbiddenError(ApiError):
    """An authorization predicate evaluated false."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FRIENDS, message: str = "Forbidden"):
        super().__init__(code, message)


class ConflictError(ApiError):
    """State machine or idempotency-guard rejection."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_INVALID_STATE, message: str = "Conflict"):
        super().__init__(code, message)


class InvalidRequestError(ApiError):
    """Invalid request error."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)


class RateLimitedError(ApiError):
    """Caller exceeded a per-account rate limit."""

    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(ApiErrorCode.E_RATE_LIMITED, message)

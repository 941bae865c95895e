"""
auth/errors.py -- Error taxonomy for the identity core.

Services raise these; api/main.py owns the single exception handler that turns
them into the {"error": {"code", "message"}} envelope. Routes never build
error responses for these cases by hand.

Messages are written for end users. Credential and token failures share one
generic message each so a caller cannot tell which check failed.

Layer rule: stdlib only.
"""

from __future__ import annotations

from typing import Any

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_REFRESH_TOKEN = "Invalid refresh token"


class AuthServiceError(Exception):
    """Base class. Subclasses fix status_code and a default code."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, *, code: str | None = None, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        # Extra top-level fields merged into the response body.
        self.extra: dict[str, Any] = extra


class ValidationError(AuthServiceError):
    status_code = 400
    code = "validation_error"


class AuthenticationError(AuthServiceError):
    status_code = 401
    code = "unauthorized"


class AuthorizationError(AuthServiceError):
    status_code = 403
    code = "forbidden"


class NeedsVerificationError(AuthorizationError):
    """Correct credentials, but the email address is not verified yet."""

    code = "needs_verification"

    def __init__(self, email: str) -> None:
        super().__init__(
            "Please verify your email before logging in",
            needs_verification=True,
            email=email,
        )


class NotFoundError(AuthServiceError):
    status_code = 404
    code = "not_found"


class VerificationExpiredError(AuthServiceError):
    status_code = 400
    code = "verification_expired"


class ConflictError(AuthServiceError):
    """A uniqueness constraint rejected the write.

    field names the column that collided ("email", "box_alias", "external_id")
    so callers can choose the user-facing message.
    """

    status_code = 400
    code = "conflict"

    def __init__(self, message: str, *, field: str) -> None:
        super().__init__(message)
        self.field = field


class PasswordNotSetError(AuthServiceError):
    """The account signs in through OAuth only and has no local password."""

    status_code = 400
    code = "password_not_set"


class IncorrectPasswordError(AuthServiceError):
    status_code = 400
    code = "incorrect_password"


class UpstreamError(AuthServiceError):
    """A collaborator (mail relay, identity provider, database) failed.

    The message is always generic; details go to the log only.
    """

    status_code = 500
    code = "upstream_error"

    def __init__(self, message: str = "An unexpected error occurred.") -> None:
        super().__init__(message)

"""
errors.py — Domain error taxonomy.

Every failure the service reports to a caller is one of these classes.
Routes and services raise them; main.py registers a single exception
handler that serialises them as:

  { "detail": "<human message>", "error": "<kind>" }

The same classes are raised client-side by CampusSafetyClient when it
maps an HTTP response back into Python, so callers handle one hierarchy
regardless of which side of the wire they are on.
"""

from typing import Optional


class CampusSafetyError(Exception):
    """Base class. Subclasses set `status_code` and `kind`."""

    status_code: int = 500
    kind: str = "internal_error"

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": self.kind}


class ValidationError(CampusSafetyError):
    """Missing or malformed input. Always raised before any external call."""

    status_code = 422
    kind = "validation_error"


class AuthError(CampusSafetyError):
    """Bad credentials or no session."""

    status_code = 401
    kind = "auth_error"


class AccountNotApprovedError(AuthError):
    """The account exists but is pending approval or banned."""

    status_code = 403
    kind = "account_not_approved"


class PermissionDeniedError(AuthError):
    """Authenticated, but the role lacks the required capability."""

    status_code = 403
    kind = "permission_denied"


class NotFoundError(CampusSafetyError):
    status_code = 404
    kind = "not_found"


class ConflictError(CampusSafetyError):
    """Duplicate identity, or the same action is already in flight."""

    status_code = 409
    kind = "conflict"


class TransientError(CampusSafetyError):
    """Database or network failure. Safe to retry."""

    status_code = 503
    kind = "transient_error"


class OperationTimeout(TransientError):
    """An external call exceeded its time bound."""

    status_code = 504
    kind = "timeout"


# Lookup used by the client SDK to rebuild errors from response bodies.
ERRORS_BY_KIND: dict[str, type[CampusSafetyError]] = {
    cls.kind: cls
    for cls in (
        ValidationError,
        AuthError,
        AccountNotApprovedError,
        PermissionDeniedError,
        NotFoundError,
        ConflictError,
        TransientError,
        OperationTimeout,
    )
}

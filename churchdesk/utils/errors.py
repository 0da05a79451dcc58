"""Standardised API error responses.

Usage
-----
    from churchdesk.utils.errors import api_error, E

    return api_error(E.VALIDATION_REQUIRED, "title is required")
    return api_error(E.NOT_FOUND, "Requisition not found")

Service exceptions (``churchdesk.core.exceptions``) are translated by the
handlers installed with ``register_error_handlers(app)``.
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from churchdesk.core.exceptions import (
    AuthenticationError,
    ConflictError,
    DuplicateError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    SubscriptionExpiredError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Auth – HTTP 401 / 403
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Tenancy – HTTP 402
    SUBSCRIPTION_EXPIRED = "ERR_SUBSCRIPTION_EXPIRED"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    CONFLICT_CONCURRENT = "ERR_CONFLICT_CONCURRENT"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.SUBSCRIPTION_EXPIRED: 402,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.CONFLICT_CONCURRENT: 409,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation naming the failed precondition.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, current status, ...).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(app):
    """Map the service exception taxonomy and stray HTTP errors to JSON."""

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @app.errorhandler(AuthenticationError)
    def _handle_unauthenticated(error: AuthenticationError):
        return api_error(E.UNAUTHENTICATED, str(error) or "Authentication required")

    @app.errorhandler(ForbiddenError)
    def _handle_forbidden(error: ForbiddenError):
        logger.warning(
            "Forbidden: %s %s: %s", request.method, request.path, error,
            extra={"method": request.method, "path": request.path},
        )
        return api_error(E.FORBIDDEN, str(error) or "Permission denied")

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, f"{error.resource} not found")

    @app.errorhandler(InvalidTransitionError)
    def _handle_invalid_transition(error: InvalidTransitionError):
        return api_error(
            E.CONFLICT_STATE,
            str(error),
            details={"current_status": error.current_status, "action": error.action},
        )

    @app.errorhandler(DuplicateError)
    def _handle_duplicate(error: DuplicateError):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    @app.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_CONCURRENT, str(error))

    @app.errorhandler(SubscriptionExpiredError)
    def _handle_subscription_expired(error: SubscriptionExpiredError):
        details = {"church_id": error.church_id}
        if error.ends_at is not None:
            details["subscription_ends_at"] = error.ends_at.isoformat()
        return api_error(E.SUBSCRIPTION_EXPIRED, str(error), details=details)

    @app.errorhandler(404)
    def _not_found(e):
        if request.path.startswith("/api/"):
            return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})
        return e

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(415)
    def _unsupported_media(e):
        return api_error(E.VALIDATION_INVALID, e.description, status=415)

    @app.errorhandler(429)
    def _rate_limited(e):
        return api_error(
            E.FORBIDDEN, "Too many requests", status=429,
            details={"retry_after": e.description},
        )

    @app.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return api_error(E.INTERNAL, "Internal server error")

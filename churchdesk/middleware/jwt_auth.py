"""
JWT Auth Middleware: parses the bearer token and resolves ``g.caller``.

Every /api/v1/* route except the public prefixes below requires
``Authorization: Bearer <access_token>``.  The token only proves who the user
is; role and scope are re-read from the users table on every request, so
``g.caller`` always reflects the current row.

Chain order:
  timing  →  jwt_auth (g.caller)  →  route handler  →  service(caller, ...)
"""

import logging

import jwt as pyjwt
from flask import g, request

from churchdesk.core.exceptions import AuthenticationError
from churchdesk.services.identity import Caller, resolve_caller
from churchdesk.services.jwt_service import decode_access_token
from churchdesk.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths reachable without a token
PUBLIC_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/register",
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.caller = None

        path = request.path
        if not path.startswith("/api/v1/") or request.method == "OPTIONS":
            return None
        for prefix in PUBLIC_PREFIXES:
            if path.startswith(prefix):
                return None

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return api_error(E.UNAUTHENTICATED, "Authorization: Bearer <token> header is required")

        try:
            payload = decode_access_token(auth_header[7:])
        except pyjwt.ExpiredSignatureError:
            return api_error(E.UNAUTHENTICATED, "Access token has expired")
        except pyjwt.InvalidTokenError as exc:
            logger.warning("Rejected access token on %s: %s", path, exc,
                           extra={"path": path, "request_id": getattr(g, "request_id", None)})
            return api_error(E.UNAUTHENTICATED, "Invalid access token")

        try:
            g.caller = resolve_caller(payload.get("sub"))
        except AuthenticationError as exc:
            return api_error(E.UNAUTHENTICATED, str(exc))
        return None


def current_caller() -> Caller:
    """The resolved caller for the current request; blueprints only."""
    caller = getattr(g, "caller", None)
    if caller is None:
        raise AuthenticationError("Authentication required")
    return caller

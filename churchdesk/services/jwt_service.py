"""
JWT Service: access token generation and verification.

Access token:  8 hours (configurable via JWT_ACCESS_EXPIRES)
Algorithm:     HS256

Token payload:
{
    "sub": <user_id>,
    "church_id": <church_id | absent for App Owner>,
    "role": "Member" | "Department Head" | ...,
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

The role claim is informational only.  Every request re-loads the user row
(see middleware.jwt_auth), so a demoted or deactivated user loses access
immediately.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 28800     # 8 hours
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return int(current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES))


def generate_access_token(user_id: str, church_id: str | None, role: str) -> str:
    """Generate a signed access token for a user."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "role": role,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    if church_id is not None:
        payload["church_id"] = church_id
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def issue_token_response(user) -> dict:
    """Token envelope returned by login and registration."""
    return {
        "access_token": generate_access_token(user.id, user.church_id, user.role),
        "token_type": "Bearer",
        "expires_in": _get_access_expires(),
        "user": user.to_dict(),
    }


def decode_access_token(token: str) -> dict:
    """
    Decode and verify an access token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])

    if payload.get("type") != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")

    return payload

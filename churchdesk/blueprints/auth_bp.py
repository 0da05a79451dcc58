"""
Auth Blueprint: login, church self-registration and the current profile.

  POST /api/v1/auth/login       Email + password → access token
  POST /api/v1/auth/register    New church + Super Admin → access token
  GET  /api/v1/auth/me          Current user profile
"""

from flask import Blueprint, jsonify

from churchdesk.blueprints import json_body
from churchdesk.middleware.jwt_auth import current_caller
from churchdesk.models import db
from churchdesk.models.auth import User
from churchdesk.services import church_service, user_service
from churchdesk.services.jwt_service import issue_token_response
from churchdesk.utils.errors import E, api_error

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password.

    Body: { "email": "...", "password": "..." }
    """
    data = json_body()
    if data is None or not data.get("email") or not data.get("password"):
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    user = user_service.authenticate(data["email"], data["password"])
    return jsonify(issue_token_response(user)), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/register
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Register a church on a trial subscription with its Super Admin.

    Body: { "church_name", "admin_name", "admin_email", "admin_password" }
    """
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "Request body must be a JSON object")
    missing = [f for f in ("church_name", "admin_name", "admin_email", "admin_password") if not data.get(f)]
    if missing:
        return api_error(
            E.VALIDATION_REQUIRED,
            f"Missing required fields: {', '.join(missing)}",
            details={f: "required" for f in missing},
        )

    church, admin = church_service.register_church(
        data["church_name"], data["admin_name"], data["admin_email"], data["admin_password"],
    )
    body = issue_token_response(admin)
    body["church"] = church.to_dict()
    return jsonify(body), 201


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
def me():
    caller = current_caller()
    user = db.session.get(User, caller.user_id)
    body = user.to_dict()
    if user.church is not None:
        body["church"] = user.church.to_dict()
    return jsonify(body), 200

"""
Platform Admin Blueprint: App Owner view across every church.

  GET  /api/v1/platform-data                          platform snapshot
  POST /api/v1/churches/<id>/extend-subscription      { "months": 1..24 }
"""

from flask import Blueprint, jsonify

from churchdesk.blueprints import json_body
from churchdesk.middleware.jwt_auth import current_caller
from churchdesk.middleware.permission_required import require_roles
from churchdesk.models.auth import ROLE_APP_OWNER
from churchdesk.services import platform_admin_service, subscription_service
from churchdesk.utils.errors import E, api_error

platform_admin_bp = Blueprint("platform_admin_bp", __name__, url_prefix="/api/v1")


@platform_admin_bp.route("/platform-data", methods=["GET"])
@require_roles(ROLE_APP_OWNER)
def platform_data():
    return jsonify(platform_admin_service.platform_snapshot(current_caller())), 200


@platform_admin_bp.route("/churches/<church_id>/extend-subscription", methods=["POST"])
@require_roles(ROLE_APP_OWNER)
def extend_subscription(church_id):
    data = json_body()
    if data is None or data.get("months") in (None, ""):
        return api_error(E.VALIDATION_REQUIRED, "months is required", details={"months": "required"})
    church = subscription_service.extend_subscription(current_caller(), church_id, data["months"])
    return jsonify(church.to_dict()), 200

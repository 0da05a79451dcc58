"""
Church Blueprint: organisation structure, users and the audit trail.

  GET  /api/v1/churches/<id>                    church, sections, departments
  POST /api/v1/churches/<id>/sections           create section (201)
  POST /api/v1/sections/<id>/departments        create department (201)
  GET  /api/v1/churches/<id>/users              list users
  POST /api/v1/users                            create user (201)
  GET  /api/v1/churches/<id>/audit-logs         audit trail, newest first
"""

from flask import Blueprint, jsonify

from churchdesk.blueprints import int_arg, json_body
from churchdesk.middleware.jwt_auth import current_caller
from churchdesk.services import audit_service, church_service, user_service
from churchdesk.utils.errors import E, api_error

church_bp = Blueprint("church_bp", __name__, url_prefix="/api/v1")


@church_bp.route("/churches/<church_id>", methods=["GET"])
def get_church(church_id):
    church = church_service.get_church(current_caller(), church_id)
    return jsonify(church.to_dict(include_sections=True)), 200


@church_bp.route("/churches/<church_id>/sections", methods=["POST"])
def create_section(church_id):
    data = json_body()
    if data is None or not data.get("name"):
        return api_error(E.VALIDATION_REQUIRED, "name is required", details={"name": "required"})
    section = church_service.create_section(current_caller(), church_id, data["name"])
    return jsonify(section.to_dict(include_departments=True)), 201


@church_bp.route("/sections/<section_id>/departments", methods=["POST"])
def create_department(section_id):
    data = json_body()
    if data is None or not data.get("name"):
        return api_error(E.VALIDATION_REQUIRED, "name is required", details={"name": "required"})
    department = church_service.create_department(current_caller(), section_id, data["name"])
    return jsonify(department.to_dict()), 201


@church_bp.route("/churches/<church_id>/users", methods=["GET"])
def list_users(church_id):
    users = user_service.list_users(current_caller(), church_id)
    return jsonify({"items": [u.to_dict() for u in users], "total": len(users)}), 200


@church_bp.route("/users", methods=["POST"])
def create_user():
    """
    Body: { "name", "email", "password", "role", "section_id"?, "department_id"? }
    """
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "Request body must be a JSON object")
    missing = [f for f in ("name", "email", "password", "role") if not data.get(f)]
    if missing:
        return api_error(
            E.VALIDATION_REQUIRED,
            f"Missing required fields: {', '.join(missing)}",
            details={f: "required" for f in missing},
        )
    user = user_service.create_user(current_caller(), data)
    return jsonify(user.to_dict()), 201


@church_bp.route("/churches/<church_id>/audit-logs", methods=["GET"])
def audit_logs(church_id):
    entries = audit_service.list_for_church(current_caller(), church_id, limit=int_arg("limit"))
    return jsonify({"items": entries, "total": len(entries)}), 200

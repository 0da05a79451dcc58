"""
Finance Blueprint: dashboards and the section cash book.

  GET  /api/v1/dashboard                           requisition stats
  GET  /api/v1/finance-overview/<section_id>       Finance work queues
  GET  /api/v1/financial-summary/<section_id>      inflow / outflow / balance
  GET  /api/v1/sections/<section_id>/ledger-entries
  POST /api/v1/sections/<section_id>/ledger-entries
"""

from flask import Blueprint, jsonify, request

from churchdesk.blueprints import json_body
from churchdesk.middleware.jwt_auth import current_caller
from churchdesk.services import dashboard_service, finance_service
from churchdesk.utils.errors import E, api_error

finance_bp = Blueprint("finance_bp", __name__, url_prefix="/api/v1")


@finance_bp.route("/dashboard", methods=["GET"])
def dashboard():
    stats = dashboard_service.dashboard_stats(current_caller(), section_id=request.args.get("section_id"))
    return jsonify(stats), 200


@finance_bp.route("/finance-overview/<section_id>", methods=["GET"])
def finance_overview(section_id):
    return jsonify(finance_service.finance_overview(current_caller(), section_id)), 200


@finance_bp.route("/financial-summary/<section_id>", methods=["GET"])
def financial_summary(section_id):
    return jsonify(finance_service.financial_summary(current_caller(), section_id)), 200


@finance_bp.route("/sections/<section_id>/ledger-entries", methods=["GET"])
def list_ledger_entries(section_id):
    entries = finance_service.list_ledger_entries(
        current_caller(), section_id,
        date_from=request.args.get("from"),
        date_to=request.args.get("to"),
    )
    return jsonify({"items": [e.to_dict() for e in entries], "total": len(entries)}), 200


@finance_bp.route("/sections/<section_id>/ledger-entries", methods=["POST"])
def record_ledger_entry(section_id):
    """
    Body: { "direction": "inflow" | "outflow", "amount", "description", "entry_date"? }
    """
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "Request body must be a JSON object")
    entry = finance_service.record_ledger_entry(current_caller(), section_id, data)
    return jsonify(entry.to_dict()), 201

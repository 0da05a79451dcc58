"""
Requisition Blueprint: submission, review, payout and receipt workflow.

Endpoints:
  POST /api/v1/requisitions                          submit (201)
  GET  /api/v1/requisitions                          list visible
  GET  /api/v1/requisitions/<id>                     detail
  PUT  /api/v1/requisitions/<id>                     edit & resubmit
  POST /api/v1/requisitions/<id>/action              APPROVE / REJECT / REQUEST_CHANGES
  POST /api/v1/requisitions/<id>/disburse            Finance payout
  POST /api/v1/requisitions/<id>/upload-receipt      requester's final receipt
  POST /api/v1/requisitions/<id>/verify-receipt      VERIFY / REQUEST_CORRECTION

Every requisition in a response carries ``available_actions`` for the caller.
"""

from flask import Blueprint, jsonify, request

from churchdesk.blueprints import expected_version, json_body
from churchdesk.middleware.jwt_auth import current_caller
from churchdesk.services import requisition_store, workflow_engine
from churchdesk.services.identity import available_actions
from churchdesk.utils.errors import E, api_error

requisition_bp = Blueprint("requisition_bp", __name__, url_prefix="/api/v1")


def _serialize(caller, requisition, include_children=True) -> dict:
    body = requisition.to_dict(include_children=include_children)
    body["available_actions"] = available_actions(caller, requisition)
    return body


def _body_or_400():
    data = json_body()
    if data is None:
        return None, api_error(E.VALIDATION_REQUIRED, "Request body must be a JSON object")
    return data, None


# ── Submit / list / detail ──────────────────────────────────────────────────


@requisition_bp.route("/requisitions", methods=["POST"])
def create_requisition():
    """
    Body: { "title", "amount_requested", "category", "purpose",
            "date_needed", "department_id"?, "attachments"? }
    """
    data, err = _body_or_400()
    if err:
        return err
    caller = current_caller()
    requisition = workflow_engine.create_requisition(caller, data)
    return jsonify(_serialize(caller, requisition)), 201


@requisition_bp.route("/requisitions", methods=["GET"])
def list_requisitions():
    caller = current_caller()
    filters = {
        key: request.args.get(key)
        for key in ("section_id", "department_id", "requested_by_id", "status")
    }
    requisitions = requisition_store.list_requisitions(caller, filters)
    include_children = request.args.get("include_children", "").lower() in ("1", "true", "yes")
    return jsonify({
        "items": [_serialize(caller, r, include_children) for r in requisitions],
        "total": len(requisitions),
    }), 200


@requisition_bp.route("/requisitions/<requisition_id>", methods=["GET"])
def get_requisition(requisition_id):
    caller = current_caller()
    return jsonify(_serialize(caller, requisition_store.get(caller, requisition_id))), 200


@requisition_bp.route("/requisitions/<requisition_id>", methods=["PUT"])
def resubmit_requisition(requisition_id):
    """Edit a requisition in Changes Requested and send it back to Pending."""
    data, err = _body_or_400()
    if err:
        return err
    caller = current_caller()
    requisition = workflow_engine.resubmit(
        caller, requisition_id, data, expected_version=expected_version(data),
    )
    return jsonify(_serialize(caller, requisition)), 200


# ── Workflow actions ────────────────────────────────────────────────────────


@requisition_bp.route("/requisitions/<requisition_id>/action", methods=["POST"])
def review_action(requisition_id):
    """
    Body: { "action": "APPROVE" | "REJECT" | "REQUEST_CHANGES", "comments"?, "version"? }
    """
    data, err = _body_or_400()
    if err:
        return err
    if not data.get("action"):
        return api_error(E.VALIDATION_REQUIRED, "action is required", details={"action": "required"})
    caller = current_caller()
    requisition = workflow_engine.process_review_action(
        caller, requisition_id, data["action"],
        comments=data.get("comments"),
        expected_version=expected_version(data),
    )
    return jsonify(_serialize(caller, requisition)), 200


@requisition_bp.route("/requisitions/<requisition_id>/disburse", methods=["POST"])
def disburse(requisition_id):
    """
    Body: { "payment_details": { "amount_paid", "payment_method", "payment_date",
                                 "reference_number"?, "proof_file"? }, "version"? }
    """
    data, err = _body_or_400()
    if err:
        return err
    if not data.get("payment_details"):
        return api_error(
            E.VALIDATION_REQUIRED, "payment_details is required",
            details={"payment_details": "required"},
        )
    caller = current_caller()
    requisition = workflow_engine.disburse(
        caller, requisition_id, data["payment_details"],
        expected_version=expected_version(data),
    )
    return jsonify(_serialize(caller, requisition)), 200


@requisition_bp.route("/requisitions/<requisition_id>/upload-receipt", methods=["POST"])
def upload_receipt(requisition_id):
    """
    Body: { "name" | "receipt_file_name", "url"?, "version"? }
    """
    data, err = _body_or_400()
    if err:
        return err
    name = data.get("name") or data.get("receipt_file_name")
    if not name:
        return api_error(E.VALIDATION_REQUIRED, "Receipt file name is required", details={"name": "required"})
    caller = current_caller()
    requisition = workflow_engine.upload_receipt(
        caller, requisition_id, name,
        url=data.get("url"),
        expected_version=expected_version(data),
    )
    return jsonify(_serialize(caller, requisition)), 200


@requisition_bp.route("/requisitions/<requisition_id>/verify-receipt", methods=["POST"])
def verify_receipt(requisition_id):
    """
    Body: { "action": "VERIFY" | "REQUEST_CORRECTION", "comments"?, "version"? }
    """
    data, err = _body_or_400()
    if err:
        return err
    if not data.get("action"):
        return api_error(E.VALIDATION_REQUIRED, "action is required", details={"action": "required"})
    caller = current_caller()
    requisition = workflow_engine.verify_receipt(
        caller, requisition_id, data["action"],
        comments=data.get("comments"),
        expected_version=expected_version(data),
    )
    return jsonify(_serialize(caller, requisition)), 200

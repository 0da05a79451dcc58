"""
Requisition Workflow Engine.

The only writer of requisition state after creation.  Every operation takes
an explicit ``Caller`` and runs its checks in a fixed order; the first
failure wins and nothing is written:

    1. ValidationError         malformed input, missing required comment
    2. NotFoundError           unknown id, or not visible to the caller
    3. ConflictError           ``expected_version`` no longer current
    4. InvalidTransitionError  action not valid from the current status, the
                               caller's review stage is not the current one,
                               or the caller already acted this round
    5. ForbiddenError          role/scope ineligible (identity.can_act)

Each successful transition appends exactly one activity entry; review
actions also append exactly one approval entry.

Usage:
    from churchdesk.services import workflow_engine

    workflow_engine.process_review_action(caller, req_id, "APPROVE")
    workflow_engine.disburse(caller, req_id, {"amount_paid": 5000, ...})
"""

from __future__ import annotations

import logging
import re

from churchdesk.core.exceptions import ForbiddenError, InvalidTransitionError, ValidationError
from churchdesk.models import db
from churchdesk.models.auth import DEPARTMENT_ROLES, ROLE_DEPT_HEAD
from churchdesk.models.finance import DIRECTION_OUTFLOW, LedgerEntry
from churchdesk.models.requisition import (
    ACTION_APPROVE,
    ACTION_DISBURSE,
    ACTION_REJECT,
    ACTION_REQUEST_CHANGES,
    ACTION_REQUEST_CORRECTION,
    ACTION_RESUBMIT,
    ACTION_UPLOAD_RECEIPT,
    ACTION_VERIFY,
    APPROVAL_APPROVED,
    APPROVAL_REJECTED,
    APPROVAL_REQUESTED_CHANGES,
    PAYMENT_METHODS,
    REQUISITION_TRANSITIONS,
    REVIEW_ACTIONS,
    STATUS_APPROVED_BY_DEPT_HEAD,
    STATUS_APPROVED_BY_SECTION_PRESIDENT,
    STATUS_COMPLETED,
    STATUS_PENDING,
    VERIFY_ACTIONS,
    FinalReceipt,
    Payment,
    Requisition,
    RequisitionApproval,
)
from churchdesk.services import requisition_store
from churchdesk.services.identity import (
    Caller,
    approval_stage_for,
    can_act,
    has_acted_in_round,
    holds_role_for,
)
from churchdesk.services.subscription_service import ensure_subscription_active, get_church_or_404
from churchdesk.utils.helpers import clean_text, parse_amount, parse_date_input, utcnow

logger = logging.getLogger(__name__)

# Review decision → (approval status, activity phrase)
_REVIEW_OUTCOME = {
    ACTION_APPROVE: (APPROVAL_APPROVED, "approved the requisition"),
    ACTION_REJECT: (APPROVAL_REJECTED, "rejected the requisition"),
    ACTION_REQUEST_CHANGES: (APPROVAL_REQUESTED_CHANGES, "requested changes"),
}

_ACTION_PHRASES = {
    ACTION_DISBURSE: "disbursed funds",
    ACTION_UPLOAD_RECEIPT: "uploaded the final receipt",
    ACTION_VERIFY: "verified the receipt and completed the requisition",
    ACTION_REQUEST_CORRECTION: "requested a receipt correction",
    ACTION_RESUBMIT: "edited and resubmitted the requisition",
}

_COMMENT_REQUIRED = {
    ACTION_REJECT: "comments are required to reject a requisition",
    ACTION_REQUEST_CHANGES: "comments are required to request changes",
    ACTION_REQUEST_CORRECTION: "comments are required to request a receipt correction",
}

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def normalize_action(raw, allowed) -> str:
    """Accept ``APPROVE``, ``approve``, ``Approve``, ``RequestChanges``, ``request-changes``."""
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError("action is required", details={"action": "required"})
    text = raw.strip()
    if text != text.upper():
        text = _CAMEL_BOUNDARY.sub("_", text)
    action = re.sub(r"[\s\-_]+", "_", text).upper()
    if action not in allowed:
        raise ValidationError(
            f"action must be one of {list(allowed)}",
            details={"action": f"unknown action {raw!r}"},
        )
    return action


def _require_comment(action: str, comments) -> str | None:
    text = comments.strip() if isinstance(comments, str) else None
    if action in _COMMENT_REQUIRED and not text:
        raise ValidationError(_COMMENT_REQUIRED[action], details={"comments": "required"})
    return text or None


def _check_transition(caller: Caller, requisition: Requisition, action: str) -> None:
    """Steps 4 and 5 of the check order, against the freshly locked row."""
    rule = REQUISITION_TRANSITIONS[action]
    if requisition.status not in rule["from"]:
        raise InvalidTransitionError(requisition.status, action)

    if action in REVIEW_ACTIONS and holds_role_for(caller, requisition, action):
        stage = approval_stage_for(caller, requisition)
        if stage != requisition.status:
            raise InvalidTransitionError(
                requisition.status, action,
                reason=f"Requisition is not awaiting your review (status '{requisition.status}')",
            )
        if has_acted_in_round(caller, requisition):
            raise InvalidTransitionError(
                requisition.status, action,
                reason="You have already acted on this requisition in the current review round",
            )

    if not can_act(caller, requisition, action):
        logger.warning(
            "Denied %s on requisition %s for user %s (%s)",
            action, requisition.id, caller.user_id, caller.role,
            extra={"requisition_id": requisition.id, "user_id": caller.user_id},
        )
        raise ForbiddenError(f"Your role is not permitted to {action.lower().replace('_', ' ')} this requisition")


def _log_transition(requisition: Requisition, caller: Caller, action: str, from_status: str) -> None:
    logger.info(
        "Requisition %s: %s by %s (%s) %r -> %r",
        requisition.id, action, caller.user_id, caller.role, from_status, requisition.status,
        extra={"requisition_id": requisition.id, "church_id": requisition.church_id,
               "user_id": caller.user_id},
    )


# ═════════════════════════════════════════════════════════════════════════════
# Creation
# ═════════════════════════════════════════════════════════════════════════════


def create_requisition(caller: Caller, draft: dict) -> Requisition:
    """Submit a new requisition.  Blocked while the church subscription is expired."""
    if caller.role not in DEPARTMENT_ROLES:
        raise ForbiddenError("Only Members and Department Heads can submit requisitions")
    ensure_subscription_active(get_church_or_404(caller.church_id))
    return requisition_store.create(caller, draft)


# ═════════════════════════════════════════════════════════════════════════════
# Approval chain
# ═════════════════════════════════════════════════════════════════════════════


def next_approval_status(requisition: Requisition) -> str:
    """Target of APPROVE: Section President approval closes the chain."""
    if requisition.status == STATUS_PENDING and requisition.requested_by_role != ROLE_DEPT_HEAD:
        return STATUS_APPROVED_BY_DEPT_HEAD
    return STATUS_APPROVED_BY_SECTION_PRESIDENT


def process_review_action(
    caller: Caller,
    requisition_id: str,
    action,
    comments: str | None = None,
    expected_version: int | None = None,
) -> Requisition:
    """APPROVE / REJECT / REQUEST_CHANGES at the caller's approval stage."""
    action = normalize_action(action, REVIEW_ACTIONS)
    comment = _require_comment(action, comments)

    def _mutate(requisition: Requisition) -> None:
        _check_transition(caller, requisition, action)
        from_status = requisition.status
        approval_status, phrase = _REVIEW_OUTCOME[action]
        to_status = (
            next_approval_status(requisition)
            if action == ACTION_APPROVE
            else REQUISITION_TRANSITIONS[action]["to"]
        )
        requisition.approvals.append(
            RequisitionApproval(
                approver_id=caller.user_id,
                approver_name_snapshot=caller.name,
                status=approval_status,
                comments=comment,
                stage=from_status,
                review_round=requisition.review_round,
                timestamp=utcnow(),
            )
        )
        requisition.status = to_status
        requisition_store.append_activity(
            requisition, caller,
            event=action, action=phrase, details=comment,
            from_status=from_status, to_status=to_status,
        )
        _log_transition(requisition, caller, action, from_status)

    return requisition_store.apply_transition(
        requisition_id, _mutate, caller=caller, expected_version=expected_version,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Disbursement & receipts
# ═════════════════════════════════════════════════════════════════════════════


def _validate_payment(details) -> dict:
    if not isinstance(details, dict):
        raise ValidationError("payment_details must be an object", details={"payment_details": "required"})
    method = details.get("payment_method")
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of {list(PAYMENT_METHODS)}",
            details={"payment_method": "invalid"},
        )
    proof = details.get("proof_file")
    if proof is not None:
        if isinstance(proof, str):
            proof = {"name": proof, "url": None}
        elif not isinstance(proof, dict) or not (proof.get("name") or "").strip():
            raise ValidationError("proof_file needs a file name", details={"proof_file": "name required"})
        else:
            proof = {"name": proof["name"].strip(), "url": proof.get("url")}
    return {
        "amount_paid": parse_amount(details.get("amount_paid"), "amount_paid"),
        "payment_method": method,
        "payment_date": parse_date_input(details.get("payment_date"), "payment_date"),
        "reference_number": clean_text(
            details.get("reference_number"), "reference_number", required=False, max_length=100,
        ),
        "proof_file": proof,
    }


def disburse(
    caller: Caller,
    requisition_id: str,
    payment_details,
    expected_version: int | None = None,
) -> Requisition:
    """Finance records the payout; posts the matching outflow to the section cash book."""
    payment_fields = _validate_payment(payment_details)

    def _mutate(requisition: Requisition) -> None:
        _check_transition(caller, requisition, ACTION_DISBURSE)
        from_status = requisition.status
        requisition.payment = Payment(recorded_by_id=caller.user_id, timestamp=utcnow(), **payment_fields)
        # Outflow row joins the same transaction as the payment.
        db.session.add(
            LedgerEntry(
                church_id=requisition.church_id,
                section_id=requisition.section_id,
                direction=DIRECTION_OUTFLOW,
                amount=payment_fields["amount_paid"],
                description=f"Disbursement: {requisition.title}",
                entry_date=payment_fields["payment_date"],
                requisition_id=requisition.id,
                recorded_by_id=caller.user_id,
            )
        )
        requisition.status = REQUISITION_TRANSITIONS[ACTION_DISBURSE]["to"]
        requisition_store.append_activity(
            requisition, caller,
            event=ACTION_DISBURSE,
            action=_ACTION_PHRASES[ACTION_DISBURSE],
            details=f"{payment_fields['amount_paid']} via {payment_fields['payment_method']}",
            from_status=from_status, to_status=requisition.status,
        )
        _log_transition(requisition, caller, ACTION_DISBURSE, from_status)

    return requisition_store.apply_transition(
        requisition_id, _mutate, caller=caller, expected_version=expected_version,
    )


def upload_receipt(
    caller: Caller,
    requisition_id: str,
    name,
    url: str | None = None,
    expected_version: int | None = None,
) -> Requisition:
    """Requester uploads (or re-uploads) proof of expenditure."""
    file_name = clean_text(name, "name", max_length=255)

    def _mutate(requisition: Requisition) -> None:
        _check_transition(caller, requisition, ACTION_UPLOAD_RECEIPT)
        from_status = requisition.status
        if requisition.final_receipt is None:
            requisition.final_receipt = FinalReceipt(
                name=file_name, url=url, uploaded_by_id=caller.user_id, uploaded_at=utcnow(),
            )
        else:
            requisition.final_receipt.name = file_name
            requisition.final_receipt.url = url
            requisition.final_receipt.uploaded_by_id = caller.user_id
            requisition.final_receipt.uploaded_at = utcnow()
        requisition.status = REQUISITION_TRANSITIONS[ACTION_UPLOAD_RECEIPT]["to"]
        requisition_store.append_activity(
            requisition, caller,
            event=ACTION_UPLOAD_RECEIPT,
            action=_ACTION_PHRASES[ACTION_UPLOAD_RECEIPT],
            details=file_name,
            from_status=from_status, to_status=requisition.status,
        )
        _log_transition(requisition, caller, ACTION_UPLOAD_RECEIPT, from_status)

    return requisition_store.apply_transition(
        requisition_id, _mutate, caller=caller, expected_version=expected_version,
    )


def verify_receipt(
    caller: Caller,
    requisition_id: str,
    action,
    comments: str | None = None,
    expected_version: int | None = None,
) -> Requisition:
    """Finance closes the requisition or sends the receipt back for correction."""
    action = normalize_action(action, VERIFY_ACTIONS)
    comment = _require_comment(action, comments)

    def _mutate(requisition: Requisition) -> None:
        _check_transition(caller, requisition, action)
        from_status = requisition.status
        requisition.status = REQUISITION_TRANSITIONS[action]["to"]
        if requisition.status == STATUS_COMPLETED:
            requisition.completed_at = utcnow()
        requisition_store.append_activity(
            requisition, caller,
            event=action, action=_ACTION_PHRASES[action], details=comment,
            from_status=from_status, to_status=requisition.status,
        )
        _log_transition(requisition, caller, action, from_status)

    return requisition_store.apply_transition(
        requisition_id, _mutate, caller=caller, expected_version=expected_version,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Edit & resubmit
# ═════════════════════════════════════════════════════════════════════════════


def resubmit(
    caller: Caller,
    requisition_id: str,
    changes: dict,
    expected_version: int | None = None,
) -> Requisition:
    """Requester edits a Changes Requested requisition and sends it back to Pending.

    Opens a new review round, so approvers of the previous round may act again.
    Omitted fields keep their current values.
    """
    if not isinstance(changes, dict):
        raise ValidationError("request body must be an object")
    fields = requisition_store.validate_draft(changes, partial=True)
    department = None
    if changes.get("department_id"):
        department = requisition_store.resolve_department(caller, changes["department_id"])
    note = clean_text(changes.get("comments"), "comments", required=False)

    def _mutate(requisition: Requisition) -> None:
        _check_transition(caller, requisition, ACTION_RESUBMIT)
        from_status = requisition.status
        for key, value in fields.items():
            setattr(requisition, key, value)
        if department is not None:
            requisition.department_id = department.id
            requisition.section_id = department.section_id
        requisition.review_round += 1
        requisition.status = REQUISITION_TRANSITIONS[ACTION_RESUBMIT]["to"]
        requisition_store.append_activity(
            requisition, caller,
            event=ACTION_RESUBMIT,
            action=_ACTION_PHRASES[ACTION_RESUBMIT],
            details=note,
            from_status=from_status, to_status=requisition.status,
        )
        _log_transition(requisition, caller, ACTION_RESUBMIT, from_status)

    return requisition_store.apply_transition(
        requisition_id, _mutate, caller=caller, expected_version=expected_version,
    )

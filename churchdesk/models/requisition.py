"""
Requisition aggregate: the requisition row plus its owned sub-records.

- RequisitionApproval   append-only, one per acting approver per review round
- RequisitionActivity   append-only activity log, one per state change
- Payment               0..1, immutable once recorded
- FinalReceipt          0..1, replaceable while a receipt is awaited

Status strings are the labels shown to users; they are also the wire values.
Requisitions are never deleted.
"""

from churchdesk.models import _uuid, db
from churchdesk.utils.helpers import iso, to_float, utcnow

# ── Workflow states ──────────────────────────────────────────────────────────
STATUS_PENDING = "Pending"
STATUS_APPROVED_BY_DEPT_HEAD = "Approved by Dept. Head"
STATUS_APPROVED_BY_SECTION_PRESIDENT = "Approved by Section President"
STATUS_AWAITING_RECEIPT = "Awaiting Receipt"
STATUS_PENDING_FINANCE_VERIFICATION = "Pending Finance Verification"
STATUS_COMPLETED = "Completed"
STATUS_REJECTED = "Rejected"
STATUS_CHANGES_REQUESTED = "Changes Requested"
STATUS_RECEIPT_CORRECTION_REQUESTED = "Receipt Correction Requested"

REQUISITION_STATUSES = (
    STATUS_PENDING,
    STATUS_APPROVED_BY_DEPT_HEAD,
    STATUS_APPROVED_BY_SECTION_PRESIDENT,
    STATUS_AWAITING_RECEIPT,
    STATUS_PENDING_FINANCE_VERIFICATION,
    STATUS_COMPLETED,
    STATUS_REJECTED,
    STATUS_CHANGES_REQUESTED,
    STATUS_RECEIPT_CORRECTION_REQUESTED,
)

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_REJECTED})
RECEIPT_UPLOAD_STATUSES = frozenset({STATUS_AWAITING_RECEIPT, STATUS_RECEIPT_CORRECTION_REQUESTED})

# ── Approval decisions ───────────────────────────────────────────────────────
APPROVAL_APPROVED = "APPROVED"
APPROVAL_REJECTED = "REJECTED"
APPROVAL_REQUESTED_CHANGES = "REQUESTED_CHANGES"

# ── Payment methods ──────────────────────────────────────────────────────────
PAYMENT_METHODS = ("Bank Transfer", "Cash", "Cheque")

# ── Workflow actions ─────────────────────────────────────────────────────────
ACTION_APPROVE = "APPROVE"
ACTION_REJECT = "REJECT"
ACTION_REQUEST_CHANGES = "REQUEST_CHANGES"
ACTION_DISBURSE = "DISBURSE"
ACTION_UPLOAD_RECEIPT = "UPLOAD_RECEIPT"
ACTION_VERIFY = "VERIFY"
ACTION_REQUEST_CORRECTION = "REQUEST_CORRECTION"
ACTION_RESUBMIT = "RESUBMIT"

REVIEW_ACTIONS = (ACTION_APPROVE, ACTION_REJECT, ACTION_REQUEST_CHANGES)
VERIFY_ACTIONS = (ACTION_VERIFY, ACTION_REQUEST_CORRECTION)

# Static part of the state machine.  APPROVE has no fixed target: the next
# approval stage depends on who requested (see workflow_engine).
REQUISITION_TRANSITIONS = {
    ACTION_APPROVE: {
        "from": (STATUS_PENDING, STATUS_APPROVED_BY_DEPT_HEAD),
        "to": None,
    },
    ACTION_REJECT: {
        "from": (STATUS_PENDING, STATUS_APPROVED_BY_DEPT_HEAD),
        "to": STATUS_REJECTED,
    },
    ACTION_REQUEST_CHANGES: {
        "from": (STATUS_PENDING, STATUS_APPROVED_BY_DEPT_HEAD),
        "to": STATUS_CHANGES_REQUESTED,
    },
    ACTION_DISBURSE: {
        "from": (STATUS_APPROVED_BY_SECTION_PRESIDENT,),
        "to": STATUS_AWAITING_RECEIPT,
    },
    ACTION_UPLOAD_RECEIPT: {
        "from": (STATUS_AWAITING_RECEIPT, STATUS_RECEIPT_CORRECTION_REQUESTED),
        "to": STATUS_PENDING_FINANCE_VERIFICATION,
    },
    ACTION_VERIFY: {
        "from": (STATUS_PENDING_FINANCE_VERIFICATION,),
        "to": STATUS_COMPLETED,
    },
    ACTION_REQUEST_CORRECTION: {
        "from": (STATUS_PENDING_FINANCE_VERIFICATION,),
        "to": STATUS_RECEIPT_CORRECTION_REQUESTED,
    },
    ACTION_RESUBMIT: {
        "from": (STATUS_CHANGES_REQUESTED,),
        "to": STATUS_PENDING,
    },
}


class Requisition(db.Model):
    """Expense request moving through the approval and disbursement workflow.

    ``version`` is the mapper's version_id_col: every UPDATE is issued as
    ``... WHERE id = :id AND version = :seen`` so a writer holding a stale row
    fails with StaleDataError instead of overwriting a newer transition.
    """

    __tablename__ = "requisitions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    church_id = db.Column(db.String(36), db.ForeignKey("churches.id"), nullable=False, index=True)
    section_id = db.Column(db.String(36), db.ForeignKey("sections.id"), nullable=False, index=True)
    department_id = db.Column(db.String(36), db.ForeignKey("departments.id"), nullable=False, index=True)
    requested_by_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    requested_by_role = db.Column(
        db.String(40),
        nullable=False,
        comment="Requester role at submission; decides whether the dept-head stage is skipped",
    )

    title = db.Column(db.String(200), nullable=False)
    amount_requested = db.Column(db.Numeric(14, 2), nullable=False)
    category = db.Column(db.String(100), nullable=False)
    purpose = db.Column(db.Text, nullable=False)
    date_needed = db.Column(db.Date, nullable=False)
    attachments = db.Column(db.JSON, nullable=False, default=list)

    status = db.Column(db.String(40), nullable=False, default=STATUS_PENDING, index=True)
    review_round = db.Column(db.Integer, nullable=False, default=1)
    version = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    requested_by = db.relationship("User", foreign_keys=[requested_by_id])
    department = db.relationship("Department")
    section = db.relationship("Section")

    approvals = db.relationship(
        "RequisitionApproval",
        back_populates="requisition",
        order_by="[RequisitionApproval.review_round, RequisitionApproval.timestamp]",
        cascade="all, delete-orphan",
    )
    activities = db.relationship(
        "RequisitionActivity",
        back_populates="requisition",
        order_by="[RequisitionActivity.timestamp, RequisitionActivity.sequence]",
        cascade="all, delete-orphan",
    )
    payment = db.relationship(
        "Payment", back_populates="requisition", uselist=False, cascade="all, delete-orphan",
    )
    final_receipt = db.relationship(
        "FinalReceipt", back_populates="requisition", uselist=False, cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def approvals_in_round(self, review_round: int | None = None) -> list:
        rnd = self.review_round if review_round is None else review_round
        return [a for a in self.approvals if a.review_round == rnd]

    def to_dict(self, include_children: bool = True) -> dict:
        requester = self.requested_by
        d = {
            "id": self.id,
            "title": self.title,
            "church_id": self.church_id,
            "section_id": self.section_id,
            "section_name": self.section.name if self.section else None,
            "department_id": self.department_id,
            "department_name": self.department.name if self.department else None,
            "requested_by_id": self.requested_by_id,
            "requested_by_name": requester.name if requester else None,
            "requested_by_role": self.requested_by_role,
            "amount_requested": to_float(self.amount_requested),
            "category": self.category,
            "purpose": self.purpose,
            "date_needed": iso(self.date_needed),
            "status": self.status,
            "review_round": self.review_round,
            "version": self.version,
            "attachments": list(self.attachments or []),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "completed_at": iso(self.completed_at),
        }
        if include_children:
            d["approvals"] = [a.to_dict() for a in self.approvals]
            d["activity_log"] = [a.to_dict() for a in self.activities]
            d["payment"] = self.payment.to_dict() if self.payment else None
            d["final_receipt"] = self.final_receipt.to_dict() if self.final_receipt else None
        return d

    def __repr__(self):
        return f"<Requisition {self.id} {self.status!r}>"


class RequisitionApproval(db.Model):
    """One approver's decision in one review round.  Never updated or deleted."""

    __tablename__ = "requisition_approvals"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    requisition_id = db.Column(
        db.String(36),
        db.ForeignKey("requisitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    approver_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False)
    approver_name_snapshot = db.Column(db.String(200), nullable=True)
    status = db.Column(db.String(20), nullable=False, comment="APPROVED | REJECTED | REQUESTED_CHANGES")
    comments = db.Column(db.Text, nullable=True)
    stage = db.Column(db.String(40), nullable=False, comment="Requisition status the decision was taken in")
    review_round = db.Column(db.Integer, nullable=False, default=1)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    requisition = db.relationship("Requisition", back_populates="approvals")

    __table_args__ = (
        db.UniqueConstraint(
            "requisition_id", "review_round", "approver_id",
            name="uq_approval_round_approver",
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "approver_id": self.approver_id,
            "approver_name": self.approver_name_snapshot,
            "status": self.status,
            "comments": self.comments,
            "stage": self.stage,
            "review_round": self.review_round,
            "timestamp": iso(self.timestamp),
        }


class RequisitionActivity(db.Model):
    """Activity log entry.  ``sequence`` breaks timestamp ties in insertion order."""

    __tablename__ = "requisition_activities"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    requisition_id = db.Column(
        db.String(36),
        db.ForeignKey("requisitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence = db.Column(db.Integer, nullable=False)
    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    user_name_snapshot = db.Column(db.String(200), nullable=True)
    event = db.Column(db.String(40), nullable=False)
    action = db.Column(db.String(200), nullable=False)
    details = db.Column(db.Text, nullable=True)
    from_status = db.Column(db.String(40), nullable=True)
    to_status = db.Column(db.String(40), nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    requisition = db.relationship("Requisition", back_populates="activities")

    __table_args__ = (
        db.UniqueConstraint("requisition_id", "sequence", name="uq_activity_requisition_sequence"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name_snapshot,
            "event": self.event,
            "action": self.action,
            "details": self.details,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "timestamp": iso(self.timestamp),
        }


class Payment(db.Model):
    __tablename__ = "requisition_payments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    requisition_id = db.Column(
        db.String(36),
        db.ForeignKey("requisitions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    amount_paid = db.Column(db.Numeric(14, 2), nullable=False)
    payment_method = db.Column(db.String(30), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    reference_number = db.Column(db.String(100), nullable=True)
    proof_file = db.Column(db.JSON, nullable=True, comment="{name, url} metadata only")
    recorded_by_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    requisition = db.relationship("Requisition", back_populates="payment")

    def to_dict(self) -> dict:
        return {
            "amount_paid": to_float(self.amount_paid),
            "payment_method": self.payment_method,
            "payment_date": iso(self.payment_date),
            "reference_number": self.reference_number,
            "proof_file": self.proof_file,
            "recorded_by_id": self.recorded_by_id,
            "timestamp": iso(self.timestamp),
        }


class FinalReceipt(db.Model):
    __tablename__ = "requisition_receipts"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    requisition_id = db.Column(
        db.String(36),
        db.ForeignKey("requisitions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    name = db.Column(db.String(255), nullable=False)
    url = db.Column(db.String(1024), nullable=True)
    uploaded_by_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    requisition = db.relationship("Requisition", back_populates="final_receipt")

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "url": self.url,
            "uploaded_by_id": self.uploaded_by_id,
            "uploaded_at": iso(self.uploaded_at),
        }

"""
Workflow engine & requisition store, exercised below the HTTP layer.

Covers the check order, atomicity of failed transitions, optimistic
concurrency (version_id_col), the lock stripes and action-name parsing.
"""

import threading

import pytest
from sqlalchemy import func, select, text

from churchdesk import create_app
from churchdesk.config import TestingConfig
from churchdesk.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from churchdesk.models import db
from churchdesk.models.auth import ROLE_DEPT_HEAD
from churchdesk.models.requisition import (
    REQUISITION_STATUSES,
    REVIEW_ACTIONS,
    VERIFY_ACTIONS,
    Requisition,
    RequisitionActivity,
    RequisitionApproval,
)
from churchdesk.services import requisition_store, workflow_engine
from churchdesk.services.requisition_store import lock_for
from tests.factories import caller_for, draft, make_org, make_user, payment


@pytest.fixture()
def pending(org):
    return workflow_engine.create_requisition(caller_for(org.member), draft())


def _status(requisition_id):
    return db.session.scalar(select(Requisition.status).where(Requisition.id == requisition_id))


def _activity_count(requisition_id):
    return db.session.scalar(
        select(func.count(RequisitionActivity.id)).where(RequisitionActivity.requisition_id == requisition_id)
    )


class TestNormalizeAction:
    @pytest.mark.parametrize("raw", ["APPROVE", "approve", "Approve", " approve "])
    def test_simple(self, raw):
        assert workflow_engine.normalize_action(raw, REVIEW_ACTIONS) == "APPROVE"

    @pytest.mark.parametrize("raw", ["REQUEST_CHANGES", "RequestChanges", "request-changes", "request changes"])
    def test_compound(self, raw):
        assert workflow_engine.normalize_action(raw, REVIEW_ACTIONS) == "REQUEST_CHANGES"

    def test_allowed_set_is_enforced(self):
        assert workflow_engine.normalize_action("RequestCorrection", VERIFY_ACTIONS) == "REQUEST_CORRECTION"
        with pytest.raises(ValidationError):
            workflow_engine.normalize_action("VERIFY", REVIEW_ACTIONS)

    @pytest.mark.parametrize("raw", [None, "", 42])
    def test_missing(self, raw):
        with pytest.raises(ValidationError):
            workflow_engine.normalize_action(raw, REVIEW_ACTIONS)


class TestCheckOrder:
    def test_validation_precedes_not_found(self, org):
        with pytest.raises(ValidationError):
            workflow_engine.process_review_action(caller_for(org.dept_head), "missing-id", "REJECT", comments="")

    def test_not_found_precedes_conflict(self, org):
        with pytest.raises(NotFoundError):
            workflow_engine.process_review_action(
                caller_for(org.dept_head), "missing-id", "APPROVE", expected_version=99,
            )

    def test_conflict_precedes_invalid_transition(self, org, pending):
        workflow_engine.process_review_action(caller_for(org.dept_head), pending.id, "REJECT", comments="No")
        with pytest.raises(ConflictError):
            workflow_engine.process_review_action(
                caller_for(org.president), pending.id, "APPROVE", expected_version=1,
            )

    def test_invalid_transition_precedes_forbidden(self, org, pending):
        # Finance holds no review role, but the status check fires first.
        with pytest.raises(InvalidTransitionError):
            workflow_engine.disburse(caller_for(org.finance), pending.id, payment())
        with pytest.raises(ForbiddenError):
            workflow_engine.process_review_action(caller_for(org.finance), pending.id, "APPROVE")

    def test_create_forbidden_precedes_subscription_guard(self, org):
        org.church.subscription_ends_at = org.church.created_at
        db.session.commit()
        with pytest.raises(ForbiddenError):
            workflow_engine.create_requisition(caller_for(org.finance), draft())


class TestAtomicity:
    def test_failed_mutation_writes_nothing(self, org, pending):
        def _explode(requisition):
            requisition.status = "Completed"
            requisition_store.append_activity(
                requisition, caller_for(org.finance), event="BOOM", action="boom", to_status="Completed",
            )
            raise RuntimeError("database went away")

        with pytest.raises(RuntimeError):
            requisition_store.apply_transition(pending.id, _explode)
        assert _status(pending.id) == "Pending"
        assert _activity_count(pending.id) == 1

    def test_stale_write_becomes_conflict(self, org, pending):
        def _race(requisition):
            # Another worker commits a transition between our read and write.
            db.session.execute(
                text("UPDATE requisitions SET version = version + 1 WHERE id = :id"), {"id": requisition.id},
            )
            requisition.status = "Approved by Dept. Head"

        with pytest.raises(ConflictError):
            requisition_store.apply_transition(pending.id, _race)
        assert _status(pending.id) == "Pending"

    def test_each_transition_bumps_version(self, org, pending):
        start = pending.version
        req = workflow_engine.process_review_action(caller_for(org.dept_head), pending.id, "APPROVE")
        assert req.version == start + 1

    def test_invisible_requisition_is_not_found(self, org, pending):
        with pytest.raises(NotFoundError):
            requisition_store.apply_transition(pending.id, lambda r: None, caller=caller_for(org.music_member))


class TestCompetingReviewers:
    def test_second_department_head_loses(self, org, pending):
        second_head = make_user("Dora Head", ROLE_DEPT_HEAD, org.church, org.section, org.youth)
        db.session.commit()

        workflow_engine.process_review_action(caller_for(org.dept_head), pending.id, "APPROVE")
        with pytest.raises(InvalidTransitionError):
            workflow_engine.process_review_action(caller_for(second_head), pending.id, "APPROVE")

        count = db.session.scalar(
            select(func.count(RequisitionApproval.id)).where(RequisitionApproval.requisition_id == pending.id)
        )
        assert count == 1
        assert _status(pending.id) == "Approved by Dept. Head"

    def test_failed_review_leaves_status_and_log(self, org, pending):
        with pytest.raises(ValidationError):
            workflow_engine.process_review_action(caller_for(org.dept_head), pending.id, "REQUEST_CHANGES")
        assert _status(pending.id) == "Pending"
        assert _activity_count(pending.id) == 1


class TestConcurrentApprovals:
    """Two threads, each with its own session, approve the same requisition at once."""

    @pytest.fixture()
    def file_app(self, tmp_path, monkeypatch):
        monkeypatch.setattr(TestingConfig, "SQLALCHEMY_DATABASE_URI", f"sqlite:///{tmp_path / 'race.db'}")
        monkeypatch.setattr(
            TestingConfig, "SQLALCHEMY_ENGINE_OPTIONS", {"connect_args": {"check_same_thread": False}},
        )
        race_app = create_app("testing")
        yield race_app
        with race_app.app_context():
            db.engine.dispose()

    def test_exactly_one_department_head_wins(self, file_app):
        with file_app.app_context():
            org = make_org()
            rival = make_user("Dora Head", ROLE_DEPT_HEAD, org.church, org.section, org.youth)
            db.session.commit()
            requisition_id = workflow_engine.create_requisition(caller_for(org.member), draft()).id
            callers = [caller_for(org.dept_head), caller_for(rival)]

        barrier = threading.Barrier(len(callers))
        outcomes = []

        def _approve(caller):
            with file_app.app_context():
                barrier.wait()
                try:
                    workflow_engine.process_review_action(caller, requisition_id, "APPROVE")
                    outcomes.append("approved")
                except (ConflictError, InvalidTransitionError) as exc:
                    outcomes.append(type(exc).__name__)

        threads = [threading.Thread(target=_approve, args=(c,)) for c in callers]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert len(outcomes) == 2
        assert outcomes.count("approved") == 1
        with file_app.app_context():
            approvals = db.session.scalar(
                select(func.count(RequisitionApproval.id))
                .where(RequisitionApproval.requisition_id == requisition_id)
            )
            assert approvals == 1
            assert _status(requisition_id) == "Approved by Dept. Head"
            assert _activity_count(requisition_id) == 2


class TestLockStripes:
    def test_same_id_same_lock(self):
        assert lock_for("req-1") is lock_for("req-1")

    def test_stripes_are_bounded(self):
        locks = {id(lock_for(f"req-{n}")) for n in range(1000)}
        assert 1 < len(locks) <= 64


class TestNextApprovalStatus:
    def test_member_goes_to_dept_head_stage(self, pending):
        assert workflow_engine.next_approval_status(pending) == "Approved by Dept. Head"

    def test_dept_head_goes_straight_to_president(self, org):
        req = workflow_engine.create_requisition(caller_for(org.dept_head), draft())
        assert workflow_engine.next_approval_status(req) == "Approved by Section President"


def test_status_always_one_of_nine(org, pending):
    workflow_engine.process_review_action(caller_for(org.dept_head), pending.id, "APPROVE")
    workflow_engine.process_review_action(caller_for(org.president), pending.id, "APPROVE")
    workflow_engine.disburse(caller_for(org.finance), pending.id, payment(proof_file="transfer.png"))
    req = requisition_store.get(caller_for(org.member), pending.id)
    assert req.status in REQUISITION_STATUSES
    assert req.payment.proof_file == {"name": "transfer.png", "url": None}
    assert len(REQUISITION_STATUSES) == 9

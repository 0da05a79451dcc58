"""
Identity & Authorization.

``Caller`` is the verified identity of whoever is making a request.  It is
built from the users table on every request (middleware.jwt_auth) and passed
explicitly into every service call; there is no module-level session state.

``can_act`` is the single eligibility table for workflow actions.  It is a
pure function of (caller, requisition, action): no queries, no side effects.
Blueprints and the UI consume it; they never re-derive role rules.

Visibility:

    Member              own requisitions
    Department Head     own department
    Section President   own section
    Finance             own section
    Auditor             own section, or whole church when section_id is None
    Super Admin         whole church
    App Owner           every church (read-only)
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import false, true

from churchdesk.core.exceptions import AuthenticationError
from churchdesk.models import db
from churchdesk.models.auth import (
    ROLE_APP_OWNER,
    ROLE_AUDITOR,
    ROLE_DEPT_HEAD,
    ROLE_FINANCE,
    ROLE_MEMBER,
    ROLE_SECTION_PRESIDENT,
    ROLE_SUPER_ADMIN,
    User,
)
from churchdesk.models.requisition import (
    ACTION_DISBURSE,
    ACTION_RESUBMIT,
    ACTION_UPLOAD_RECEIPT,
    REQUISITION_TRANSITIONS,
    REVIEW_ACTIONS,
    STATUS_APPROVED_BY_DEPT_HEAD,
    STATUS_PENDING,
    VERIFY_ACTIONS,
    Requisition,
)


@dataclass(frozen=True)
class Caller:
    user_id: str
    role: str
    church_id: str | None = None
    section_id: str | None = None
    department_id: str | None = None
    name: str = ""

    @classmethod
    def from_user(cls, user: User) -> "Caller":
        return cls(
            user_id=user.id,
            role=user.role,
            church_id=user.church_id,
            section_id=user.section_id,
            department_id=user.department_id,
            name=user.name,
        )

    @property
    def is_app_owner(self) -> bool:
        return self.role == ROLE_APP_OWNER

    @property
    def is_church_wide(self) -> bool:
        """Super Admin, or an Auditor without a section."""
        return self.role == ROLE_SUPER_ADMIN or (
            self.role == ROLE_AUDITOR and self.section_id is None
        )


def resolve_caller(user_id: str) -> Caller:
    """Load the user behind a verified credential and freeze it into a Caller."""
    user = db.session.get(User, user_id) if user_id else None
    if user is None or not user.is_active:
        raise AuthenticationError("User account not found or inactive")
    return Caller.from_user(user)


# ═════════════════════════════════════════════════════════════════════════════
# Workflow eligibility
# ═════════════════════════════════════════════════════════════════════════════


def approval_stage_for(caller: Caller, requisition: Requisition) -> str | None:
    """Status in which ``caller`` is the designated reviewer of ``requisition``.

    Returns None when the caller is never a reviewer for it.  A requisition
    raised by a Department Head skips the department stage: its Section
    President reviews it while it is still Pending.
    """
    if caller.church_id != requisition.church_id:
        return None

    if requisition.requested_by_role == ROLE_DEPT_HEAD:
        if caller.role == ROLE_SECTION_PRESIDENT and caller.section_id == requisition.section_id:
            return STATUS_PENDING
        return None

    if (
        caller.role == ROLE_DEPT_HEAD
        and caller.department_id == requisition.department_id
        and caller.user_id != requisition.requested_by_id
    ):
        return STATUS_PENDING
    if caller.role == ROLE_SECTION_PRESIDENT and caller.section_id == requisition.section_id:
        return STATUS_APPROVED_BY_DEPT_HEAD
    return None


def has_acted_in_round(caller: Caller, requisition: Requisition) -> bool:
    return any(a.approver_id == caller.user_id for a in requisition.approvals_in_round())


def holds_role_for(caller: Caller, requisition: Requisition, action: str) -> bool:
    """Role & scope half of the table, ignoring the current status."""
    if action in REVIEW_ACTIONS:
        return approval_stage_for(caller, requisition) is not None
    if action == ACTION_DISBURSE or action in VERIFY_ACTIONS:
        return (
            caller.role == ROLE_FINANCE
            and caller.church_id == requisition.church_id
            and caller.section_id == requisition.section_id
        )
    if action in (ACTION_UPLOAD_RECEIPT, ACTION_RESUBMIT):
        return caller.user_id == requisition.requested_by_id
    return False


def can_act(caller: Caller, requisition: Requisition, action: str) -> bool:
    """Whether ``caller`` may perform ``action`` on ``requisition`` right now."""
    rule = REQUISITION_TRANSITIONS.get(action)
    if rule is None or requisition.status not in rule["from"]:
        return False
    if not holds_role_for(caller, requisition, action):
        return False
    if action in REVIEW_ACTIONS:
        return (
            approval_stage_for(caller, requisition) == requisition.status
            and not has_acted_in_round(caller, requisition)
        )
    return True


def available_actions(caller: Caller, requisition: Requisition) -> list[str]:
    """Every action ``caller`` could take now, in table order."""
    return [a for a in REQUISITION_TRANSITIONS if can_act(caller, requisition, a)]


# ═════════════════════════════════════════════════════════════════════════════
# Visibility
# ═════════════════════════════════════════════════════════════════════════════


def can_view(caller: Caller, requisition: Requisition) -> bool:
    if caller.is_app_owner:
        return True
    if caller.church_id != requisition.church_id:
        return False
    if caller.is_church_wide:
        return True
    # A requester always keeps sight of their own requisition
    if requisition.requested_by_id == caller.user_id:
        return True
    if caller.role == ROLE_MEMBER:
        return False
    if caller.role == ROLE_DEPT_HEAD:
        return requisition.department_id == caller.department_id
    if caller.role in (ROLE_SECTION_PRESIDENT, ROLE_FINANCE, ROLE_AUDITOR):
        return requisition.section_id == caller.section_id
    return False


def visibility_filter(caller: Caller):
    """SQL criterion equivalent to ``can_view`` for list queries."""
    if caller.is_app_owner:
        return true()
    if caller.church_id is None:
        return false()
    in_church = Requisition.church_id == caller.church_id
    if caller.is_church_wide:
        return in_church
    own = Requisition.requested_by_id == caller.user_id
    if caller.role == ROLE_MEMBER:
        return in_church & own
    if caller.role == ROLE_DEPT_HEAD:
        return in_church & (own | (Requisition.department_id == caller.department_id))
    if caller.role in (ROLE_SECTION_PRESIDENT, ROLE_FINANCE, ROLE_AUDITOR):
        return in_church & (own | (Requisition.section_id == caller.section_id))
    return in_church & own


def can_view_section(caller: Caller, church_id: str, section_id: str) -> bool:
    """Section-level dashboards (finance overview, cash book)."""
    if caller.is_app_owner:
        return True
    if caller.church_id != church_id:
        return False
    if caller.is_church_wide:
        return True
    return (
        caller.role in (ROLE_FINANCE, ROLE_SECTION_PRESIDENT, ROLE_AUDITOR)
        and caller.section_id == section_id
    )


def can_view_church(caller: Caller, church_id: str) -> bool:
    return caller.is_app_owner or caller.church_id == church_id

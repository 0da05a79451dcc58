"""
Audit Log Projection: church-wide, newest-first view of every activity entry.

Read-only.  Built from a single SELECT joining activity rows to their
requisition, so the result is one consistent snapshot (no per-requisition
follow-up queries that could interleave with a write).

Access:
    Super Admin                   whole church
    Auditor (section_id None)     whole church
    Auditor (section_id set)      their section only
    App Owner                     any church
"""

from __future__ import annotations

from sqlalchemy import select

from churchdesk.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from churchdesk.models import db
from churchdesk.models.auth import ROLE_AUDITOR, ROLE_SUPER_ADMIN
from churchdesk.models.church import Church
from churchdesk.models.requisition import Requisition, RequisitionActivity
from churchdesk.services.identity import Caller, can_view_church

MAX_LIMIT = 5000


def list_for_church(caller: Caller, church_id: str, limit: int | None = None) -> list[dict]:
    """Flattened activity log of every requisition in ``church_id``."""
    if db.session.get(Church, church_id) is None or not can_view_church(caller, church_id):
        raise NotFoundError(resource="Church", resource_id=church_id)
    if not caller.is_app_owner and caller.role not in (ROLE_SUPER_ADMIN, ROLE_AUDITOR):
        raise ForbiddenError("Only Super Admins and Auditors can read the audit trail")
    if limit is not None and (limit < 1 or limit > MAX_LIMIT):
        raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}", details={"limit": "out of range"})

    stmt = (
        select(RequisitionActivity, Requisition.id, Requisition.title)
        .join(Requisition, RequisitionActivity.requisition_id == Requisition.id)
        .where(Requisition.church_id == church_id)
    )
    if caller.role == ROLE_AUDITOR and caller.section_id is not None:
        stmt = stmt.where(Requisition.section_id == caller.section_id)
    stmt = stmt.order_by(
        RequisitionActivity.timestamp.desc(),
        RequisitionActivity.sequence.desc(),
    )
    if limit:
        stmt = stmt.limit(limit)

    entries = []
    for activity, requisition_id, title in db.session.execute(stmt).all():
        entry = activity.to_dict()
        entry["requisition_id"] = requisition_id
        entry["requisition_title"] = title
        entries.append(entry)
    return entries

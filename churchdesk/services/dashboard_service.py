"""Dashboard counters over the requisitions a caller can see."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select

from churchdesk.models import db
from churchdesk.models.requisition import (
    REQUISITION_STATUSES,
    STATUS_APPROVED_BY_DEPT_HEAD,
    STATUS_APPROVED_BY_SECTION_PRESIDENT,
    STATUS_PENDING,
    Requisition,
)
from churchdesk.services.identity import Caller, visibility_filter
from churchdesk.utils.helpers import to_float

# Still inside the approval chain
_IN_REVIEW = (STATUS_PENDING, STATUS_APPROVED_BY_DEPT_HEAD)


def dashboard_stats(caller: Caller, section_id: str | None = None) -> dict:
    stmt = (
        select(Requisition.status, func.count(Requisition.id), func.sum(Requisition.amount_requested))
        .where(visibility_filter(caller))
        .group_by(Requisition.status)
    )
    if section_id:
        stmt = stmt.where(Requisition.section_id == section_id)

    status_counts = {status: 0 for status in REQUISITION_STATUSES}
    total_amount = Decimal("0")
    for status, count, amount in db.session.execute(stmt).all():
        status_counts[status] = count
        total_amount += Decimal(str(amount or 0))

    return {
        "total": sum(status_counts.values()),
        "pending": sum(status_counts[s] for s in _IN_REVIEW),
        "awaiting_payment": status_counts[STATUS_APPROVED_BY_SECTION_PRESIDENT],
        "total_amount": to_float(total_amount),
        "status_counts": status_counts,
    }

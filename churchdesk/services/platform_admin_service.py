"""
Platform Admin Service: App Owner cross-church views.

All functions here are read-only except ``extend_subscription``, which lives
in subscription_service next to the guard it feeds.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select

from churchdesk.core.exceptions import ForbiddenError
from churchdesk.models import db
from churchdesk.models.auth import User
from churchdesk.models.church import SUBSCRIPTION_STATUSES, Church
from churchdesk.models.platform import PlatformActivity
from churchdesk.models.requisition import REQUISITION_STATUSES, Requisition
from churchdesk.utils.helpers import to_float, utcnow

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 20


def _require_app_owner(caller) -> None:
    if not caller.is_app_owner:
        logger.warning("Platform data denied for user %s (%s)", caller.user_id, caller.role)
        raise ForbiddenError("Only the App Owner can access platform administration")


def platform_snapshot(caller) -> dict:
    """Aggregated counts across every church."""
    _require_app_owner(caller)
    now = utcnow()

    user_counts = dict(
        db.session.execute(
            select(User.church_id, func.count(User.id))
            .where(User.church_id.is_not(None))
            .group_by(User.church_id)
        ).all()
    )
    requisition_rows = db.session.execute(
        select(
            Requisition.church_id,
            func.count(Requisition.id),
            func.coalesce(func.sum(Requisition.amount_requested), 0),
        ).group_by(Requisition.church_id)
    ).all()
    requisition_counts = {church_id: (count, amount) for church_id, count, amount in requisition_rows}

    churches = []
    subscription_counts = {status: 0 for status in SUBSCRIPTION_STATUSES}
    for church in db.session.scalars(select(Church).order_by(Church.created_at.desc())).all():
        status = church.subscription_status_at(now)
        subscription_counts[status] += 1
        count, amount = requisition_counts.get(church.id, (0, 0))
        row = church.to_dict()
        row["subscription_status"] = status
        row["user_count"] = user_counts.get(church.id, 0)
        row["requisition_count"] = count
        row["total_amount_requested"] = to_float(Decimal(str(amount)))
        churches.append(row)

    status_counts = {status: 0 for status in REQUISITION_STATUSES}
    for status, count in db.session.execute(
        select(Requisition.status, func.count(Requisition.id)).group_by(Requisition.status)
    ).all():
        status_counts[status] = count

    total_amount = sum((Decimal(str(amount)) for _, amount in requisition_counts.values()), Decimal("0"))
    recent = db.session.scalars(
        select(PlatformActivity)
        .order_by(PlatformActivity.timestamp.desc())
        .limit(RECENT_ACTIVITY_LIMIT)
    ).all()

    return {
        "churches": churches,
        "total_churches": len(churches),
        "total_users": db.session.scalar(select(func.count(User.id))),
        "total_requisitions": sum(status_counts.values()),
        "total_amount_requested": to_float(total_amount),
        "requisition_status_counts": status_counts,
        "subscription_status_counts": subscription_counts,
        "recent_activities": [a.to_dict() for a in recent],
    }

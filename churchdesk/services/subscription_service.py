"""
Tenancy & Subscription Guard.

Subscription expiry is evaluated on read (``Church.subscription_status``);
there is no scheduled job flipping churches to Expired.  The guard only blocks
new requisitions: anything already in flight keeps moving through the
workflow after expiry.

Extension arithmetic uses calendar months (dateutil.relativedelta) from
whichever is later, the current expiry or now, so extending a church with
time left never loses the remaining days.
"""

from __future__ import annotations

import logging

from dateutil.relativedelta import relativedelta

from churchdesk.core.exceptions import (
    ForbiddenError,
    NotFoundError,
    SubscriptionExpiredError,
    ValidationError,
)
from churchdesk.models import db
from churchdesk.models.church import SUBSCRIPTION_ACTIVE, SUBSCRIPTION_EXPIRED, Church
from churchdesk.models.platform import CATEGORY_SUBSCRIPTION, record_platform_activity
from churchdesk.services.identity import Caller
from churchdesk.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)

MIN_EXTENSION_MONTHS = 1
MAX_EXTENSION_MONTHS = 24


def get_church_or_404(church_id: str) -> Church:
    church = db.session.get(Church, church_id) if church_id else None
    if church is None:
        raise NotFoundError(resource="Church", resource_id=church_id)
    return church


def ensure_subscription_active(church: Church, now=None) -> None:
    """Raise SubscriptionExpiredError when the church's paid access has lapsed."""
    if church.subscription_status_at(now) == SUBSCRIPTION_EXPIRED:
        logger.warning(
            "Blocked mutation for expired church %s (ends_at=%s)",
            church.id, church.subscription_ends_at,
            extra={"church_id": church.id},
        )
        raise SubscriptionExpiredError(church.id, as_utc(church.subscription_ends_at))


def compute_extended_end(current_end, months: int, now=None):
    """New expiry: ``max(current_end, now) + months`` calendar months."""
    now = now or utcnow()
    current_end = as_utc(current_end)
    base = current_end if current_end is not None and current_end > now else now
    return base + relativedelta(months=months)


def extend_subscription(caller: Caller, church_id: str, months) -> Church:
    """App Owner only.  Extend a church's subscription and mark it Active."""
    if not caller.is_app_owner:
        raise ForbiddenError("Only the App Owner can extend subscriptions")

    if isinstance(months, bool) or not isinstance(months, int):
        try:
            months = int(str(months))
        except (TypeError, ValueError):
            raise ValidationError("months must be an integer", details={"months": "not an integer"})
    if not MIN_EXTENSION_MONTHS <= months <= MAX_EXTENSION_MONTHS:
        raise ValidationError(
            f"months must be between {MIN_EXTENSION_MONTHS} and {MAX_EXTENSION_MONTHS}",
            details={"months": "out of range"},
        )

    church = get_church_or_404(church_id)
    previous_end = as_utc(church.subscription_ends_at)
    church.subscription_ends_at = compute_extended_end(previous_end, months)
    church.subscription_tier = SUBSCRIPTION_ACTIVE
    record_platform_activity(
        CATEGORY_SUBSCRIPTION,
        f"{church.name} subscription extended by {months} month(s)",
        church_id=church.id,
    )
    db.session.commit()

    logger.info(
        "Subscription extended: church=%s months=%d %s -> %s",
        church.id, months, previous_end, church.subscription_ends_at,
        extra={"church_id": church.id, "user_id": caller.user_id},
    )
    return church

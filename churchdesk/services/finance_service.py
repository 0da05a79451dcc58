"""
Finance aggregators and the section cash book.

    financial_summary(caller, section_id)   balance = total_inflow - total_outflow
    finance_overview(caller, section_id)    disbursement / verification queues
    list_ledger_entries / record_ledger_entry

The summary only aggregates ledger rows: inflow bookkeeping is fed from
outside (offerings, transfers), outflows are posted by each disbursement.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import case, func, select

from churchdesk.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from churchdesk.models import db
from churchdesk.models.auth import ROLE_FINANCE
from churchdesk.models.church import Section
from churchdesk.models.finance import DIRECTION_INFLOW, DIRECTION_OUTFLOW, LEDGER_DIRECTIONS, LedgerEntry
from churchdesk.models.requisition import (
    STATUS_APPROVED_BY_SECTION_PRESIDENT,
    STATUS_COMPLETED,
    STATUS_PENDING_FINANCE_VERIFICATION,
    Payment,
    Requisition,
)
from churchdesk.services.identity import Caller, can_view_church, can_view_section
from churchdesk.services.requisition_store import with_children
from churchdesk.utils.helpers import clean_text, parse_amount, parse_date, parse_date_input, to_float, utcnow

logger = logging.getLogger(__name__)

RECENTLY_COMPLETED_LIMIT = 10


def _section_in_scope(caller: Caller, section_id: str) -> Section:
    section = db.session.get(Section, section_id) if section_id else None
    if section is None or not can_view_church(caller, section.church_id):
        raise NotFoundError(resource="Section", resource_id=section_id)
    if not can_view_section(caller, section.church_id, section.id):
        raise ForbiddenError("You do not have access to this section's finances")
    return section


def _requisitions_in(section_id: str, status: str, order_by):
    stmt = (
        select(Requisition)
        .where(Requisition.section_id == section_id, Requisition.status == status)
        .order_by(order_by)
    )
    return with_children(stmt)


def financial_summary(caller: Caller, section_id: str) -> dict:
    section = _section_in_scope(caller, section_id)
    inflow, outflow = db.session.execute(
        select(
            func.coalesce(
                func.sum(case((LedgerEntry.direction == DIRECTION_INFLOW, LedgerEntry.amount), else_=0)), 0,
            ),
            func.coalesce(
                func.sum(case((LedgerEntry.direction == DIRECTION_OUTFLOW, LedgerEntry.amount), else_=0)), 0,
            ),
        ).where(LedgerEntry.section_id == section.id)
    ).one()
    inflow = Decimal(str(inflow))
    outflow = Decimal(str(outflow))
    return {
        "section_id": section.id,
        "balance": to_float(inflow - outflow),
        "total_inflow": to_float(inflow),
        "total_outflow": to_float(outflow),
    }


def finance_overview(caller: Caller, section_id: str) -> dict:
    section = _section_in_scope(caller, section_id)

    awaiting = db.session.scalars(
        _requisitions_in(section.id, STATUS_APPROVED_BY_SECTION_PRESIDENT, Requisition.updated_at)
    ).all()
    verifying = db.session.scalars(
        _requisitions_in(section.id, STATUS_PENDING_FINANCE_VERIFICATION, Requisition.updated_at)
    ).all()
    completed = db.session.scalars(
        _requisitions_in(section.id, STATUS_COMPLETED, Requisition.completed_at.desc())
        .limit(RECENTLY_COMPLETED_LIMIT)
    ).all()
    total_disbursed = db.session.scalar(
        select(func.coalesce(func.sum(Payment.amount_paid), 0))
        .join(Requisition, Payment.requisition_id == Requisition.id)
        .where(Requisition.section_id == section.id)
    )

    return {
        "section_id": section.id,
        "awaiting_disbursement": [r.to_dict() for r in awaiting],
        "pending_verification": [r.to_dict() for r in verifying],
        "recently_completed": [r.to_dict() for r in completed],
        "total_disbursed": to_float(Decimal(str(total_disbursed))),
    }


def list_ledger_entries(caller: Caller, section_id: str, *, date_from=None, date_to=None) -> list[LedgerEntry]:
    section = _section_in_scope(caller, section_id)
    stmt = select(LedgerEntry).where(LedgerEntry.section_id == section.id)
    start, end = parse_date(date_from), parse_date(date_to)
    if start:
        stmt = stmt.where(LedgerEntry.entry_date >= start)
    if end:
        stmt = stmt.where(LedgerEntry.entry_date <= end)
    return list(
        db.session.scalars(stmt.order_by(LedgerEntry.entry_date.desc(), LedgerEntry.created_at.desc())).all()
    )


def record_ledger_entry(caller: Caller, section_id: str, data: dict) -> LedgerEntry:
    """Finance officer of the section keys in an inflow or a manual outflow."""
    direction = data.get("direction")
    if direction not in LEDGER_DIRECTIONS:
        raise ValidationError(
            f"direction must be one of {list(LEDGER_DIRECTIONS)}",
            details={"direction": "invalid"},
        )
    amount = parse_amount(data.get("amount"), "amount")
    description = clean_text(data.get("description"), "description", max_length=500)
    entry_date = (
        parse_date_input(data["entry_date"], "entry_date")
        if data.get("entry_date") else utcnow().date()
    )

    section = _section_in_scope(caller, section_id)
    if caller.role != ROLE_FINANCE or caller.section_id != section.id:
        raise ForbiddenError("Only the section's Finance officer can record ledger entries")

    entry = LedgerEntry(
        church_id=section.church_id,
        section_id=section.id,
        direction=direction,
        amount=amount,
        description=description,
        entry_date=entry_date,
        recorded_by_id=caller.user_id,
    )
    db.session.add(entry)
    db.session.commit()
    logger.info(
        "Ledger %s of %s recorded in section %s by %s", direction, amount, section.id, caller.user_id,
        extra={"church_id": section.church_id, "user_id": caller.user_id},
    )
    return entry

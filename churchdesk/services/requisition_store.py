"""
Requisition Store: the single shared mutable resource.

Contract:
    create(caller, draft)                      -> Requisition (status Pending)
    get(caller, requisition_id)                -> Requisition | NotFoundError
    list_requisitions(caller, filters)         -> [Requisition], newest first
    apply_transition(requisition_id, fn, ...)  -> Requisition

Only the workflow engine calls ``create`` and ``apply_transition``; every
other component reads.

Serialisation of transitions on one requisition:
  1. an in-process striped lock keyed by requisition id (threads of one worker)
  2. ``SELECT ... FOR UPDATE`` on the row (ignored by SQLite, honoured by
     PostgreSQL across workers)
  3. the mapper's version_id_col, so a stale UPDATE that slips past 1 and 2
     raises StaleDataError, surfaced as ConflictError

A transition either commits status, approvals, payment, receipt and activity
entries together or rolls all of them back.
"""

from __future__ import annotations

import logging
import threading
import zlib

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from churchdesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from churchdesk.models import db
from churchdesk.models.church import Department
from churchdesk.models.requisition import (
    REQUISITION_STATUSES,
    STATUS_PENDING,
    Requisition,
    RequisitionActivity,
)
from churchdesk.services.identity import Caller, can_view, visibility_filter
from churchdesk.utils.helpers import as_utc, clean_text, parse_amount, parse_date_input, utcnow

logger = logging.getLogger(__name__)

_LOCK_STRIPES = 64
_stripes = tuple(threading.Lock() for _ in range(_LOCK_STRIPES))

_LIST_FILTERS = ("church_id", "section_id", "department_id", "requested_by_id", "status")


def lock_for(requisition_id: str) -> threading.Lock:
    """Stripe guarding ``requisition_id``; stable for the life of the process."""
    return _stripes[zlib.crc32(requisition_id.encode("utf-8")) % _LOCK_STRIPES]


def with_children(stmt):
    return stmt.options(
        selectinload(Requisition.approvals),
        selectinload(Requisition.activities),
        selectinload(Requisition.payment),
        selectinload(Requisition.final_receipt),
        selectinload(Requisition.requested_by),
        selectinload(Requisition.department),
        selectinload(Requisition.section),
    )


# ── Draft validation ─────────────────────────────────────────────────────────


def clean_attachments(raw) -> list[dict]:
    """Normalise attachment metadata to ``[{name, url}]``."""
    if raw in (None, ""):
        return []
    if not isinstance(raw, list):
        raise ValidationError("attachments must be a list", details={"attachments": "not a list"})
    cleaned = []
    for idx, item in enumerate(raw):
        if isinstance(item, str):
            item = {"name": item}
        if not isinstance(item, dict) or not (item.get("name") or "").strip():
            raise ValidationError(
                "each attachment needs a file name",
                details={f"attachments[{idx}]": "name required"},
            )
        cleaned.append({"name": item["name"].strip(), "url": item.get("url")})
    return cleaned


_DRAFT_FIELDS = {
    "title": lambda v: clean_text(v, "title", max_length=200),
    "amount_requested": lambda v: parse_amount(v, "amount_requested"),
    "category": lambda v: clean_text(v, "category", max_length=100),
    "purpose": lambda v: clean_text(v, "purpose"),
    "date_needed": lambda v: parse_date_input(v, "date_needed"),
    "attachments": clean_attachments,
}


def validate_draft(draft: dict, partial: bool = False) -> dict:
    """Field-level validation shared by create and edit & resubmit.

    With ``partial=True`` only the fields present in ``draft`` are validated
    and returned.
    """
    return {
        field: parse(draft.get(field))
        for field, parse in _DRAFT_FIELDS.items()
        if not partial or field in draft
    }


def resolve_department(caller: Caller, department_id: str | None) -> Department:
    """The department a requisition is raised for; must sit in the caller's section."""
    department_id = department_id or caller.department_id
    department = db.session.get(Department, department_id) if department_id else None
    if department is None:
        raise ValidationError("department_id is not a valid department", details={"department_id": "unknown"})
    if department.section_id != caller.section_id:
        raise ValidationError(
            "department_id must belong to your section",
            details={"department_id": "outside caller section"},
        )
    return department


# ── Activity log ─────────────────────────────────────────────────────────────


def append_activity(
    requisition: Requisition,
    caller: Caller,
    *,
    event: str,
    action: str,
    to_status: str,
    from_status: str | None = None,
    details: str | None = None,
) -> RequisitionActivity:
    """Append one activity entry, clamping its timestamp to stay non-decreasing."""
    now = utcnow()
    last = max((as_utc(a.timestamp) for a in requisition.activities), default=None)
    if last is not None and last > now:
        now = last
    entry = RequisitionActivity(
        sequence=max((a.sequence for a in requisition.activities), default=0) + 1,
        user_id=caller.user_id,
        user_name_snapshot=caller.name,
        event=event,
        action=action,
        details=details,
        from_status=from_status,
        to_status=to_status,
        timestamp=now,
    )
    requisition.activities.append(entry)
    return entry


# ── Public API ───────────────────────────────────────────────────────────────


def create(caller: Caller, draft: dict) -> Requisition:
    """Persist a new Pending requisition with its CREATE activity entry.

    Role and subscription gating happen in ``workflow_engine.create_requisition``.
    """
    fields = validate_draft(draft)
    department = resolve_department(caller, draft.get("department_id"))

    requisition = Requisition(
        church_id=department.section.church_id,
        section_id=department.section_id,
        department_id=department.id,
        requested_by_id=caller.user_id,
        requested_by_role=caller.role,
        status=STATUS_PENDING,
        review_round=1,
        **fields,
    )
    append_activity(
        requisition, caller,
        event="CREATE",
        action="submitted the requisition",
        to_status=STATUS_PENDING,
    )
    db.session.add(requisition)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Requisition created: id=%s church=%s amount=%s by=%s",
        requisition.id, requisition.church_id, requisition.amount_requested, caller.user_id,
        extra={"requisition_id": requisition.id, "church_id": requisition.church_id,
               "user_id": caller.user_id},
    )
    return requisition


def get(caller: Caller, requisition_id: str) -> Requisition:
    """Fetch one requisition; unknown and invisible ids are both NotFound."""
    requisition = db.session.scalars(
        with_children(select(Requisition).where(Requisition.id == requisition_id))
    ).one_or_none()
    if requisition is None or not can_view(caller, requisition):
        raise NotFoundError(resource="Requisition", resource_id=requisition_id)
    return requisition


def list_requisitions(caller: Caller, filters: dict | None = None) -> list[Requisition]:
    """List requisitions matching ``filters``, intersected with caller visibility."""
    filters = {k: v for k, v in (filters or {}).items() if k in _LIST_FILTERS and v}
    status = filters.get("status")
    if status and status not in REQUISITION_STATUSES:
        raise ValidationError(
            f"status must be one of {list(REQUISITION_STATUSES)}",
            details={"status": "unknown status"},
        )

    stmt = select(Requisition).where(visibility_filter(caller))
    for field, value in filters.items():
        stmt = stmt.where(getattr(Requisition, field) == value)
    stmt = with_children(stmt.order_by(Requisition.created_at.desc(), Requisition.id))
    return list(db.session.scalars(stmt).all())


def apply_transition(
    requisition_id: str,
    mutation_fn,
    *,
    caller: Caller | None = None,
    expected_version: int | None = None,
) -> Requisition:
    """Run ``mutation_fn(requisition)`` under per-requisition mutual exclusion.

    ``mutation_fn`` validates preconditions and mutates the loaded aggregate;
    anything it raises aborts the transition with nothing written.
    """
    with lock_for(requisition_id):
        try:
            requisition = db.session.scalars(
                with_children(
                    select(Requisition)
                    .where(Requisition.id == requisition_id)
                    .with_for_update(of=Requisition)
                ).execution_options(populate_existing=True)
            ).one_or_none()
            if requisition is None or (caller is not None and not can_view(caller, requisition)):
                raise NotFoundError(resource="Requisition", resource_id=requisition_id)
            if expected_version is not None and requisition.version != expected_version:
                raise ConflictError(
                    f"Requisition was modified concurrently "
                    f"(expected version {expected_version}, found {requisition.version})"
                )

            mutation_fn(requisition)
            requisition.updated_at = utcnow()
            db.session.commit()
        except (StaleDataError, IntegrityError) as exc:
            db.session.rollback()
            logger.warning(
                "Concurrent transition lost on requisition %s: %s", requisition_id, exc,
                extra={"requisition_id": requisition_id},
            )
            raise ConflictError("Requisition was modified concurrently; reload and retry") from exc
        except Exception:
            db.session.rollback()
            raise
    return requisition

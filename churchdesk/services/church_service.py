"""
Church administration: self-service registration and the org tree.

Registration creates a church on a free trial together with its Super Admin
in one transaction.  Sections and departments are managed by that Super Admin.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import select

from churchdesk.core.exceptions import DuplicateError, ForbiddenError, NotFoundError
from churchdesk.models import db
from churchdesk.models.auth import ROLE_SUPER_ADMIN, User
from churchdesk.models.church import SUBSCRIPTION_TRIAL, Church, Department, Section
from churchdesk.models.platform import CATEGORY_NEW_CHURCH, record_platform_activity
from churchdesk.services import user_service
from churchdesk.services.identity import Caller, can_view_church
from churchdesk.utils.crypto import hash_password
from churchdesk.utils.helpers import clean_text, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TRIAL_PERIOD_DAYS = 30


def _trial_days() -> int:
    return int(current_app.config.get("TRIAL_PERIOD_DAYS", DEFAULT_TRIAL_PERIOD_DAYS))


def _require_church_admin(caller: Caller, church_id: str) -> Church:
    church = db.session.get(Church, church_id) if church_id else None
    if church is None or not can_view_church(caller, church_id):
        raise NotFoundError(resource="Church", resource_id=church_id)
    if caller.role != ROLE_SUPER_ADMIN:
        raise ForbiddenError("Only the church Super Admin can change the organisation")
    return church


def register_church(church_name, admin_name, admin_email, admin_password) -> tuple[Church, User]:
    """Create a church on a trial plus its Super Admin."""
    church_name = clean_text(church_name, "church_name", max_length=200)
    admin_name = clean_text(admin_name, "admin_name", max_length=200)
    email = user_service.normalize_email(admin_email)
    password = user_service.validate_password(admin_password)
    user_service.ensure_email_available(email)

    church = Church(
        name=church_name,
        subscription_tier=SUBSCRIPTION_TRIAL,
        subscription_ends_at=utcnow() + timedelta(days=_trial_days()),
    )
    db.session.add(church)
    db.session.flush()

    admin = User(
        church_id=church.id,
        name=admin_name,
        email=email,
        password_hash=hash_password(password),
        role=ROLE_SUPER_ADMIN,
    )
    db.session.add(admin)
    record_platform_activity(CATEGORY_NEW_CHURCH, f"{church_name} registered", church_id=church.id)
    db.session.commit()

    logger.info(
        "Church registered: %s (%s) admin=%s", church.id, church_name, admin.id,
        extra={"church_id": church.id, "user_id": admin.id},
    )
    return church, admin


def get_church(caller: Caller, church_id: str) -> Church:
    church = db.session.get(Church, church_id) if church_id else None
    if church is None or not can_view_church(caller, church_id):
        raise NotFoundError(resource="Church", resource_id=church_id)
    return church


def create_section(caller: Caller, church_id: str, name) -> Section:
    church = _require_church_admin(caller, church_id)
    name = clean_text(name, "name", max_length=200)
    existing = db.session.scalars(
        select(Section).where(Section.church_id == church.id, Section.name == name)
    ).first()
    if existing is not None:
        raise DuplicateError("Section", "name", name)

    section = Section(church_id=church.id, name=name)
    db.session.add(section)
    db.session.commit()
    logger.info("Section created: %s in church %s", section.id, church.id, extra={"church_id": church.id})
    return section


def create_department(caller: Caller, section_id: str, name) -> Department:
    section = db.session.get(Section, section_id) if section_id else None
    if section is None or not can_view_church(caller, section.church_id):
        raise NotFoundError(resource="Section", resource_id=section_id)
    _require_church_admin(caller, section.church_id)
    name = clean_text(name, "name", max_length=200)
    existing = db.session.scalars(
        select(Department).where(Department.section_id == section.id, Department.name == name)
    ).first()
    if existing is not None:
        raise DuplicateError("Department", "name", name)

    department = Department(section_id=section.id, name=name)
    db.session.add(department)
    db.session.commit()
    logger.info(
        "Department created: %s in section %s", department.id, section.id,
        extra={"church_id": section.church_id},
    )
    return department

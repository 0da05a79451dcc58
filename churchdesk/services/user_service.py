"""
User Service: accounts, login and role-scope rules.

Login is by email only, so addresses are unique platform-wide and stored
normalised (email-validator, lower-cased).
"""

from __future__ import annotations

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select

from churchdesk.core.exceptions import (
    AuthenticationError,
    DuplicateError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from churchdesk.models import db
from churchdesk.models.auth import (
    DEPARTMENT_ROLES,
    ROLE_APP_OWNER,
    ROLE_AUDITOR,
    ROLE_SUPER_ADMIN,
    SECTION_ROLES,
    VALID_ROLES,
    User,
)
from churchdesk.models.church import Department, Section
from churchdesk.models.platform import CATEGORY_SYSTEM, record_platform_activity
from churchdesk.services.identity import Caller, can_view_church
from churchdesk.utils.crypto import hash_password, verify_password
from churchdesk.utils.helpers import clean_text, utcnow

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

# Roles a church's Super Admin may hand out
ASSIGNABLE_ROLES = tuple(r for r in VALID_ROLES if r not in (ROLE_SUPER_ADMIN, ROLE_APP_OWNER))


def normalize_email(raw) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError("email is required", details={"email": "required"})
    try:
        valid = validate_email(raw.strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"})
    return valid.normalized.lower()


def validate_password(raw) -> str:
    if not isinstance(raw, str) or len(raw) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={"password": "too short"},
        )
    return raw


def get_user_by_email(email: str) -> User | None:
    return db.session.scalars(select(User).where(User.email == email)).first()


def ensure_email_available(email: str) -> None:
    if get_user_by_email(email) is not None:
        raise DuplicateError("User", "email", email)


def authenticate(email, password) -> User:
    """Check credentials and stamp last_login_at.  Any failure is the same 401."""
    if not email or not password:
        raise AuthenticationError("Invalid email or password")
    try:
        normalized = normalize_email(email)
    except ValidationError:
        raise AuthenticationError("Invalid email or password")

    user = get_user_by_email(normalized)
    if user is None or not verify_password(password, user.password_hash):
        logger.warning("Failed login for %s", normalized)
        raise AuthenticationError("Invalid email or password")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    user.last_login_at = utcnow()
    db.session.commit()
    logger.info("User %s logged in", user.id, extra={"user_id": user.id, "church_id": user.church_id})
    return user


def resolve_scope(role: str, church_id: str, section_id, department_id) -> tuple[str | None, str | None]:
    """Validate the (section, department) pair for ``role`` inside ``church_id``.

    Returns the cleaned ``(section_id, department_id)``.
    """
    section = db.session.get(Section, section_id) if section_id else None
    if section_id and (section is None or section.church_id != church_id):
        raise ValidationError("section_id is not a section of this church", details={"section_id": "unknown"})
    department = db.session.get(Department, department_id) if department_id else None
    if department_id and department is None:
        raise ValidationError("department_id is not a valid department", details={"department_id": "unknown"})

    if role in DEPARTMENT_ROLES:
        if section is None or department is None:
            raise ValidationError(
                f"{role} requires both section_id and department_id",
                details={"section_id": "required", "department_id": "required"},
            )
        if department.section_id != section.id:
            raise ValidationError(
                "department_id must belong to section_id",
                details={"department_id": "outside section"},
            )
        return section.id, department.id

    if department is not None:
        raise ValidationError(f"{role} cannot belong to a department", details={"department_id": "must be empty"})

    if role in SECTION_ROLES:
        if section is None:
            raise ValidationError(f"{role} requires section_id", details={"section_id": "required"})
        return section.id, None
    if role == ROLE_AUDITOR:
        return (section.id if section else None), None

    if section is not None:
        raise ValidationError(f"{role} cannot belong to a section", details={"section_id": "must be empty"})
    return None, None


def create_user(caller: Caller, data: dict) -> User:
    """Super Admin adds a user to their own church."""
    church_id = data.get("church_id") or caller.church_id
    if not can_view_church(caller, church_id):
        raise NotFoundError(resource="Church", resource_id=church_id)
    if caller.role != ROLE_SUPER_ADMIN:
        raise ForbiddenError("Only the church Super Admin can create users")

    role = data.get("role")
    if role not in ASSIGNABLE_ROLES:
        raise ValidationError(
            f"role must be one of {list(ASSIGNABLE_ROLES)}",
            details={"role": "invalid"},
        )
    name = clean_text(data.get("name"), "name", max_length=200)
    email = normalize_email(data.get("email"))
    password = validate_password(data.get("password"))
    section_id, department_id = resolve_scope(
        role, church_id, data.get("section_id"), data.get("department_id"),
    )
    ensure_email_available(email)

    user = User(
        church_id=church_id,
        section_id=section_id,
        department_id=department_id,
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    logger.info(
        "User created: %s (%s) in church %s by %s", user.id, role, church_id, caller.user_id,
        extra={"church_id": church_id, "user_id": caller.user_id},
    )
    return user


def list_users(caller: Caller, church_id: str) -> list[User]:
    if not can_view_church(caller, church_id):
        raise NotFoundError(resource="Church", resource_id=church_id)
    return list(
        db.session.scalars(
            select(User).where(User.church_id == church_id).order_by(User.name, User.email)
        ).all()
    )


def create_app_owner(name, email, password) -> User:
    """Bootstrap the platform operator account (CLI only)."""
    name = clean_text(name, "name", max_length=200)
    email = normalize_email(email)
    password = validate_password(password)
    ensure_email_available(email)

    user = User(name=name, email=email, password_hash=hash_password(password), role=ROLE_APP_OWNER)
    db.session.add(user)
    record_platform_activity(CATEGORY_SYSTEM, f"App Owner account created for {email}")
    db.session.commit()
    logger.info("App Owner created: %s", user.id, extra={"user_id": user.id})
    return user

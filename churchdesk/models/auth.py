"""
User model and role vocabulary.

Scope rules per role (enforced by user_service on creation):

    Member / Department Head   church + section + department (dept in section)
    Section President / Finance church + section, no department
    Auditor                     church, optional section (None = church-wide)
    Super Admin                 church only
    App Owner                   no church, platform scope
"""

from churchdesk.models import _uuid, db
from churchdesk.utils.helpers import iso, utcnow

ROLE_MEMBER = "Member"
ROLE_DEPT_HEAD = "Department Head"
ROLE_SECTION_PRESIDENT = "Section President"
ROLE_FINANCE = "Finance"
ROLE_AUDITOR = "Auditor"
ROLE_SUPER_ADMIN = "Super Admin"
ROLE_APP_OWNER = "App Owner"

VALID_ROLES = (
    ROLE_MEMBER,
    ROLE_DEPT_HEAD,
    ROLE_SECTION_PRESIDENT,
    ROLE_FINANCE,
    ROLE_AUDITOR,
    ROLE_SUPER_ADMIN,
    ROLE_APP_OWNER,
)

# Roles that submit requisitions and therefore belong to a department
DEPARTMENT_ROLES = frozenset({ROLE_MEMBER, ROLE_DEPT_HEAD})
# Roles bound to exactly one section and no department
SECTION_ROLES = frozenset({ROLE_SECTION_PRESIDENT, ROLE_FINANCE})


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    church_id = db.Column(
        db.String(36),
        db.ForeignKey("churches.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        comment="NULL only for App Owner",
    )
    section_id = db.Column(
        db.String(36),
        db.ForeignKey("sections.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    department_id = db.Column(
        db.String(36),
        db.ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(40), nullable=False, default=ROLE_MEMBER)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    church = db.relationship("Church")
    section = db.relationship("Section")
    department = db.relationship("Department")

    def to_dict(self) -> dict:
        """Serialize without the password hash."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "church_id": self.church_id,
            "section_id": self.section_id,
            "section_name": self.section.name if self.section else None,
            "department_id": self.department_id,
            "department_name": self.department.name if self.department else None,
            "is_active": self.is_active,
            "last_login_at": iso(self.last_login_at),
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.id} {self.email} ({self.role})>"

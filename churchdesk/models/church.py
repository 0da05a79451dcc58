"""
Tenancy models: Church → Section → Department.

A Church exclusively owns its Sections; a Section exclusively owns its
Departments.  The church's subscription status is never stored: only the
paid tier and the expiry instant are, and ``subscription_status`` is
computed on every read so an expired church can never report Trial/Active.
"""

from churchdesk.models import _uuid, db
from churchdesk.utils.helpers import as_utc, iso, utcnow

SUBSCRIPTION_TRIAL = "Trial"
SUBSCRIPTION_ACTIVE = "Active"
SUBSCRIPTION_EXPIRED = "Expired"

SUBSCRIPTION_STATUSES = (SUBSCRIPTION_TRIAL, SUBSCRIPTION_ACTIVE, SUBSCRIPTION_EXPIRED)


class Church(db.Model):
    __tablename__ = "churches"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    subscription_tier = db.Column(
        db.String(20),
        nullable=False,
        default=SUBSCRIPTION_TRIAL,
        comment="Trial | Active; Expired is derived from subscription_ends_at",
    )
    subscription_ends_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sections = db.relationship(
        "Section",
        back_populates="church",
        order_by="Section.name",
        cascade="all, delete-orphan",
    )

    def subscription_status_at(self, now=None) -> str:
        ends_at = as_utc(self.subscription_ends_at)
        if ends_at is None or ends_at < (now or utcnow()):
            return SUBSCRIPTION_EXPIRED
        return self.subscription_tier

    @property
    def subscription_status(self) -> str:
        return self.subscription_status_at()

    @property
    def is_expired(self) -> bool:
        return self.subscription_status == SUBSCRIPTION_EXPIRED

    def to_dict(self, include_sections: bool = False) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "subscription_status": self.subscription_status,
            "subscription_ends_at": iso(self.subscription_ends_at),
            "created_at": iso(self.created_at),
        }
        if include_sections:
            d["sections"] = [s.to_dict(include_departments=True) for s in self.sections]
        return d

    def __repr__(self):
        return f"<Church {self.id} {self.name!r}>"


class Section(db.Model):
    __tablename__ = "sections"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    church_id = db.Column(
        db.String(36),
        db.ForeignKey("churches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    church = db.relationship("Church", back_populates="sections")
    departments = db.relationship(
        "Department",
        back_populates="section",
        order_by="Department.name",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.UniqueConstraint("church_id", "name", name="uq_section_church_name"),
    )

    def to_dict(self, include_departments: bool = False) -> dict:
        d = {
            "id": self.id,
            "church_id": self.church_id,
            "name": self.name,
        }
        if include_departments:
            d["departments"] = [dep.to_dict() for dep in self.departments]
        return d

    def __repr__(self):
        return f"<Section {self.id} {self.name!r}>"


class Department(db.Model):
    __tablename__ = "departments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    section_id = db.Column(
        db.String(36),
        db.ForeignKey("sections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    section = db.relationship("Section", back_populates="departments")

    __table_args__ = (
        db.UniqueConstraint("section_id", "name", name="uq_department_section_name"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "section_id": self.section_id,
            "name": self.name,
        }

    def __repr__(self):
        return f"<Department {self.id} {self.name!r}>"

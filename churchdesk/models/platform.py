"""Platform-level event feed shown to the App Owner."""

from churchdesk.models import _uuid, db
from churchdesk.utils.helpers import iso, utcnow

CATEGORY_NEW_CHURCH = "NEW_CHURCH"
CATEGORY_SUBSCRIPTION = "SUBSCRIPTION"
CATEGORY_SYSTEM = "SYSTEM"


class PlatformActivity(db.Model):
    __tablename__ = "platform_activities"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    category = db.Column(db.String(20), nullable=False, comment="NEW_CHURCH | SUBSCRIPTION | SYSTEM")
    description = db.Column(db.String(500), nullable=False)
    church_id = db.Column(
        db.String(36),
        db.ForeignKey("churches.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "description": self.description,
            "church_id": self.church_id,
            "timestamp": iso(self.timestamp),
        }


def record_platform_activity(category: str, description: str, church_id: str | None = None):
    """Add a PlatformActivity to the current session.  Caller owns the commit."""
    entry = PlatformActivity(category=category, description=description, church_id=church_id)
    db.session.add(entry)
    return entry

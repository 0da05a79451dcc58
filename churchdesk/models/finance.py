"""
Section cash book.

Inflows come from external bookkeeping (offerings, transfers) and are keyed
in by Finance; each disbursement posts one outflow in the same transaction as
its Payment.  The financial summary only aggregates these rows.
"""

from churchdesk.models import _uuid, db
from churchdesk.utils.helpers import iso, to_float, utcnow

DIRECTION_INFLOW = "inflow"
DIRECTION_OUTFLOW = "outflow"
LEDGER_DIRECTIONS = (DIRECTION_INFLOW, DIRECTION_OUTFLOW)


class LedgerEntry(db.Model):
    __tablename__ = "ledger_entries"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    church_id = db.Column(
        db.String(36),
        db.ForeignKey("churches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    section_id = db.Column(
        db.String(36),
        db.ForeignKey("sections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    direction = db.Column(db.String(10), nullable=False, comment="inflow | outflow")
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    description = db.Column(db.String(500), nullable=False)
    entry_date = db.Column(db.Date, nullable=False)
    requisition_id = db.Column(
        db.String(36),
        db.ForeignKey("requisitions.id"),
        nullable=True,
        index=True,
    )
    recorded_by_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_ledger_amount_positive"),
        db.Index("ix_ledger_section_direction", "section_id", "direction"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "church_id": self.church_id,
            "section_id": self.section_id,
            "direction": self.direction,
            "amount": to_float(self.amount),
            "description": self.description,
            "entry_date": iso(self.entry_date),
            "requisition_id": self.requisition_id,
            "recorded_by_id": self.recorded_by_id,
            "created_at": iso(self.created_at),
        }

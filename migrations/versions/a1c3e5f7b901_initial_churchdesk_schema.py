"""Initial schema: tenancy, users, requisition workflow, cash book, platform feed

Revision ID: a1c3e5f7b901
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "a1c3e5f7b901"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "churches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("subscription_tier", sa.String(20), nullable=False, server_default="Trial"),
        sa.Column("subscription_ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "sections",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("church_id", sa.String(36), sa.ForeignKey("churches.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("church_id", "name", name="uq_section_church_name"),
    )

    op.create_table(
        "departments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("section_id", sa.String(36), sa.ForeignKey("sections.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("section_id", "name", name="uq_department_section_name"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("church_id", sa.String(36), sa.ForeignKey("churches.id", ondelete="CASCADE"), nullable=True, index=True),
        sa.Column("section_id", sa.String(36), sa.ForeignKey("sections.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("department_id", sa.String(36), sa.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(40), nullable=False, server_default="Member"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_login_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "requisitions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("church_id", sa.String(36), sa.ForeignKey("churches.id"), nullable=False, index=True),
        sa.Column("section_id", sa.String(36), sa.ForeignKey("sections.id"), nullable=False, index=True),
        sa.Column("department_id", sa.String(36), sa.ForeignKey("departments.id"), nullable=False, index=True),
        sa.Column("requested_by_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("requested_by_role", sa.String(40), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("amount_requested", sa.Numeric(14, 2), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("purpose", sa.Text(), nullable=False),
        sa.Column("date_needed", sa.Date(), nullable=False),
        sa.Column("attachments", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(40), nullable=False, server_default="Pending", index=True),
        sa.Column("review_round", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "requisition_approvals",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("requisition_id", sa.String(36), sa.ForeignKey("requisitions.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("approver_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("approver_name_snapshot", sa.String(200)),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("comments", sa.Text()),
        sa.Column("stage", sa.String(40), nullable=False),
        sa.Column("review_round", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("requisition_id", "review_round", "approver_id", name="uq_approval_round_approver"),
    )

    op.create_table(
        "requisition_activities",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("requisition_id", sa.String(36), sa.ForeignKey("requisitions.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("user_name_snapshot", sa.String(200)),
        sa.Column("event", sa.String(40), nullable=False),
        sa.Column("action", sa.String(200), nullable=False),
        sa.Column("details", sa.Text()),
        sa.Column("from_status", sa.String(40)),
        sa.Column("to_status", sa.String(40), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), index=True),
        sa.UniqueConstraint("requisition_id", "sequence", name="uq_activity_requisition_sequence"),
    )

    op.create_table(
        "requisition_payments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("requisition_id", sa.String(36), sa.ForeignKey("requisitions.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("amount_paid", sa.Numeric(14, 2), nullable=False),
        sa.Column("payment_method", sa.String(30), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("reference_number", sa.String(100)),
        sa.Column("proof_file", sa.JSON()),
        sa.Column("recorded_by_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "requisition_receipts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("requisition_id", sa.String(36), sa.ForeignKey("requisitions.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("url", sa.String(1024)),
        sa.Column("uploaded_by_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("church_id", sa.String(36), sa.ForeignKey("churches.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("section_id", sa.String(36), sa.ForeignKey("sections.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("direction", sa.String(10), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("requisition_id", sa.String(36), sa.ForeignKey("requisitions.id"), nullable=True, index=True),
        sa.Column("recorded_by_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount > 0", name="ck_ledger_amount_positive"),
    )
    op.create_index("ix_ledger_section_direction", "ledger_entries", ["section_id", "direction"])

    op.create_table(
        "platform_activities",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("church_id", sa.String(36), sa.ForeignKey("churches.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), index=True),
    )


def downgrade():
    op.drop_table("platform_activities")
    op.drop_index("ix_ledger_section_direction", table_name="ledger_entries")
    op.drop_table("ledger_entries")
    op.drop_table("requisition_receipts")
    op.drop_table("requisition_payments")
    op.drop_table("requisition_activities")
    op.drop_table("requisition_approvals")
    op.drop_table("requisitions")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    op.drop_table("departments")
    op.drop_table("sections")
    op.drop_table("churches")

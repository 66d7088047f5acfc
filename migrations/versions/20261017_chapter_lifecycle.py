"""chapter lifecycle tables: chapters, bids, payments, revisions, audit

Revision ID: 20261017_chapter_lifecycle
Revises:
Create Date: 2026-10-17 09:00:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


revision = "20261017_chapter_lifecycle"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = inspect(bind)
    tables = set(inspector.get_table_names())

    if "user" not in tables:
        op.create_table(
            "user",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=120), nullable=False),
            sa.Column("name", sa.String(length=50), nullable=False),
            sa.Column("password_hash", sa.String(length=256), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="student"),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    if "chapter" not in tables:
        op.create_table(
            "chapter",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("student_id", sa.Integer(), nullable=False),
            sa.Column("writer_id", sa.Integer(), nullable=True),
            sa.Column("chapter_number", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("summary", sa.String(length=500), nullable=True),
            sa.Column("content", sa.Text(), nullable=False, server_default=""),
            sa.Column("level", sa.String(length=20), nullable=False, server_default="masters"),
            sa.Column("work_type", sa.String(length=20), nullable=False, server_default="coursework"),
            sa.Column("urgency", sa.String(length=20), nullable=False, server_default="normal"),
            sa.Column("target_word_count", sa.Integer(), nullable=False, server_default="2000"),
            sa.Column("word_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("estimated_pages", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("estimated_cost_minor", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("currency", sa.String(length=10), nullable=False, server_default="KES"),
            sa.Column("deadline", sa.DateTime(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("status_reason", sa.Text(), nullable=True),
            sa.Column("paid", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("revision_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("bid_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("assigned_at", sa.DateTime(), nullable=True),
            sa.Column("delivered_at", sa.DateTime(), nullable=True),
            sa.Column("finalized_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["student_id"], ["user.id"]),
            sa.ForeignKeyConstraint(["writer_id"], ["user.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_chapter_status", "chapter", ["status"])

    if "bid" not in tables:
        op.create_table(
            "bid",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("chapter_id", sa.Integer(), nullable=False),
            sa.Column("writer_id", sa.Integer(), nullable=False),
            sa.Column("amount_minor", sa.Integer(), nullable=False),
            sa.Column("estimated_days", sa.Integer(), nullable=True),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("placed_by_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("submitted_at", sa.DateTime(), nullable=True),
            sa.Column("resolved_at", sa.DateTime(), nullable=True),
            sa.Column("released_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["chapter_id"], ["chapter.id"]),
            sa.ForeignKeyConstraint(["writer_id"], ["user.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_bid_chapter_id", "bid", ["chapter_id"])
        op.create_index(
            "uq_bid_one_accepted_per_chapter",
            "bid",
            ["chapter_id"],
            unique=True,
            sqlite_where=sa.text("status = 'accepted'"),
            postgresql_where=sa.text("status = 'accepted'"),
        )

    if "payment_record" not in tables:
        op.create_table(
            "payment_record",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("transaction_id", sa.String(length=64), nullable=False),
            sa.Column("chapter_id", sa.Integer(), nullable=False),
            sa.Column("payer_id", sa.Integer(), nullable=False),
            sa.Column("amount_minor", sa.Integer(), nullable=False),
            sa.Column("original_amount_minor", sa.Integer(), nullable=True),
            sa.Column("currency", sa.String(length=10), nullable=False, server_default="KES"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("payment_method", sa.String(length=30), nullable=True),
            sa.Column("transaction_reference", sa.String(length=120), nullable=True),
            sa.Column("platform_fee_minor", sa.Integer(), nullable=False),
            sa.Column("writer_share_minor", sa.Integer(), nullable=False),
            sa.Column("admin_share_minor", sa.Integer(), nullable=False),
            sa.Column("platform_fee_percentage", sa.String(length=12), nullable=False),
            sa.Column("writer_commission_percentage", sa.String(length=12), nullable=False),
            sa.Column("due_date", sa.DateTime(), nullable=True),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.Column("failed_at", sa.DateTime(), nullable=True),
            sa.Column("failure_reason", sa.Text(), nullable=True),
            sa.Column("refunded_at", sa.DateTime(), nullable=True),
            sa.Column("refund_reason", sa.Text(), nullable=True),
            sa.Column("disputed_at", sa.DateTime(), nullable=True),
            sa.Column("dispute_reason", sa.Text(), nullable=True),
            sa.Column("dispute_resolved_at", sa.DateTime(), nullable=True),
            sa.Column("dispute_resolution", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["chapter_id"], ["chapter.id"]),
            sa.ForeignKeyConstraint(["payer_id"], ["user.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("transaction_id"),
        )
        op.create_index("ix_payment_record_chapter_id", "payment_record", ["chapter_id"])

    if "revision_cycle" not in tables:
        op.create_table(
            "revision_cycle",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("chapter_id", sa.Integer(), nullable=False),
            sa.Column("cycle_number", sa.Integer(), nullable=False),
            sa.Column("notes", sa.Text(), nullable=False),
            sa.Column("requested_by", sa.Integer(), nullable=True),
            sa.Column("requested_at", sa.DateTime(), nullable=True),
            sa.Column("due_at", sa.DateTime(), nullable=True),
            sa.Column("submitted_content", sa.Text(), nullable=True),
            sa.Column("submission_notes", sa.Text(), nullable=True),
            sa.Column("file_refs", sa.Text(), nullable=True),
            sa.Column("resolved_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["chapter_id"], ["chapter.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_revision_cycle_chapter_id", "revision_cycle", ["chapter_id"])

    if "chapter_version" not in tables:
        op.create_table(
            "chapter_version",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("chapter_id", sa.Integer(), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("changes", sa.String(length=255), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["chapter_id"], ["chapter.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_chapter_version_chapter_id", "chapter_version", ["chapter_id"])

    if "audit_entry" not in tables:
        op.create_table(
            "audit_entry",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("chapter_id", sa.Integer(), nullable=False),
            sa.Column("payment_id", sa.Integer(), nullable=True),
            sa.Column("actor_id", sa.Integer(), nullable=True),
            sa.Column("action", sa.String(length=40), nullable=False),
            sa.Column("from_status", sa.String(length=20), nullable=True),
            sa.Column("to_status", sa.String(length=20), nullable=True),
            sa.Column("detail", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["chapter_id"], ["chapter.id"]),
            sa.ForeignKeyConstraint(["payment_id"], ["payment_record.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_entry_chapter_id", "audit_entry", ["chapter_id"])


def downgrade():
    bind = op.get_bind()
    inspector = inspect(bind)
    tables = set(inspector.get_table_names())
    for name in ("audit_entry", "chapter_version", "revision_cycle", "payment_record", "bid", "chapter"):
        if name in tables:
            op.drop_table(name)

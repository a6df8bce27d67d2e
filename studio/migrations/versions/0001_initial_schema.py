"""Initial database schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-01-05 10:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

SERVICE_TYPES = ("music_lesson", "recording", "rehearsal", "dance", "arrangement", "voiceover")
BOOKING_STATUSES = ("pending", "confirmed", "in_progress", "completed", "cancelled", "rescheduled")
PAYMENT_STATUSES = ("pending", "paid", "expired", "failed")
POLICY_TYPES = ("cancellation", "rescheduling")


def upgrade() -> None:
    service_type = sa.Enum(*SERVICE_TYPES, name="service_type")
    booking_status = sa.Enum(*BOOKING_STATUSES, name="booking_status")
    payment_status = sa.Enum(*PAYMENT_STATUSES, name="payment_status")
    policy_type = sa.Enum(*POLICY_TYPES, name="policy_type")

    op.create_table(
        "instructors",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "bookings",
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("booking_reference", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("customer_name", sa.String(length=200), nullable=True),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("customer_contact", sa.String(length=64), nullable=True),
        sa.Column("service_type", service_type, nullable=False),
        sa.Column("room", sa.String(length=64), nullable=False),
        sa.Column("instructor_id", sa.Integer(), nullable=True),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("status", booking_status, nullable=False, server_default="pending"),
        sa.Column("payment_status", payment_status, nullable=False, server_default="pending"),
        sa.Column("payment_method", sa.String(length=32), nullable=True),
        sa.Column("payment_reference", sa.String(length=128), nullable=True),
        sa.Column("invoice_id", sa.String(length=128), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("refund_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("rescheduling_fee", sa.Numeric(10, 2), nullable=True),
        sa.Column("rescheduled_from", sa.Integer(), nullable=True),
        sa.Column("rescheduled_to", sa.Integer(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.Integer(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("booking_id"),
        sa.ForeignKeyConstraint(["instructor_id"], ["instructors.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["rescheduled_from"], ["bookings.booking_id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["rescheduled_to"], ["bookings.booking_id"], ondelete="SET NULL"),
        sa.CheckConstraint("end_time > start_time", name="ck_bookings_same_day"),
    )
    op.create_index("ix_bookings_booking_reference", "bookings", ["booking_reference"], unique=True)
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_date_room", "bookings", ["booking_date", "room"])
    op.create_index("ix_bookings_date_instructor", "bookings", ["booking_date", "instructor_id"])

    op.create_table(
        "cancellation_policies",
        sa.Column("policy_id", sa.Integer(), nullable=False),
        sa.Column("policy_type", policy_type, nullable=False),
        sa.Column("hours_before_booking", sa.Integer(), nullable=False),
        sa.Column("refund_percentage", sa.Numeric(5, 2), nullable=True),
        sa.Column("fee_percentage", sa.Numeric(5, 2), nullable=True),
        sa.Column("description", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("policy_id"),
    )
    op.create_index(
        "uq_policy_tier_active",
        "cancellation_policies",
        ["policy_type", "hours_before_booking"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "booking_refunds",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("refund_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("refund_reason", sa.String(length=32), nullable=False),
        sa.Column("refund_method", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.booking_id"], ondelete="CASCADE"),
    )

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_activity_logs_entity", "activity_logs", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_index("ix_activity_logs_entity", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_table("booking_refunds")
    op.drop_index("uq_policy_tier_active", table_name="cancellation_policies")
    op.drop_table("cancellation_policies")
    op.drop_index("ix_bookings_date_instructor", table_name="bookings")
    op.drop_index("ix_bookings_date_room", table_name="bookings")
    op.drop_index("ix_bookings_user_id", table_name="bookings")
    op.drop_index("ix_bookings_booking_reference", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("instructors")
    for enum_name in ("policy_type", "payment_status", "booking_status", "service_type"):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")

"""Seed default cancellation and rescheduling policy tiers

Revision ID: 0003_seed_default_policies
Revises: 0002_booking_overlap_exclusion
Create Date: 2026-01-05 10:10:00.000000
"""
from alembic import op
import sqlalchemy as sa

from studio.migrations.utils import table_exists


# revision identifiers, used by Alembic.
revision = "0003_seed_default_policies"
down_revision = "0002_booking_overlap_exclusion"
branch_labels = None
depends_on = None

DEFAULT_POLICIES = [
    # cancellation: refund_percentage
    ("cancellation", 48, 100, None, "Full refund when cancelled 48 hours or more before the booking"),
    ("cancellation", 24, 50, None, "50% refund when cancelled 24 to 48 hours before the booking"),
    ("cancellation", 0, 0, None, "No refund when cancelled less than 24 hours before the booking"),
    # rescheduling: fee_percentage
    ("rescheduling", 48, None, 0, "Free rescheduling 48 hours or more before the booking"),
    ("rescheduling", 24, None, 10, "10% fee when rescheduled 24 to 48 hours before the booking"),
    ("rescheduling", 8, None, 25, "25% fee when rescheduled 8 to 24 hours before the booking"),
]


def upgrade() -> None:
    if not table_exists("cancellation_policies"):
        return
    policies = sa.table(
        "cancellation_policies",
        sa.column("policy_type", sa.String()),
        sa.column("hours_before_booking", sa.Integer()),
        sa.column("refund_percentage", sa.Numeric(5, 2)),
        sa.column("fee_percentage", sa.Numeric(5, 2)),
        sa.column("description", sa.String()),
        sa.column("is_active", sa.Boolean()),
    )
    op.bulk_insert(
        policies,
        [
            {
                "policy_type": ptype,
                "hours_before_booking": hours,
                "refund_percentage": refund,
                "fee_percentage": fee,
                "description": desc,
                "is_active": True,
            }
            for ptype, hours, refund, fee, desc in DEFAULT_POLICIES
        ],
    )


def downgrade() -> None:
    op.execute(
        "DELETE FROM cancellation_policies "
        "WHERE (policy_type = 'cancellation' AND hours_before_booking IN (0, 24, 48)) "
        "OR (policy_type = 'rescheduling' AND hours_before_booking IN (8, 24, 48))"
    )

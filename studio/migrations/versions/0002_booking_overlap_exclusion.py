"""Forbid overlapping blocking bookings per room and per instructor

Revision ID: 0002_booking_overlap_exclusion
Revises: 0001_initial_schema
Create Date: 2026-01-05 10:05:00.000000
"""
from alembic import op
import sqlalchemy as sa

from studio.migrations.utils import pg_constraint_exists


# revision identifiers, used by Alembic.
revision = "0002_booking_overlap_exclusion"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None

# Statuses that no longer occupy their interval
_FREED = "('cancelled'::booking_status, 'rescheduled'::booking_status)"
_RANGE = "tsrange(booking_date + start_time, booking_date + end_time)"

_CONSTRAINTS = {
    "bookings_room_no_overlap": ("room", f"status NOT IN {_FREED}"),
    "bookings_instructor_no_overlap": (
        "instructor_id",
        f"instructor_id IS NOT NULL AND status NOT IN {_FREED}",
    ),
}


def upgrade() -> None:
    conn = op.get_bind()

    # Ensure GiST support for scalar equality is available
    conn.execute(sa.text("CREATE EXTENSION IF NOT EXISTS btree_gist;"))

    for name, (column, predicate) in _CONSTRAINTS.items():
        # Refuse to install over existing overlaps so the operator resolves them first.
        overlap = conn.execute(sa.text(f"""
            SELECT b1.booking_id, b2.booking_id
            FROM bookings b1
            JOIN bookings b2
              ON b1.{column} = b2.{column} AND b1.booking_id < b2.booking_id
            WHERE b1.booking_date = b2.booking_date
              AND b1.status NOT IN {_FREED} AND b2.status NOT IN {_FREED}
              AND tsrange(b1.booking_date + b1.start_time, b1.booking_date + b1.end_time)
                  && tsrange(b2.booking_date + b2.start_time, b2.booking_date + b2.end_time)
            LIMIT 1;
        """)).first()
        if overlap:
            raise RuntimeError(
                f"Bookings {overlap[0]} and {overlap[1]} overlap on {column}; "
                f"resolve them before installing {name}."
            )

        if pg_constraint_exists(name, conn):
            conn.execute(sa.text(f"ALTER TABLE bookings DROP CONSTRAINT {name};"))
        conn.execute(sa.text(
            f"ALTER TABLE bookings ADD CONSTRAINT {name} "
            f"EXCLUDE USING gist ({column} WITH =, {_RANGE} WITH &&) "
            f"WHERE ({predicate});"
        ))


def downgrade() -> None:
    conn = op.get_bind()
    for name in _CONSTRAINTS:
        conn.execute(sa.text(f"ALTER TABLE bookings DROP CONSTRAINT IF EXISTS {name};"))

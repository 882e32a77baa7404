"""Initial schema: rooms, bookings, slot exclusion constraint, change trigger.

Revision ID: 001
Revises: None
Create Date: 2026-03-01
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NOTIFY_FUNCTION = """
CREATE OR REPLACE FUNCTION notify_booking_change() RETURNS trigger AS $$
BEGIN
    PERFORM pg_notify(
        'booking_changes',
        json_build_object(
            'eventType', TG_OP,
            'new', CASE WHEN TG_OP = 'DELETE' THEN NULL ELSE row_to_json(NEW) END,
            'old', CASE WHEN TG_OP = 'INSERT' THEN NULL ELSE row_to_json(OLD) END
        )::text
    );
    RETURN NULL;
END;
$$ LANGUAGE plpgsql;
"""

NOTIFY_TRIGGER = """
CREATE TRIGGER bookings_notify_change
AFTER INSERT OR UPDATE OR DELETE ON bookings
FOR EACH ROW EXECUTE FUNCTION notify_booking_change();
"""


def upgrade() -> None:
    op.create_table(
        "rooms",
        sa.Column("room_id", sa.String(50), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("room_type", sa.String(100), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("features", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "bookings",
        sa.Column("booking_id", sa.String(16), primary_key=True),
        sa.Column("room_id", sa.String(50), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'Pending'")),
        sa.Column("owner_role", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("start_time < end_time", name="check_booking_time_order"),
        sa.CheckConstraint("status IN ('Pending', 'Approved', 'Rejected')", name="check_booking_status"),
        sa.CheckConstraint("owner_role IN ('student', 'teacher', 'admin')", name="check_booking_owner_role"),
    )
    op.create_index("ix_bookings_room_id", "bookings", ["room_id"])
    # Every conflict check is "this room on this date"
    op.create_index("ix_bookings_room_date", "bookings", ["room_id", "date"])
    op.create_index("ix_bookings_date", "bookings", ["date"])

    # No two live bookings for one room may overlap. Half-open ranges, so
    # 09:00-10:00 and 10:00-11:00 coexist. Rejected rows are exempt.
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
    op.execute(
        """
        ALTER TABLE bookings ADD CONSTRAINT excl_bookings_room_slot
        EXCLUDE USING gist (
            room_id WITH =,
            tsrange("date" + start_time, "date" + end_time, '[)') WITH &&
        ) WHERE (status <> 'Rejected')
        """
    )

    op.execute(NOTIFY_FUNCTION)
    op.execute(NOTIFY_TRIGGER)


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS bookings_notify_change ON bookings")
    op.execute("DROP FUNCTION IF EXISTS notify_booking_change()")
    op.drop_table("bookings")
    op.drop_table("rooms")

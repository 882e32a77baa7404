"""
Booking model: one room reserved for one time range on one date.

Key design decisions:
- booking_id is a short public token ("BK-7QX2A"), not a serial
- Rejected rows stay in the table but never occupy a slot
- Time/room/date are never updated in place; a change is cancel + recreate
- On PostgreSQL the migration adds an exclusion constraint over
  (room_id, date + [start_time, end_time)) for non-rejected rows
"""

from sqlalchemy import Column, String, Date, Time, Index, CheckConstraint

from roombook.db.base import Base, TimestampMixin

STATUS_PENDING = "Pending"
STATUS_APPROVED = "Approved"
STATUS_REJECTED = "Rejected"
BOOKING_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED)

OWNER_ROLES = ("student", "teacher", "admin")


def initial_status_for(role: str) -> str:
    """Students wait for approval; teachers and admins are approved instantly."""
    return STATUS_PENDING if role == "student" else STATUS_APPROVED


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    booking_id = Column(String(16), primary_key=True)
    room_id = Column(String(50), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String(20), nullable=False, default=STATUS_PENDING)
    owner_role = Column(String(20), nullable=False)

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="check_booking_time_order"),
        CheckConstraint(
            "status IN ('Pending', 'Approved', 'Rejected')", name="check_booking_status"
        ),
        CheckConstraint(
            "owner_role IN ('student', 'teacher', 'admin')", name="check_booking_owner_role"
        ),
        # Conflict query: all bookings for one room on one date
        Index("ix_bookings_room_date", "room_id", "date"),
        Index("ix_bookings_date", "date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.booking_id}, room={self.room_id}, date={self.date}, "
            f"{self.start_time}-{self.end_time}, status={self.status})>"
        )

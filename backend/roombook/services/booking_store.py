"""
Booking row store: the query/insert/update/delete surface the rest of the
service talks to. Thin wrappers over SQLAlchemy so the validator and the
write path never build queries themselves.
"""

from datetime import date
from typing import Optional

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from roombook.models.booking import Booking, STATUS_REJECTED


async def query_bookings(
    db: AsyncSession,
    room_id: str,
    booking_date: date,
    exclude_status: Optional[str] = STATUS_REJECTED,
) -> list[Booking]:
    """All bookings for one room on one date. Uses ix_bookings_room_date."""
    query = select(Booking).where(
        Booking.room_id == room_id,
        Booking.date == booking_date,
    )
    if exclude_status:
        query = query.where(Booking.status != exclude_status)

    result = await db.execute(query.order_by(Booking.start_time.asc()))
    return list(result.scalars().all())


async def insert_booking(db: AsyncSession, booking: Booking) -> Booking:
    db.add(booking)
    await db.flush()
    await db.refresh(booking)
    return booking


async def get_booking(db: AsyncSession, booking_id: str) -> Optional[Booking]:
    result = await db.execute(select(Booking).where(Booking.booking_id == booking_id))
    return result.scalar_one_or_none()


async def update_booking_status(db: AsyncSession, booking: Booking, status: str) -> Booking:
    booking.status = status
    await db.flush()
    await db.refresh(booking)
    return booking


async def delete_bookings(db: AsyncSession, room_id: str, booking_date: date) -> list[Booking]:
    """
    Delete every booking for a room on a date. Room match is case-insensitive.
    Returns the deleted rows so callers can build DELETE events from them.
    """
    result = await db.execute(
        select(Booking).where(
            func.lower(Booking.room_id) == room_id.strip().lower(),
            Booking.date == booking_date,
        )
    )
    rows = list(result.scalars().all())
    if rows:
        await db.execute(
            delete(Booking).where(Booking.booking_id.in_([b.booking_id for b in rows]))
        )
        await db.flush()
    return rows


async def delete_booking(db: AsyncSession, booking: Booking) -> Booking:
    await db.delete(booking)
    await db.flush()
    return booking


async def list_bookings(
    db: AsyncSession,
    room_id: Optional[str] = None,
    booking_date: Optional[date] = None,
    status: Optional[str] = None,
) -> list[Booking]:
    """Full booking list, newest first. Order is stable across calls."""
    query = select(Booking)
    if room_id:
        query = query.where(Booking.room_id == room_id)
    if booking_date:
        query = query.where(Booking.date == booking_date)
    if status:
        query = query.where(Booking.status == status)

    result = await db.execute(
        query.order_by(Booking.created_at.desc(), Booking.booking_id.desc())
    )
    return list(result.scalars().all())


async def list_schedule(db: AsyncSession) -> dict[str, list[Booking]]:
    """Non-rejected bookings grouped by ISO date, each day ordered by start time."""
    result = await db.execute(
        select(Booking)
        .where(Booking.status != STATUS_REJECTED)
        .order_by(Booking.date.asc(), Booking.start_time.asc(), Booking.booking_id.asc())
    )
    schedule: dict[str, list[Booking]] = {}
    for booking in result.scalars().all():
        schedule.setdefault(booking.date.isoformat(), []).append(booking)
    return schedule


async def list_upcoming(
    db: AsyncSession, from_date: date, limit: Optional[int] = None
) -> list[Booking]:
    """Non-rejected bookings on or after from_date, in calendar order."""
    query = (
        select(Booking)
        .where(Booking.status != STATUS_REJECTED, Booking.date >= from_date)
        .order_by(Booking.date.asc(), Booking.start_time.asc(), Booking.booking_id.asc())
    )
    if limit:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())

"""
Room registry reads.
"""

from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from roombook.models.room import Room


async def list_rooms(db: AsyncSession) -> list[Room]:
    result = await db.execute(select(Room).order_by(Room.room_id.asc()))
    return list(result.scalars().all())


async def get_room(db: AsyncSession, room_id: str) -> Optional[Room]:
    """Case-insensitive lookup; callers use the returned room_id as canonical."""
    result = await db.execute(
        select(Room).where(func.lower(Room.room_id) == room_id.strip().lower())
    )
    return result.scalars().first()

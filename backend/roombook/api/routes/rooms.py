"""
Room registry (read-only).
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from roombook.db.session import get_db
from roombook.schemas.room import RoomResponse
from roombook.services.room_service import list_rooms

router = APIRouter(prefix="/rooms", tags=["Rooms"])


@router.get("", response_model=list[RoomResponse])
async def list_rooms_endpoint(db: AsyncSession = Depends(get_db)):
    return await list_rooms(db)

"""
Date-grouped schedule for calendar views, cached in Redis.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from roombook.db.session import get_db
from roombook.schemas.booking import BookingResponse
from roombook.services.booking_store import list_schedule
from roombook.services.cache_service import (
    get_cached_schedule,
    get_schedule_version,
    set_cached_schedule,
)
from roombook.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/schedule", tags=["Schedule"])


@router.get("", response_model=dict[str, list[BookingResponse]])
async def get_schedule(db: AsyncSession = Depends(get_db)):
    """
    Non-rejected bookings keyed by ISO date, each day ordered by start time.
    Cached until the next booking change (or the TTL).
    """
    version = await get_schedule_version()
    if version is not None:
        cached = await get_cached_schedule(version)
        if cached is not None:
            logger.debug("schedule_cache_hit", version=version)
            return cached

    schedule = await list_schedule(db)
    response_data = {
        day: [BookingResponse.model_validate(b).model_dump(mode="json") for b in bookings]
        for day, bookings in schedule.items()
    }
    if version is not None:
        await set_cached_schedule(response_data, version)
    return response_data

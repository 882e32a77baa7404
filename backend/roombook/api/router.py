"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from roombook.api.routes import bookings, chat, rooms, schedule, stream

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(stream.router)
api_router.include_router(bookings.router)
api_router.include_router(schedule.router)
api_router.include_router(rooms.router)
api_router.include_router(chat.router)

"""
Pydantic schemas for the room registry.
"""

from typing import Optional
from pydantic import BaseModel


class RoomResponse(BaseModel):
    room_id: str
    name: str
    room_type: Optional[str] = None
    capacity: Optional[int] = None
    features: list[str] = []

    model_config = {"from_attributes": True}

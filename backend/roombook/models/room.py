"""
Room registry entry. Reference data; bookings only check that the id exists.
"""

from sqlalchemy import Column, Integer, String, JSON

from roombook.db.base import Base, TimestampMixin


class Room(Base, TimestampMixin):
    __tablename__ = "rooms"

    room_id = Column(String(50), primary_key=True)
    name = Column(String(255), nullable=False, default="")
    room_type = Column(String(100), nullable=True)
    capacity = Column(Integer, nullable=True)
    features = Column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<Room(id={self.room_id}, name={self.name}, capacity={self.capacity})>"

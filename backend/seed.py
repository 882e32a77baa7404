"""
Seed the room registry.

Usage (after `alembic upgrade head`):
    python seed.py
"""

import asyncio

from roombook.db.session import SessionLocal, engine
from roombook.models.room import Room
from roombook.services.room_service import get_room

ROOMS = [
    {"room_id": "CSIS-101", "name": "Lecture Hall A", "room_type": "Lecture Hall", "capacity": 120,
     "features": ["projector", "microphone"]},
    {"room_id": "CSIS-102", "name": "Lecture Hall B", "room_type": "Lecture Hall", "capacity": 80,
     "features": ["projector"]},
    {"room_id": "CSIS-201", "name": "Systems Lab", "room_type": "Computer Lab", "capacity": 40,
     "features": ["workstations", "projector"]},
    {"room_id": "CSIS-202", "name": "Networks Lab", "room_type": "Computer Lab", "capacity": 30,
     "features": ["workstations", "network rack"]},
    {"room_id": "CSIS-301", "name": "Seminar Room", "room_type": "Seminar Room", "capacity": 20,
     "features": ["whiteboard", "tv"]},
]


async def seed() -> None:
    async with SessionLocal() as session:
        for data in ROOMS:
            if await get_room(session, data["room_id"]) is None:
                session.add(Room(**data))
                print(f"Room {data['room_id']} created.")
        await session.commit()
    await engine.dispose()
    print("Room registry seeded successfully.")


if __name__ == "__main__":
    asyncio.run(seed())

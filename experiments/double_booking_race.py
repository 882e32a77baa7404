#!/usr/bin/env python3
"""
Double-booking race for the Room Booking API.

Fires many overlapping booking requests for one room and date at the same
moment, then reads the schedule back and checks that no two live bookings
overlap. Optionally holds an event stream open to count the
booking_change events that arrive while the race runs.

Usage (API running, rooms seeded):
    python double_booking_race.py
    python double_booking_race.py --room CSIS-201 --users 100 --watch
"""

import argparse
import asyncio
import json
import random
import time
from datetime import date, timedelta

import aiohttp

API_URL = "http://localhost:8000"
ROLES = ["student", "teacher"]


def random_slot() -> tuple[str, str]:
    """One- or two-hour slot on the half hour between 08:00 and 12:00."""
    start = random.choice(range(8 * 60, 11 * 60 + 1, 30))
    end = start + random.choice([60, 120])
    return f"{start // 60:02d}:{start % 60:02d}", f"{end // 60:02d}:{end % 60:02d}"


def to_minutes(value: str) -> int:
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


class DoubleBookingRace:
    def __init__(self, room_id: str, booking_date: str, users: int):
        self.room_id = room_id
        self.booking_date = booking_date
        self.users = users
        self.results = {
            "created": 0,
            "conflicts": 0,
            "failed": 0,
            "errors": 0,
            "response_times": [],
        }
        self.events_seen = 0

    async def book(self, session: aiohttp.ClientSession, user_num: int):
        start_time, end_time = random_slot()
        headers = {"X-User-Role": random.choice(ROLES)}
        started = time.perf_counter()

        try:
            async with session.post(
                f"{API_URL}/api/v1/bookings",
                json={
                    "room_id": self.room_id,
                    "date": self.booking_date,
                    "start_time": start_time,
                    "end_time": end_time,
                },
                headers=headers,
            ) as resp:
                elapsed = (time.perf_counter() - started) * 1000
                self.results["response_times"].append(elapsed)

                if resp.status == 201:
                    data = await resp.json()
                    self.results["created"] += 1
                    print(f"✓ User {user_num} booked {start_time}-{end_time} "
                          f"as {data['booking_id']} ({elapsed:.0f}ms)")
                elif resp.status == 409:
                    self.results["conflicts"] += 1
                    print(f"✗ User {user_num} conflict {start_time}-{end_time} ({elapsed:.0f}ms)")
                else:
                    self.results["failed"] += 1
                    print(f"✗ User {user_num} failed: {resp.status} ({elapsed:.0f}ms)")
        except aiohttp.ClientError as e:
            self.results["errors"] += 1
            print(f"✗ User {user_num} error: {e}")

    async def watch(self, session: aiohttp.ClientSession, ready: asyncio.Event):
        """Count booking_change events on the live stream."""
        async with session.get(f"{API_URL}/api/v1/bookings/stream") as resp:
            async for raw in resp.content:
                line = raw.decode().strip()
                if line == "event: connected":
                    ready.set()
                elif line == "event: booking_change":
                    self.events_seen += 1

    async def live_slots(self, session: aiohttp.ClientSession) -> list[tuple[int, int, str]]:
        async with session.get(f"{API_URL}/api/v1/schedule") as resp:
            schedule = await resp.json()
        return sorted(
            (to_minutes(b["start_time"]), to_minutes(b["end_time"]), b["booking_id"])
            for b in schedule.get(self.booking_date, [])
            if b["room_id"] == self.room_id
        )

    async def cleanup(self, session: aiohttp.ClientSession):
        async with session.delete(
            f"{API_URL}/api/v1/bookings",
            params={"room_id": self.room_id, "date": self.booking_date},
        ) as resp:
            data = await resp.json()
            print(f"Cleanup: {data.get('message')}")

    async def run(self, watch: bool = False, keep: bool = False):
        print(f"\n{'='*60}")
        print(f"RACE: {self.users} requests -> {self.room_id} on {self.booking_date}")
        print(f"{'='*60}\n")

        async with aiohttp.ClientSession() as session:
            watcher = None
            if watch:
                ready = asyncio.Event()
                watcher = asyncio.create_task(self.watch(session, ready))
                await asyncio.wait_for(ready.wait(), timeout=5)
                print("✓ Event stream connected\n")

            started = time.perf_counter()
            await asyncio.gather(*(self.book(session, i) for i in range(self.users)))
            total_time = time.perf_counter() - started

            slots = await self.live_slots(session)

            if watcher is not None:
                await asyncio.sleep(1)
                watcher.cancel()

            print("\n" + "="*60)
            print("RESULTS")
            print("="*60)
            print(f"Total time:      {total_time:.2f}s")
            print(f"Created (201):   {self.results['created']}")
            print(f"Conflicts (409): {self.results['conflicts']}")
            print(f"Failed:          {self.results['failed']}")
            print(f"Errors:          {self.results['errors']}")
            if watch:
                print(f"Stream events:   {self.events_seen}")

            if self.results["response_times"]:
                times = sorted(self.results["response_times"])
                print("\nResponse times:")
                print(f"  Avg: {sum(times)/len(times):.0f}ms")
                print(f"  P50: {times[len(times)//2]:.0f}ms")
                print(f"  P95: {times[int(len(times)*0.95)]:.0f}ms")

            overlapping = [
                (a[2], b[2]) for a, b in zip(slots, slots[1:]) if a[1] > b[0]
            ]
            print("\n" + "="*60)
            if overlapping:
                print("✗ FAIL: DOUBLE BOOKING DETECTED!")
                for first, second in overlapping:
                    print(f"  {first} overlaps {second}")
            else:
                print(f"✓ PASS: {len(slots)} live bookings, none overlapping")
            print("="*60 + "\n")

            if not keep:
                await self.cleanup(session)

        print(json.dumps({k: v for k, v in self.results.items() if k != "response_times"}))


def main():
    parser = argparse.ArgumentParser(description="Concurrent same-room booking race")
    parser.add_argument("--room", default="CSIS-101")
    parser.add_argument("--date", default=(date.today() + timedelta(days=30)).isoformat())
    parser.add_argument("--users", type=int, default=50)
    parser.add_argument("--watch", action="store_true", help="count events on the live stream")
    parser.add_argument("--keep", action="store_true", help="leave the bookings in place")
    args = parser.parse_args()

    asyncio.run(DoubleBookingRace(args.room, args.date, args.users).run(args.watch, args.keep))


if __name__ == "__main__":
    main()

"""
Local booking view and the reducer that applies change events to it.

The view holds two projections of the same data:
  bookings  flat list, newest first, unique by booking_id
  schedule  ISO date -> bookings on that date, Rejected excluded

The same logical change can arrive more than once (native feed and explicit
broadcast), so every operation is keyed by booking_id and safe to repeat.
"""

from typing import Optional

REJECTED = "Rejected"


class BookingView:
    def __init__(self):
        self.bookings: list[dict] = []
        self.schedule: dict[str, list[dict]] = {}

    def replace_bookings(self, bookings: list[dict]) -> None:
        self.bookings = list(bookings)

    def replace_schedule(self, schedule: dict[str, list[dict]]) -> None:
        self.schedule = {day: list(entries) for day, entries in schedule.items()}

    def find(self, booking_id: str) -> Optional[dict]:
        return next((b for b in self.bookings if b.get("booking_id") == booking_id), None)

    def apply(self, event_type: str, new: Optional[dict], old: Optional[dict]) -> bool:
        """
        Apply one change event. Returns True when the schedule projection
        may be stale and should be re-fetched.
        """
        if event_type == "INSERT" and new:
            self._insert(new)
            return False
        if event_type == "UPDATE" and new:
            self._update(new)
            return True
        if event_type == "DELETE" and old:
            self._delete(old)
            return False
        return False

    def _insert(self, record: dict) -> None:
        booking_id = record.get("booking_id")
        if self.find(booking_id) is None:
            self.bookings.insert(0, dict(record))

        day = record.get("date")
        if not isinstance(day, str) or not day or record.get("status") == REJECTED:
            return
        bucket = self.schedule.setdefault(day, [])
        if not any(b.get("booking_id") == booking_id for b in bucket):
            bucket.append(dict(record))

    def _update(self, patch: dict) -> None:
        booking_id = patch.get("booking_id")
        existing = self.find(booking_id)
        if existing is not None:
            existing.update(patch)

        # Best effort; the follow-up schedule fetch is authoritative
        for day, bucket in list(self.schedule.items()):
            for entry in list(bucket):
                if entry.get("booking_id") != booking_id:
                    continue
                if patch.get("status") == REJECTED:
                    bucket.remove(entry)
                else:
                    entry.update(patch)
            if not bucket:
                del self.schedule[day]

    def _delete(self, record: dict) -> None:
        booking_id = record.get("booking_id")
        day = record.get("date")
        if day is None:
            existing = self.find(booking_id)
            day = existing.get("date") if existing else None

        self.bookings = [b for b in self.bookings if b.get("booking_id") != booking_id]

        days = [day] if isinstance(day, str) and day in self.schedule else list(self.schedule)
        for d in days:
            remaining = [b for b in self.schedule[d] if b.get("booking_id") != booking_id]
            if remaining:
                self.schedule[d] = remaining
            else:
                del self.schedule[d]

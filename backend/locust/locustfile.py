"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test double booking
  locust -f locustfile.py --tags throughput   # Test schedule cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import random
from datetime import date, timedelta

from locust import HttpUser, task, between, tag, events

ROOMS = ["CSIS-101", "CSIS-102", "CSIS-201", "CSIS-202", "CSIS-301"]
ROLES = ["student", "teacher"]

# Every concurrency user fights over this room and date
RACE_ROOM = "CSIS-101"
RACE_DATE = (date.today() + timedelta(days=60)).isoformat()


def hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def random_slot(earliest: int = 7 * 60, latest: int = 21 * 60) -> tuple[str, str]:
    start = random.choice(range(earliest, latest, 30))
    return hhmm(start), hhmm(start + random.choice([30, 60, 90, 120]))


def future_date(max_days: int = 30) -> str:
    return (date.today() + timedelta(days=random.randint(1, max_days))).isoformat()


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print(f"Race target: {RACE_ROOM} on {RACE_DATE}")
    print("="*60)


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    print("\nVerify no double booking:")
    print(f"  GET /api/v1/schedule -> entries for {RACE_DATE} / {RACE_ROOM} must not overlap")


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - many users, one room, one morning

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT start_time, end_time FROM bookings
      WHERE room_id = 'CSIS-101' AND date = '<RACE_DATE>' AND status <> 'Rejected'
      ORDER BY start_time;
    No row may start before the previous one ends.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = {"X-User-Role": random.choice(ROLES)}

    @tag("concurrency")
    @task
    def book_contested_slot(self):
        start, end = random_slot(8 * 60, 11 * 60)
        with self.client.post(
            "/api/v1/bookings",
            json={"room_id": RACE_ROOM, "date": RACE_DATE, "start_time": start, "end_time": end},
            headers=self.headers,
            name="/api/v1/bookings [race]",
            catch_response=True,
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()  # 409: slot taken, expected
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - schedule cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def schedule_cached(self):
        self.client.get("/api/v1/schedule", name="/api/v1/schedule [cached]")

    @tag("throughput", "read")
    @task(3)
    def list_bookings(self):
        self.client.get(
            f"/api/v1/bookings?room_id={random.choice(ROOMS)}",
            name="/api/v1/bookings?room_id",
        )

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - rule violations and bad input

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    Every request must get a 4xx with reasons, never a 5xx.
    """
    wait_time = between(0.5, 1.5)

    def _expect(self, payload, expected, name, **kwargs):
        with self.client.post("/api/v1/bookings", json=payload, name=name,
                              catch_response=True, **kwargs) as resp:
            if resp.status_code in expected:
                resp.success()
            else:
                resp.failure(f"Expected {expected}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_room(self):
        self._expect(
            {"room_id": "LIB-999", "date": future_date(), "start_time": "09:00", "end_time": "10:00"},
            (422,), "/api/v1/bookings [unknown room]",
        )

    @tag("edge")
    @task
    def after_hours(self):
        self._expect(
            {"room_id": "CSIS-101", "date": future_date(), "start_time": "22:00", "end_time": "23:00"},
            (409,), "/api/v1/bookings [after hours]",
        )

    @tag("edge")
    @task
    def past_date(self):
        self._expect(
            {"room_id": "CSIS-101", "date": "2020-01-01", "start_time": "09:00", "end_time": "10:00"},
            (409,), "/api/v1/bookings [past]",
        )

    @tag("edge")
    @task
    def too_long(self):
        self._expect(
            {"room_id": "CSIS-101", "date": future_date(), "start_time": "08:00", "end_time": "14:00"},
            (409,), "/api/v1/bookings [too long]",
        )

    @tag("edge")
    @task
    def garbage_times(self):
        self._expect(
            {"room_id": "CSIS-101", "date": future_date(), "start_time": "noon", "end_time": "late"},
            (409,), "/api/v1/bookings [garbage]",
        )

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/bookings", data="not json at all",
                              name="/api/v1/bookings [malformed]", catch_response=True) as resp:
            if resp.status_code in (400, 422):
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")

    @tag("edge")
    @task
    def non_admin_approve(self):
        with self.client.post("/api/v1/bookings/BK-00000/approve",
                              headers={"X-User-Role": "teacher"},
                              name="/api/v1/bookings/{id}/approve [forbidden]",
                              catch_response=True) as resp:
            if resp.status_code == 403:
                resp.success()
            else:
                resp.failure(f"Expected 403, got {resp.status_code}")


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly viewing the schedule
      - Some bookings, spread over rooms and days
      - Occasional admin approvals and cancellations
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = {"X-User-Role": random.choice(ROLES)}
        self.my_bookings = []

    @task(50)
    def view_schedule(self):
        self.client.get("/api/v1/schedule")

    @task(15)
    def view_rooms(self):
        self.client.get("/api/v1/rooms")

    @task(10)
    def book_room(self):
        start, end = random_slot()
        resp = self.client.post(
            "/api/v1/bookings",
            json={"room_id": random.choice(ROOMS), "date": future_date(),
                  "start_time": start, "end_time": end},
            headers=self.headers,
            name="/api/v1/bookings [book]",
        )
        if resp.status_code == 201:
            self.my_bookings.append(resp.json()["booking_id"])

    @task(3)
    def approve_pending(self):
        resp = self.client.get("/api/v1/bookings?status=Pending", name="/api/v1/bookings?status")
        if resp.status_code == 200 and resp.json():
            booking_id = random.choice(resp.json())["booking_id"]
            self.client.post(f"/api/v1/bookings/{booking_id}/approve",
                             headers={"X-User-Role": "admin"},
                             name="/api/v1/bookings/{id}/approve")

    @task(2)
    def cancel_own(self):
        if self.my_bookings:
            booking_id = self.my_bookings.pop()
            self.client.delete(f"/api/v1/bookings/{booking_id}", name="/api/v1/bookings/{id}")

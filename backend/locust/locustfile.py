"""
Locust Load Test Suite

Tokens are minted locally with the service's SECRET_KEY, so every simulated
user is a distinct principal without going through an identity provider.

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Race for the last spots
  locust -f locustfile.py --tags churn        # Join/leave on one event
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import random
import uuid
from locust import HttpUser, task, between, tag, events
from datetime import datetime, timezone, timedelta

from rsvp.core.security import create_access_token

# Shared state
EVENT_IDS = []
CONCURRENCY_EVENT_ID = None
CONCURRENCY_CAPACITY = 10


def principal_headers(principal_id=None):
    principal_id = principal_id or f"load-{uuid.uuid4().hex[:12]}"
    token = create_access_token(data={"sub": principal_id})
    return principal_id, {"Authorization": f"Bearer {token}"}


def event_payload(title, capacity, days=30):
    return {
        "title": title,
        "description": "Load test event",
        "date": (datetime.now(timezone.utc) + timedelta(days=days)).isoformat(),
        "location": "Test",
        "capacity": capacity,
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print("SETUP: Concurrency event is created by the first user")
    print("="*60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> 10 spots (owner holds one)

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      GET /api/v1/events/{id}/attendees -> attendeeCount <= 10
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.user_id, self.headers = principal_headers()

        if not CONCURRENCY_EVENT_ID:
            resp = self.client.post(
                "/api/v1/events/",
                json=event_payload("Concurrency Test Event", CONCURRENCY_CAPACITY),
                headers=self.headers,
            )
            if resp.status_code == 201:
                globals()["CONCURRENCY_EVENT_ID"] = resp.json()["event"]["id"]
                print(f"\nCreated event {CONCURRENCY_EVENT_ID} with {CONCURRENCY_CAPACITY} spots\n")

    @tag("concurrency")
    @task
    def join_limited_event(self):
        """All users fight for the same spots."""
        if not CONCURRENCY_EVENT_ID:
            return

        with self.client.post(
            f"/api/v1/events/{CONCURRENCY_EVENT_ID}/join",
            headers=self.headers,
            name="/api/v1/events/{id}/join",
            catch_response=True,
        ) as resp:
            if resp.status_code == 200:
                resp.success()
            elif resp.status_code == 400 and resp.json().get("error") in ("capacity_exceeded", "already_member"):
                resp.success()  # Expected: full, or our earlier join landed
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ChurnUser(HttpUser):
    """
    TEST 2: Churn - users repeatedly join and leave the same small event

    Run: locust -f locustfile.py --tags churn -u 100 -r 20 --run-time 60s

    Watch rsvp_admission_lost_races_total on /metrics while this runs.
    """
    wait_time = between(0, 0.2)

    def on_start(self):
        self.user_id, self.headers = principal_headers()

    @tag("churn")
    @task(5)
    def join(self):
        if not CONCURRENCY_EVENT_ID:
            return
        with self.client.post(
            f"/api/v1/events/{CONCURRENCY_EVENT_ID}/join",
            headers=self.headers,
            name="/api/v1/events/{id}/join",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 400):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("churn")
    @task(4)
    def leave(self):
        if not CONCURRENCY_EVENT_ID:
            return
        with self.client.post(
            f"/api/v1/events/{CONCURRENCY_EVENT_ID}/leave",
            headers=self.headers,
            name="/api/v1/events/{id}/leave",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 400):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("churn", "read")
    @task(2)
    def attendance(self):
        if not CONCURRENCY_EVENT_ID:
            return
        with self.client.get(
            f"/api/v1/events/{CONCURRENCY_EVENT_ID}/attendees",
            name="/api/v1/events/{id}/attendees",
            catch_response=True,
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Unexpected: {resp.status_code}")
                return
            data = resp.json()
            if data["attendeeCount"] > data["capacity"]:
                resp.failure(f"Over capacity: {data['attendeeCount']}/{data['capacity']}")
            else:
                resp.success()


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.user_id, self.headers = principal_headers()

    def expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_event_id(self):
        """Join non-existent event."""
        with self.client.post("/api/v1/events/does-not-exist/join",
            headers=self.headers,
            catch_response=True
        ) as resp:
            self.expect(resp, [404])

    @tag("edge")
    @task
    def zero_capacity(self):
        with self.client.post("/api/v1/events/",
            json=event_payload("Zero", 0),
            headers=self.headers,
            catch_response=True
        ) as resp:
            self.expect(resp, [422])

    @tag("edge")
    @task
    def past_date(self):
        with self.client.post("/api/v1/events/",
            json=event_payload("Past", 10, days=-1),
            headers=self.headers,
            catch_response=True
        ) as resp:
            self.expect(resp, [400])

    @tag("edge")
    @task
    def malformed_json(self):
        """Send garbage data."""
        with self.client.post("/api/v1/events/",
            data="not json at all",
            headers=self.headers,
            catch_response=True
        ) as resp:
            self.expect(resp, [400, 422])

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post(f"/api/v1/events/{CONCURRENCY_EVENT_ID or 'x'}/join",
            catch_response=True
        ) as resp:
            self.expect(resp, [401])

    @tag("edge")
    @task
    def leave_without_joining(self):
        if not EVENT_IDS:
            return
        with self.client.post(f"/api/v1/events/{random.choice(EVENT_IDS)}/leave",
            headers=principal_headers()[1],
            name="/api/v1/events/{id}/leave [not member]",
            catch_response=True
        ) as resp:
            self.expect(resp, [400, 404])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly browsing
      - Some joins and leaves
      - Rare creates
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.user_id, self.headers = principal_headers()
        self.joined = []

    @task(50)
    def browse_events(self):
        resp = self.client.get("/api/v1/events/")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @task(20)
    def view_event(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}", name="/api/v1/events/{id}")

    @task(10)
    def join_event(self):
        if EVENT_IDS:
            event_id = random.choice(EVENT_IDS)
            resp = self.client.post(f"/api/v1/events/{event_id}/join",
                headers=self.headers,
                name="/api/v1/events/{id}/join")
            if resp.status_code == 200:
                self.joined.append(event_id)

    @task(5)
    def leave_event(self):
        if self.joined:
            event_id = self.joined.pop(random.randrange(len(self.joined)))
            self.client.post(f"/api/v1/events/{event_id}/leave",
                headers=self.headers,
                name="/api/v1/events/{id}/leave")

    @task(3)
    def create_event(self):
        resp = self.client.post("/api/v1/events/",
            json=event_payload(f"Event {random.randint(1, 10000)}", random.randint(10, 500),
                               days=random.randint(1, 90)),
            headers=self.headers)
        if resp.status_code == 201:
            EVENT_IDS.append(resp.json()["event"]["id"])

"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags contention   # Many users, few tickets
  locust -f locustfile.py --tags read         # Availability and listing
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests

Tokens are minted locally with the service's SECRET_KEY, so run with the
same environment as the API.
"""

import random
import uuid
from locust import HttpUser, task, between, tag, events
from datetime import datetime, timezone, timedelta

from ticketqueue.core.security import create_access_token

# Shared state
EVENT_IDS = []
CONTENTION_EVENT_ID = None


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': user_id})}"}


def new_user_id() -> str:
    return f"load_{uuid.uuid4().hex[:12]}"


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print("SETUP: contention event is created by the first user")
    print("="*60)


class ContentionUser(HttpUser):
    """
    TEST 1: Contention - 100 users -> 10 tickets

    Run: locust -f locustfile.py --tags contention -u 100 -r 50 --run-time 60s

    After test, verify no over-allocation:
      SELECT COUNT(*) FROM tickets WHERE event_id = X AND status IN ('valid', 'used');
      SELECT SUM(quantity) FROM waiting_list
        WHERE event_id = X AND status = 'offered' AND offer_expires_at > <now ms>;
    The two together should be <= 10
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.user_id = new_user_id()
        self.headers = auth_headers(self.user_id)
        self.offer_id = None

        if not CONTENTION_EVENT_ID:
            future = (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()
            resp = self.client.post("/api/v1/events/",
                json={
                    "title": "Contention Test Event",
                    "description": "10 tickets only",
                    "date": future,
                    "location": "Test",
                    "total_tickets": 10,
                    "ticket_types": [
                        {"id": "ga", "name": "General Admission", "price": 25.0, "quantity": 10},
                    ],
                },
                headers=self.headers
            )
            if resp.status_code == 201:
                globals()["CONTENTION_EVENT_ID"] = resp.json()["id"]
                print(f"\nCreated event {CONTENTION_EVENT_ID} with 10 tickets\n")

    @tag("contention")
    @task(3)
    def join_queue(self):
        """All users fight for the same 10 tickets."""
        if not CONTENTION_EVENT_ID or self.offer_id:
            return

        with self.client.post("/api/v1/queue/join",
            json={"event_id": CONTENTION_EVENT_ID, "ticket_type_id": "ga", "quantity": 1},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                if resp.json()["status"] == "offered":
                    self.offer_id = resp.json()["waiting_list_id"]
                resp.success()
            elif resp.status_code in (409, 429):
                resp.success()  # Expected: already queued, contention, or rate limited
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("contention")
    @task(2)
    def purchase_offer(self):
        """Holders of an offer pay for it."""
        if not self.offer_id:
            return

        with self.client.post("/api/v1/purchases/",
            json={
                "event_id": CONTENTION_EVENT_ID,
                "waiting_list_id": self.offer_id,
                "payment": {"reference": f"pi_{uuid.uuid4().hex[:16]}", "amount": 25.0, "currency": "usd"},
            },
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")
            self.offer_id = None

    @tag("contention")
    @task(1)
    def check_position(self):
        if CONTENTION_EVENT_ID:
            self.client.get(f"/api/v1/queue/position/{CONTENTION_EVENT_ID}",
                headers=self.headers,
                name="/api/v1/queue/position/{event_id}")


class ReadUser(HttpUser):
    """
    TEST 2: Read path - availability is computed live on every request

    Run: locust -f locustfile.py --tags read -u 100 -r 20 --run-time 60s
    """
    wait_time = between(0.1, 0.5)

    @tag("read")
    @task(10)
    def availability(self):
        event_id = CONTENTION_EVENT_ID or (random.choice(EVENT_IDS) if EVENT_IDS else None)
        if event_id:
            self.client.get(f"/api/v1/events/{event_id}/availability",
                name="/api/v1/events/{id}/availability")

    @tag("read")
    @task(3)
    def list_events(self):
        page = random.randint(1, 5)
        resp = self.client.get(f"/api/v1/events/?page={page}&page_size=20",
            name="/api/v1/events/")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @tag("read")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = auth_headers(new_user_id())

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_event(self):
        with self.client.post("/api/v1/queue/join",
            json={"event_id": 999999},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, (404, 429))

    @tag("edge")
    @task
    def zero_quantity(self):
        with self.client.post("/api/v1/queue/join",
            json={"event_id": 1, "quantity": 0},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, (422,))

    @tag("edge")
    @task
    def purchase_without_offer(self):
        with self.client.post("/api/v1/purchases/",
            json={
                "event_id": 1,
                "waiting_list_id": 999999,
                "payment": {"reference": "pi_none", "amount": 1.0, "currency": "usd"},
            },
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, (404,))

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/queue/join",
            data="not json at all",
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, (400, 422))

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post("/api/v1/queue/join",
            json={"event_id": 1},
            catch_response=True
        ) as resp:
            self._expect(resp, (401,))

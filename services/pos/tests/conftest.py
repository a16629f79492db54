import asyncio
import json

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.config import SessionConfig
from app.session import PosSession

BASE_URL = "http://backend.test"

STUDENT = {
    "_id": "c-1",
    "student_name": "Asha Rao",
    "registration_number": "STU001",
}
OTHER_STUDENT = {
    "_id": "c-2",
    "student_name": "Ben Okafor",
    "registration_number": "STU002",
}
ITEMS = [
    {"_id": "p-a", "itemName": "Samosa", "price": 15, "stockQuantity": 40},
    {"_id": "p-b", "itemName": "Tea", "price": 10, "stockQuantity": 100},
    {"_id": "p-c", "itemName": "Juice", "price": 25, "stockQuantity": 12},
]


def purchase_json(purchase_id, student=STUDENT, reversed_=False, total=40):
    return {
        "_id": purchase_id,
        "student_id": student,
        "products": [
            {"productId": {"_id": "p-a", "itemName": "Samosa"}, "quantity": 2},
            {"productId": {"_id": "p-b", "itemName": "Tea"}, "quantity": 1},
        ],
        "totalAmount": total,
        "createdAt": "2026-10-01T09:30:00Z",
        "is_reversed": reversed_,
    }


class FakeBackend:
    """食堂バックエンドの代わりに httpx.MockTransport で応答する"""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.customers = {"STU001": STUDENT, "STU002": OTHER_STUDENT}
        self.face_customer = STUDENT
        self.items = list(ITEMS)
        self.purchases = [
            purchase_json("t-1"),
            purchase_json("t-2", student=OTHER_STUDENT, reversed_=True, total=-25),
        ]
        self.locations = [
            {"_id": "loc-1", "name": "Main Canteen"},
            {"_id": "loc-2", "name": "North Block"},
        ]
        # path -> (status, body) で強制的に失敗させる
        self.failures: dict[str, tuple[int, dict]] = {}
        # path -> Event。セットされるまで応答を保留する
        self.gates: dict[str, asyncio.Event] = {}

    def hold(self, path: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[path] = gate
        return gate

    def fail(self, path: str, status: int = 500, message: str = "Server exploded"):
        self.failures[path] = (status, {"success": False, "message": message})

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and r.url.path == path
        ]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        gate = self.gates.get(path)
        if gate is not None:
            await gate.wait()
        if path in self.failures:
            status, body = self.failures[path]
            return httpx.Response(status, json=body)

        if request.method == "GET" and path == "/customers":
            text = request.url.params.get("exactData", "")
            match = self.customers.get(text)
            return httpx.Response(200, json={"success": True, "data": [match] if match else []})

        if request.method == "POST" and path == "/customers/fetch-by-face":
            if self.face_customer is None:
                return httpx.Response(
                    200,
                    json={"success": False, "data": None, "message": "Student not found"},
                )
            return httpx.Response(200, json={"success": True, "data": self.face_customer})

        if request.method == "GET" and path == "/items":
            return httpx.Response(200, json={"success": True, "data": self.items})

        if request.method == "GET" and path == "/locations":
            return httpx.Response(200, json={"success": True, "data": self.locations})

        if request.method == "GET" and path == "/purchases":
            return httpx.Response(200, json={"success": True, "data": self.purchases})

        if request.method == "POST" and path == "/purchases":
            body = json.loads(request.content)
            created = {
                "_id": f"t-{len(self.purchases) + 1}",
                "student_id": next(
                    (c for c in self.customers.values() if c["_id"] == body["customerId"]),
                    body["customerId"],
                ),
                "products": body["products"],
                "totalAmount": 55,
                "createdAt": "2026-10-18T10:00:00Z",
                "is_reversed": False,
            }
            self.purchases.insert(0, created)
            return httpx.Response(201, json={"success": True, "data": created})

        if request.method == "POST" and path.endswith("/reverse"):
            purchase_id = path.split("/")[2]
            for p in self.purchases:
                if p["_id"] == purchase_id:
                    if p["is_reversed"]:
                        return httpx.Response(
                            409, json={"success": False, "message": "Already reversed"}
                        )
                    p["is_reversed"] = True
                    return httpx.Response(200, json={"success": True, "data": p})
            return httpx.Response(404, json={"success": False, "message": "No such purchase"})

        return httpx.Response(404, json={"success": False, "message": "Unknown route"})


class StubRedis:
    """get/set/delete/publish だけを持つ Redis の代役"""

    def __init__(self, data=None, broken=False):
        self.data = dict(data or {})
        self.published = []
        self.broken = broken

    def _check(self):
        if self.broken:
            raise RedisConnectionError("redis down")

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value):
        self._check()
        self.data[key] = value

    async def delete(self, key):
        self._check()
        self.data.pop(key, None)

    async def publish(self, channel, message):
        self._check()
        self.published.append((channel, json.loads(message)))


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
async def http(backend):
    async with httpx.AsyncClient(
        base_url=BASE_URL, transport=httpx.MockTransport(backend.handler)
    ) as client:
        yield client


@pytest.fixture
def config():
    return SessionConfig(api_url=BASE_URL, search_debounce_seconds=0.05)


@pytest.fixture
async def session(http, config):
    s = PosSession(http, config)
    await s.catalog.load()
    yield s
    await s.close()

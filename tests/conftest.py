"""
pytest configuration and shared fixtures for the Campus Safety API tests.

Key concern: tests must not require a live MongoDB.
We achieve this by:
  1. Patching connect_to_mongo / close_mongo_connection to no-ops so
     FastAPI's lifespan doesn't try to reach a real database.
  2. Setting db_client.client = None (disconnected) so health check
     correctly reports "disconnected" — a valid test-mode state.
  3. Overriding the get_db dependency with an in-memory FakeDB for
     routes that read or write data.
"""

import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from pymongo import ReturnDocument

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production")

T0 = datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc)


# ── In-memory MongoDB emulator ─────────────────────────────────────────────────

def _matches_value(actual, expected) -> bool:
    if isinstance(expected, dict) and any(k.startswith("$") for k in expected):
        for op, operand in expected.items():
            if op == "$in" and actual not in operand:
                return False
            if op == "$gte" and (actual is None or actual < operand):
                return False
            if op == "$lte" and (actual is None or actual > operand):
                return False
        return True
    return actual == expected


class FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs

    def sort(self, key: str, direction: int = 1):
        self._docs.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return self

    async def to_list(self, length=None):
        return list(self._docs if length is None else self._docs[:length])


class FakeCollection:
    """Minimal async-compatible replica of a Motor collection."""

    def __init__(self):
        self._docs: dict[str, dict] = {}

    @staticmethod
    def _matches(doc: dict, query: dict) -> bool:
        return all(_matches_value(doc.get(k), v) for k, v in query.items())

    async def find_one(self, query: dict):
        for doc in self._docs.values():
            if self._matches(doc, query):
                return dict(doc)
        return None

    def find(self, query=None):
        query = query or {}
        return FakeCursor([dict(d) for d in self._docs.values() if self._matches(d, query)])

    async def insert_one(self, doc: dict):
        oid = ObjectId()
        self._docs[str(oid)] = {**doc, "_id": oid}
        result = MagicMock()
        result.inserted_id = oid
        return result

    async def find_one_and_update(self, query: dict, update: dict, return_document=ReturnDocument.BEFORE):
        for doc in self._docs.values():
            if self._matches(doc, query):
                before = dict(doc)
                doc.update(update.get("$set", {}))
                for key, amount in update.get("$inc", {}).items():
                    doc[key] = doc.get(key, 0) + amount
                return dict(doc) if return_document == ReturnDocument.AFTER else before
        return None

    async def count_documents(self, query: dict):
        return sum(1 for d in self._docs.values() if self._matches(d, query))

    async def delete_one(self, query: dict):
        result = MagicMock()
        result.deleted_count = 0
        for key, doc in list(self._docs.items()):
            if self._matches(doc, query):
                del self._docs[key]
                result.deleted_count = 1
                break
        return result

    async def create_index(self, *_args, **_kwargs):
        return "ok"


class FakeDB:
    """Fake MongoDB database — lazily creates collections."""

    def __init__(self):
        self._cols: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._cols:
            self._cols[name] = FakeCollection()
        return self._cols[name]


class Clock:
    """Stand-in for the get_now dependency; tests move `now` by hand."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
async def mock_db():
    """
    Patch the MongoDB lifecycle for every test.

    - connect_to_mongo → no-op AsyncMock (startup doesn't attempt real connection)
    - close_mongo_connection → no-op AsyncMock
    - db_client.client / db_client.db → None
    """
    with (
        patch("campus_safety.core.database.connect_to_mongo", new_callable=AsyncMock),
        patch("campus_safety.core.database.close_mongo_connection", new_callable=AsyncMock),
    ):
        import campus_safety.core.database as db_module

        original_client = db_module.db_client.client
        original_db = db_module.db_client.db

        db_module.db_client.client = None
        db_module.db_client.db = None

        yield

        db_module.db_client.client = original_client
        db_module.db_client.db = original_db


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Fresh in-memory rate-limit counters so tests are independent."""
    from campus_safety.core.rate_limit import limiter

    limiter._limiter.storage.reset()
    yield


@pytest.fixture()
async def client(mock_db):  # noqa: ARG001 — mock_db must run first
    """HTTPX client against the app with no database at all."""
    from campus_safety.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def fake_db():
    """Fresh in-memory DB for each test."""
    return FakeDB()


@pytest.fixture()
async def api(fake_db):
    """
    HTTPX client with the get_db FastAPI dependency overridden to use
    the in-memory FakeDB instead of a real MongoDB connection.
    """
    from campus_safety.core.database import get_db
    from campus_safety.main import app

    app.dependency_overrides[get_db] = lambda: fake_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
def clock(api):  # noqa: ARG001 — overrides are cleared by `api`
    from campus_safety.main import app
    from campus_safety.routes.incidents import get_now

    c = Clock()
    app.dependency_overrides[get_now] = c
    return c


@pytest.fixture()
def make_user(fake_db):
    """
    Factory: store an account directly and return (UserOut, auth headers).

        user, headers = await make_user(Role.ADMIN)
    """
    from campus_safety.core.security import create_access_token
    from campus_safety.models.user import Role, UserStatus
    from campus_safety.repositories.users import UserDirectory

    counter = iter(range(1000, 10000))

    async def _make(
        role=Role.STUDENT,
        status=UserStatus.APPROVED,
        college_id=None,
        password="correct-horse-248",
        name=None,
        phone="BIO-0001",
    ):
        n = next(counter)
        user = await UserDirectory(fake_db).create(
            college_id=college_id or f"248U{n}",
            name=name or f"{role.value.title()} {n}",
            password=password,
            role=role,
            status=status,
            phone=phone,
        )
        return user, {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _make

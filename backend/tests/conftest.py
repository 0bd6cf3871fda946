"""
Shared fixtures.

The database URL must point at a throwaway SQLite file before anything
imports ``core.config``, so it is set at the top of this module. Tables
are recreated for every test and the engine pool is disposed afterwards
(each test runs on its own event loop).
"""

import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="logitrack-tests-")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(_DB_DIR, "test.db")
os.environ["JWT_SECRET"] = "test-secret-that-is-long-enough-for-hs256-signing"

from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Optional  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import select  # noqa: E402

from core.cache import MemoryCache, get_cache  # noqa: E402
from db.database import async_session_maker, create_db_and_tables, drop_db_and_tables, engine  # noqa: E402
from db.session import UserSession  # noqa: E402
from db.users import User  # noqa: E402
from main import app  # noqa: E402

PASSWORD = "Str0ng-Passw0rd!"


class FakeClock:
    """Manually advanced monotonic clock for cache expiry."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return MemoryCache(timer=clock)


@pytest_asyncio.fixture
async def client(cache):
    await create_db_and_tables()
    app.dependency_overrides[get_cache] = lambda: cache
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
    await drop_db_and_tables()
    await engine.dispose()


async def register(client, email: str, manager: bool = False, password: str = PASSWORD):
    path = "/api/auth/register-manager" if manager else "/api/auth/register"
    return await client.post(path, json={"email": email, "password": password, "first_name": "Test"})


async def login(client, email: str, password: str = PASSWORD):
    return await client.post("/api/auth/login", json={"email": email, "password": password})


async def set_role(email: str, role: Optional[str]) -> None:
    async with async_session_maker() as db:
        user = (await db.execute(select(User).where(User.email == email))).scalar_one()
        user.role = role
        await db.commit()


async def add_expired_session(email: str, token: str) -> None:
    async with async_session_maker() as db:
        user = (await db.execute(select(User).where(User.email == email))).scalar_one()
        now = datetime.now(timezone.utc)
        db.add(
            UserSession(
                user_id=user.id,
                session_token=token,
                created_at=now - timedelta(days=2),
                last_accessed_at=now - timedelta(days=2),
                expires_at=now - timedelta(days=1),
                is_active=True,
            )
        )
        await db.commit()


async def auth_headers(client, email: str, manager: bool = False, role: Optional[str] = None) -> dict:
    resp = await register(client, email, manager=manager)
    assert resp.status_code == 200, resp.text
    if role is not None:
        await set_role(email, role)
    resp = await login(client, email)
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest_asyncio.fixture
async def manager_headers(client):
    return await auth_headers(client, "manager@logitrack.com", manager=True)


@pytest_asyncio.fixture
async def employee_headers(client):
    return await auth_headers(client, "employee@logitrack.com")


@pytest_asyncio.fixture
async def customer_headers(client):
    return await auth_headers(client, "customer@logitrack.com", role="Customer")

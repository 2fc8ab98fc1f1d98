"""
Test infrastructure for the vlog API.

Strategy
--------
- SQLite in-memory via aiosqlite, shared through StaticPool because an
  in-memory database lives and dies with its single connection.
- ``PRAGMA foreign_keys=ON`` is issued on connect so SQLite enforces the
  same referential integrity Postgres does in production.
- The app's ``get_db`` dependency is overridden with the test session
  factory; tables are created before and dropped after every test.
- Redis is disabled (``cache._redis = None``); the cache manager treats
  that as a permanent miss.  Tests that exercise caching request the
  ``fake_redis`` fixture, an in-memory double for the calls CacheManager
  makes.
- bcrypt runs with the minimum cost factor to keep signups fast.
"""
import fnmatch
import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from vlog.cache import cache
from vlog.database import Base, get_db
from vlog.main import app
from vlog.middleware import install_query_counter
import vlog.models  # noqa: F401

# ---------------------------------------------------------------------------
# Test database engine
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine_test.sync_engine, "connect")
def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            cache.discard_post_invalidation(session)
            await session.rollback()
            raise
        await cache.apply_post_invalidation(session)


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    cache._redis = None
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live session for service-level tests; nothing is committed unless the test does it."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def register(async_client: AsyncClient):
    """
    Return ``register(email, password=..., nickname=...)`` which signs up
    and logs in through the API, yielding ``(user_dict, auth_headers)``.
    """

    async def _register(email: str, password: str = "password123", nickname: str | None = None):
        resp = await async_client.post("/api/v1/auth/signup", json={
            "email": email,
            "password": password,
            "nickname": nickname or email.split("@")[0],
        })
        assert resp.status_code == 201, resp.text
        login = await async_client.post("/api/v1/auth/login", json={
            "email": email,
            "password": password,
        })
        assert login.status_code == 200, login.text
        token = login.json()["access_token"]
        return resp.json(), {"Authorization": f"Bearer {token}"}

    return _register


class FakeRedis:
    """Dict-backed double for the redis.asyncio calls CacheManager makes."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value

    async def delete(self, *keys):
        return sum(self.store.pop(k, None) is not None for k in keys)

    async def exists(self, *keys):
        return sum(k in self.store for k in keys)

    async def scan_iter(self, match="*"):
        for key in list(self.store):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self):
        pass


@pytest_asyncio.fixture
async def fake_redis() -> FakeRedis:
    fake = FakeRedis()
    cache._redis = fake
    yield fake
    cache._redis = None

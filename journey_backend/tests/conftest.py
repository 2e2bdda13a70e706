"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from journey_backend.app.main import app
from journey_backend.app.db.session import get_db, Base
from journey_backend.app.core.dependencies import get_graph_cache
from journey_backend.app.core.redis_client import get_redis
from journey_backend.app.core.reliability import CircuitBreaker
from journey_backend.app.models.taxi_rank import TaxiRank
from journey_backend.app.models.transit_route import TransitRoute
from journey_backend.app.services.graph_cache import NetworkGraphCache
import journey_backend.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = str(value)
        return True

    async def incr(self, key):
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session")
def test_graph_cache(redis_client_session):
    return NetworkGraphCache(
        redis=redis_client_session,
        ttl_seconds=300,
        version_key="test:network:version",
        breaker=CircuitBreaker(failure_threshold=3, reset_timeout=30),
    )


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session, test_graph_cache):
    """Apply overrides once for the session."""
    # Patch the global redis client used by the health check
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    async def override_get_graph_cache():
        return test_graph_cache

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_graph_cache] = override_get_graph_cache
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture
async def setup_database(redis_client_session, test_graph_cache):
    """Create tables before each database test and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()
    test_graph_cache.clear()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client(setup_database):
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session(setup_database):
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
async def network(db_session):
    """
    Small network used across tests.

        A --(fare 10, 20 min)--> B --(fare 15, 25 min)--> C        D (isolated)

    Returns:
        dict of rank name -> rank id, plus "routes" -> {name: route id}
    """
    ranks = {
        "A": TaxiRank(name="Rank A", latitude=-26.20, longitude=28.04),
        "B": TaxiRank(name="Rank B", latitude=-26.10, longitude=28.05),
        "C": TaxiRank(name="Rank C", latitude=-26.00, longitude=28.06),
        "D": TaxiRank(name="Rank D", latitude=-25.75, longitude=28.19),
    }
    db_session.add_all(ranks.values())
    await db_session.flush()

    routes = {
        "AB": TransitRoute(
            route_name="A-B", origin_rank_id=ranks["A"].id, destination_rank_id=ranks["B"].id,
            fare=10.0, duration_minutes=20.0, distance_km=11.0
        ),
        "BC": TransitRoute(
            route_name="B-C", origin_rank_id=ranks["B"].id, destination_rank_id=ranks["C"].id,
            fare=15.0, duration_minutes=25.0, distance_km=12.0
        ),
    }
    db_session.add_all(routes.values())
    await db_session.commit()

    ids = {name: rank.id for name, rank in ranks.items()}
    ids["routes"] = {name: route.id for name, route in routes.items()}
    return ids


@pytest.fixture
def session_factory(setup_database):
    """Factory for extra sessions sharing the test database."""
    return TestingSessionLocal

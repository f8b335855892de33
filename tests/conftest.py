"""Shared test fixtures — async SQLite in-memory DB, view cache + test client."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from collections.abc import AsyncGenerator  # noqa: E402
from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

# Import all models so metadata is populated
import app.models  # noqa: E402, F401
from app.core.cache import CacheStore  # noqa: E402
from app.core.database import get_session  # noqa: E402
from app.models.analytics import TrackedEvent, Visitor, VisitSession  # noqa: E402
from app.models.base import utcnow  # noqa: E402
from app.main import app  # noqa: E402
from app.services.coordinator import FetchCoordinator  # noqa: E402

OWNER_EMAIL = "owner@eventdesk.com"
OWNER_PASSWORD = "testpass123"


class FakeClock:
    """Controllable replacement for ``time.time``."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> CacheStore:
    return CacheStore(ttl=300.0, clock=clock)


@pytest.fixture
def coordinator(store) -> FetchCoordinator:
    return FetchCoordinator(store)


@pytest.fixture
async def client(session, store, coordinator) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB session and view cache overrides."""

    async def _override_session():
        yield session

    app.dependency_overrides[get_session] = _override_session
    app.state.cache_store = store
    app.state.coordinator = coordinator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    store.clear()


async def login(client: AsyncClient, email: str, password: str) -> dict:
    resp = await client.post("/v1/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
async def owner_headers(client: AsyncClient) -> dict:
    """Bootstrap the owner account and return its bearer headers."""
    resp = await client.post("/v1/admins/bootstrap", json={
        "email": OWNER_EMAIL,
        "password": OWNER_PASSWORD,
        "display_name": "Owner",
    })
    assert resp.status_code == 201, resp.text
    return await login(client, OWNER_EMAIL, OWNER_PASSWORD)


@pytest.fixture
async def seeded_analytics(session: AsyncSession) -> dict:
    """Two visitors with sessions and events at fixed offsets from now.

    ``returning`` was first seen 40 days ago and visited again yesterday via
    Google; ``fresh`` arrived two days ago from Hacker News, converted, and
    came back directly yesterday.
    """
    now = utcnow()
    returning = Visitor(anon_id="anon-returning", first_seen_at=now - timedelta(days=40),
                        last_seen_at=now - timedelta(days=1), device_category="desktop")
    fresh = Visitor(anon_id="anon-fresh", first_seen_at=now - timedelta(days=2),
                    last_seen_at=now - timedelta(days=1), device_category="mobile", has_lead=True)
    session.add_all([returning, fresh])
    await session.flush()

    old_visit = VisitSession(
        visitor_id=returning.id, started_at=now - timedelta(days=40),
        landing_page="/", pageviews=5, duration=300, ip_address="10.0.0.1",
    )
    google_visit = VisitSession(
        visitor_id=returning.id, started_at=now - timedelta(days=1),
        landing_page="https://site.test/vendors?ref=1", pageviews=3, duration=120,
        referrer="https://www.google.com/search?q=market", device_category="desktop",
        ip_address="10.0.0.1",
    )
    hn_visit = VisitSession(
        visitor_id=fresh.id, started_at=now - timedelta(days=2),
        landing_page="/vendors", pageviews=2, duration=60,
        referrer="https://news.ycombinator.com/item?id=1", device_category="mobile",
        ip_address="10.0.0.2",
    )
    direct_visit = VisitSession(
        visitor_id=fresh.id, started_at=now - timedelta(days=1),
        landing_page="/", pageviews=1, duration=30, device_category="mobile",
        ip_address="10.0.0.2",
    )
    session.add_all([old_visit, google_visit, hn_visit, direct_visit])
    await session.flush()

    session.add_all([
        TrackedEvent(session_id=hn_visit.id, visitor_id=fresh.id, name="signup_click",
                     label="Sign up", is_conversion=True, occurred_at=hn_visit.started_at),
        TrackedEvent(session_id=google_visit.id, visitor_id=returning.id, name="signup_click",
                     occurred_at=google_visit.started_at),
        TrackedEvent(session_id=direct_visit.id, visitor_id=fresh.id, name="newsletter",
                     occurred_at=direct_visit.started_at),
    ])
    await session.commit()
    return {
        "returning": returning,
        "fresh": fresh,
        "google_visit": google_visit,
        "hn_visit": hn_visit,
        "direct_visit": direct_visit,
    }

"""Tests for the analytics aggregates and the cached dashboard endpoints."""

from datetime import datetime

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import CacheStore
from app.models.analytics import TimeRange
from app.services import analytics


def _counts(items) -> dict:
    return {item.label: item.count for item in items}


def test_date_range():
    now = datetime(2026, 3, 15, 10, 30)
    assert analytics.date_range(TimeRange.TODAY, now) == (datetime(2026, 3, 15), now)
    assert analytics.date_range(TimeRange.SEVEN_DAYS, now)[0] == datetime(2026, 3, 8, 10, 30)
    assert analytics.date_range(TimeRange.THIRTY_DAYS, now)[0] == datetime(2026, 2, 13, 10, 30)
    assert analytics.date_range(TimeRange.YEAR, now)[0] == datetime(2026, 1, 1)


@pytest.mark.parametrize(("referrer", "source"), [
    (None, "Direct"),
    ("", "Direct"),
    ("https://www.google.com/search", "Google"),
    ("https://l.facebook.com/", "Facebook"),
    ("https://twitter.com/x", "Twitter"),
    ("https://www.linkedin.com/feed", "LinkedIn"),
    ("https://old.reddit.com/r/events", "Reddit"),
    ("https://news.ycombinator.com", "Other"),
])
def test_classify_source(referrer, source):
    assert analytics.classify_source(referrer) == source


def test_referrer_domain():
    assert analytics.referrer_domain("https://www.google.com/search?q=x") == "google.com"
    assert analytics.referrer_domain("not a url") is None


@pytest.mark.asyncio
async def test_overview(session: AsyncSession, seeded_analytics: dict):
    data = await analytics.get_overview(session, TimeRange.THIRTY_DAYS)

    assert data.unique_users == 2
    assert data.total_sessions == 3
    assert data.total_pageviews == 6
    assert data.total_events == 3
    assert sum(day.count for day in data.sessions_over_time) == 3
    assert len(data.unique_users_over_time) == 2
    assert [(p.label, p.count) for p in data.top_pages] == [("/vendors", 5), ("/", 1)]
    assert _counts(data.device_breakdown) == {"mobile": 2, "desktop": 1}
    assert _counts(data.new_vs_returning) == {"New Users": 1, "Returning Users": 1}


@pytest.mark.asyncio
async def test_overview_empty(session: AsyncSession):
    data = await analytics.get_overview(session, TimeRange.SEVEN_DAYS)
    assert data.unique_users == 0
    assert data.total_pageviews == 0
    assert data.top_pages == []


@pytest.mark.asyncio
async def test_users(session: AsyncSession, seeded_analytics: dict):
    data = await analytics.get_users(session, TimeRange.THIRTY_DAYS)

    assert [u.anon_id for u in data.users] == ["anon-fresh"]
    user = data.users[0]
    assert user.sessions == 2
    assert user.avg_duration == 45
    assert user.has_lead
    assert sum(day.count for day in data.new_users_over_time) == 1


@pytest.mark.asyncio
async def test_sessions(session: AsyncSession, seeded_analytics: dict):
    data = await analytics.get_sessions(session, TimeRange.THIRTY_DAYS)

    assert len(data.sessions) == 3
    # Newest first
    assert data.sessions[-1].id == seeded_analytics["hn_visit"].id
    assert {s.anon_id for s in data.sessions} == {"anon-returning", "anon-fresh"}
    assert [(d.sessions, d.users) for d in data.sessions_per_user] == [(1, 1), (2, 1)]
    assert data.avg_session_length == 70
    assert data.avg_pages_per_session == 2.0


@pytest.mark.asyncio
async def test_events(session: AsyncSession, seeded_analytics: dict):
    data = await analytics.get_events(session, TimeRange.THIRTY_DAYS)

    by_name = {e.name: e for e in data.events}
    signup = by_name["signup_click"]
    assert signup.count == 2
    assert signup.unique_users == 2
    assert signup.label == "Sign up"
    assert signup.conversion_rate == 66.7
    assert by_name["newsletter"].label == "newsletter"
    assert data.top_events[0].label == "Sign up"
    assert sum(day.count for day in data.event_trends) == 3


@pytest.mark.asyncio
async def test_referrers(session: AsyncSession, seeded_analytics: dict):
    data = await analytics.get_referrers(session, TimeRange.THIRTY_DAYS)

    assert data.total_referrals == 2
    assert data.referral_traffic_percentage == 66.7
    by_domain = {r.domain: r for r in data.referrers}
    assert set(by_domain) == {"google.com", "news.ycombinator.com"}
    assert by_domain["news.ycombinator.com"].conversions == 1
    assert by_domain["google.com"].conversions == 0
    assert by_domain["google.com"].pages_per_session == 3.0
    assert by_domain["google.com"].traffic_share == 50.0
    assert _counts(data.traffic_share) == {"Google": 1, "Other": 1, "Direct": 1}


@pytest.mark.asyncio
async def test_referrers_without_referred_sessions(session: AsyncSession, seeded_analytics: dict):
    data = await analytics.get_referrers(session, TimeRange.TODAY)
    assert data.referrers == []
    assert data.total_referrals == 0


@pytest.mark.asyncio
async def test_session_and_user_detail(session: AsyncSession, seeded_analytics: dict):
    visit = seeded_analytics["hn_visit"]
    detail = await analytics.get_session_detail(session, visit.id)
    assert detail.anon_id == "anon-fresh"
    assert detail.referrer == "https://news.ycombinator.com/item?id=1"

    user = await analytics.get_user_detail(session, seeded_analytics["returning"].id)
    assert user.sessions == 2
    assert len(user.user_sessions) == 2


# ── Endpoints ────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_dashboard_view_is_cached_per_time_range(
    client: AsyncClient, store: CacheStore, seeded_analytics: dict, owner_headers: dict,
):
    first = await client.get("/v1/admin/analytics/overview", headers=owner_headers)
    assert first.status_code == 200
    assert first.json()["cached"] is False
    assert first.json()["data"]["total_sessions"] == 3

    second = (await client.get("/v1/admin/analytics/overview", headers=owner_headers)).json()
    assert second["cached"] is True
    assert second["cache_key"] == 'analytics-overview-{"time_range":"30days"}'
    assert "loading" not in second and "refreshing" not in second

    week = (await client.get(
        "/v1/admin/analytics/overview", params={"time_range": "7days"}, headers=owner_headers,
    )).json()
    assert week["cached"] is False
    assert len(store.keys("analytics")) == 2


@pytest.mark.asyncio
async def test_dashboard_refresh(client: AsyncClient, seeded_analytics: dict, owner_headers: dict):
    await client.get("/v1/admin/analytics/users", headers=owner_headers)
    resp = await client.get(
        "/v1/admin/analytics/users", params={"refresh": True}, headers=owner_headers,
    )
    assert resp.json()["cached"] is False


@pytest.mark.asyncio
async def test_every_view_is_served(client: AsyncClient, seeded_analytics: dict, owner_headers: dict):
    for view in ("overview", "users", "sessions", "events", "referrers"):
        resp = await client.get(f"/v1/admin/analytics/{view}", headers=owner_headers)
        assert resp.status_code == 200, view


@pytest.mark.asyncio
async def test_unknown_view_or_range(client: AsyncClient, owner_headers: dict):
    resp = await client.get("/v1/admin/analytics/funnels", headers=owner_headers)
    assert resp.status_code == 422
    resp = await client.get(
        "/v1/admin/analytics/overview", params={"time_range": "decade"}, headers=owner_headers,
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_detail_endpoints(client: AsyncClient, seeded_analytics: dict, owner_headers: dict):
    visit = seeded_analytics["google_visit"]
    resp = await client.get(f"/v1/admin/analytics/sessions/{visit.id}", headers=owner_headers)
    assert resp.status_code == 200
    assert resp.json()["anon_id"] == "anon-returning"

    resp = await client.get(
        f"/v1/admin/analytics/users/{seeded_analytics['fresh'].id}", headers=owner_headers,
    )
    assert resp.status_code == 200
    assert len(resp.json()["user_sessions"]) == 2

    missing = "00000000-0000-0000-0000-000000000000"
    resp = await client.get(f"/v1/admin/analytics/sessions/{missing}", headers=owner_headers)
    assert resp.status_code == 404
    resp = await client.get(f"/v1/admin/analytics/users/{missing}", headers=owner_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_fetch_failure_maps_to_502(
    client: AsyncClient, owner_headers: dict, monkeypatch: pytest.MonkeyPatch,
):
    async def broken(session, time_range):
        raise RuntimeError("warehouse offline")

    from app.api.v1 import analytics as analytics_routes

    monkeypatch.setitem(analytics_routes._VIEW_FETCHERS, analytics_routes.AnalyticsView.EVENTS, broken)
    resp = await client.get("/v1/admin/analytics/events", headers=owner_headers)
    assert resp.status_code == 502
    assert resp.json()["detail"] == {"message": "warehouse offline", "code": "fetch_failed"}

"""Tests for the back-office lead endpoints and their view caching."""

import csv
import io
from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import CacheStore
from app.models.base import utcnow
from app.models.lead import Lead, LeadKind, dump_json
from app.services.leads_admin import EXPORT_HEADERS
from conftest import FakeClock, login


async def _seed(session: AsyncSession) -> list[Lead]:
    now = utcnow()
    leads = [
        Lead(lead_kind=LeadKind.VENDOR, email="anna@bakery.test", business_name="Anna's Bakery",
             tags=dump_json(["food"]), created_at=now - timedelta(days=1)),
        Lead(lead_kind=LeadKind.VENDOR, email="bob@crafts.test", business_name="Bob Crafts",
             tags=dump_json(["crafts", "wood"]), created_at=now - timedelta(days=2)),
        Lead(lead_kind=LeadKind.SPONSOR, email="cara@bank.test", business_name="Cara Bank",
             meta=dump_json({"tier": "gold"}), created_at=now - timedelta(days=40)),
        Lead(lead_kind=LeadKind.VOLUNTEER, email="dan@mail.test", contact_name="Dan",
             created_at=now - timedelta(days=3)),
    ]
    session.add_all(leads)
    await session.commit()
    return leads


@pytest.mark.asyncio
async def test_search_returns_page_and_total(client: AsyncClient, session: AsyncSession, owner_headers: dict):
    await _seed(session)

    resp = await client.get("/v1/admin/leads", params={"limit": 2}, headers=owner_headers)
    assert resp.status_code == 200
    envelope = resp.json()
    assert envelope["cached"] is False
    assert envelope["cache_key"].startswith("leads-search-")
    data = envelope["data"]
    assert data["total"] == 4
    assert data["has_more"] is True
    # Newest first by default
    assert [lead["email"] for lead in data["leads"]] == ["anna@bakery.test", "bob@crafts.test"]


@pytest.mark.asyncio
async def test_search_filters(client: AsyncClient, session: AsyncSession, owner_headers: dict):
    await _seed(session)

    async def emails(**params) -> set[str]:
        resp = await client.get("/v1/admin/leads", params=params, headers=owner_headers)
        return {lead["email"] for lead in resp.json()["data"]["leads"]}

    assert await emails(kinds=["vendor", "volunteer"]) == {
        "anna@bakery.test", "bob@crafts.test", "dan@mail.test",
    }
    assert await emails(search="bakery") == {"anna@bakery.test"}
    assert await emails(tags=["wood"]) == {"bob@crafts.test"}
    cutoff = (utcnow() - timedelta(days=10)).isoformat()
    assert await emails(created_before=cutoff) == {"cara@bank.test"}


@pytest.mark.asyncio
async def test_search_ordering(client: AsyncClient, session: AsyncSession, owner_headers: dict):
    await _seed(session)
    resp = await client.get(
        "/v1/admin/leads", params={"order_by": "email", "direction": "asc"}, headers=owner_headers,
    )
    emails = [lead["email"] for lead in resp.json()["data"]["leads"]]
    assert emails == sorted(emails)


@pytest.mark.asyncio
async def test_search_is_cached_until_refresh(
    client: AsyncClient, session: AsyncSession, owner_headers: dict,
):
    await _seed(session)
    first = (await client.get("/v1/admin/leads", headers=owner_headers)).json()

    # A row written behind the API's back is not visible while the view is cached
    session.add(Lead(lead_kind=LeadKind.SUBSCRIBER, email="eve@mail.test"))
    await session.commit()

    cached = (await client.get("/v1/admin/leads", headers=owner_headers)).json()
    assert cached["cached"] is True
    assert cached["cache_key"] == first["cache_key"]
    assert cached["data"]["total"] == 4

    fresh = (await client.get("/v1/admin/leads", params={"refresh": True}, headers=owner_headers)).json()
    assert fresh["cached"] is False
    assert fresh["data"]["total"] == 5


@pytest.mark.asyncio
async def test_search_cache_expires(
    client: AsyncClient, session: AsyncSession, clock: FakeClock, owner_headers: dict,
):
    await _seed(session)
    await client.get("/v1/admin/leads", headers=owner_headers)
    clock.advance(301)

    resp = (await client.get("/v1/admin/leads", headers=owner_headers)).json()
    assert resp["cached"] is False


@pytest.mark.asyncio
async def test_distinct_filters_use_distinct_keys(
    client: AsyncClient, session: AsyncSession, store: CacheStore, owner_headers: dict,
):
    await _seed(session)
    await client.get("/v1/admin/leads", params={"offset": 0}, headers=owner_headers)
    await client.get("/v1/admin/leads", params={"offset": 2}, headers=owner_headers)
    await client.get("/v1/admin/leads", params={"kinds": ["vendor"]}, headers=owner_headers)
    assert len(store.keys("leads")) == 3


@pytest.mark.asyncio
async def test_counts_and_stats(client: AsyncClient, session: AsyncSession, owner_headers: dict):
    await _seed(session)

    counts = (await client.get("/v1/admin/leads/counts", headers=owner_headers)).json()["data"]
    assert counts == {"total": 4, "vendors": 2, "sponsors": 1, "volunteers": 1, "subscribers": 0}

    stats = (await client.get("/v1/admin/leads/stats", headers=owner_headers)).json()["data"]
    assert stats["total"] == 4
    assert stats["recent"] == 3
    assert stats["by_kind"]["vendor"] == 2


@pytest.mark.asyncio
async def test_get_lead(client: AsyncClient, session: AsyncSession, owner_headers: dict):
    leads = await _seed(session)
    resp = await client.get(f"/v1/admin/leads/{leads[2].id}", headers=owner_headers)
    assert resp.status_code == 200
    assert resp.json()["meta"] == {"tier": "gold"}

    resp = await client.get("/v1/admin/leads/00000000-0000-0000-0000-000000000000", headers=owner_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_update_invalidates_leads_partition(
    client: AsyncClient, session: AsyncSession, store: CacheStore, owner_headers: dict,
):
    leads = await _seed(session)
    await client.get("/v1/admin/leads/counts", headers=owner_headers)
    store.put("analytics", "users", {"kept": True})

    resp = await client.patch(
        f"/v1/admin/leads/{leads[0].id}",
        json={"lead_kind": "sponsor", "tags": ["food", "premium"]},
        headers=owner_headers,
    )
    assert resp.status_code == 200
    outcome = resp.json()["outcome"]
    assert outcome["lead_kind"] == "sponsor"
    assert outcome["tags"] == ["food", "premium"]
    assert store.keys("leads") == []
    assert store.get("analytics", "users") == {"kept": True}

    counts = (await client.get("/v1/admin/leads/counts", headers=owner_headers)).json()
    assert counts["cached"] is False
    assert counts["data"]["sponsors"] == 2


@pytest.mark.asyncio
async def test_update_rejects_bad_email(
    client: AsyncClient, session: AsyncSession, store: CacheStore, owner_headers: dict,
):
    leads = await _seed(session)
    store.put("leads", "counts", {"total": 4})

    resp = await client.patch(
        f"/v1/admin/leads/{leads[0].id}", json={"email": "broken"}, headers=owner_headers,
    )
    assert resp.status_code == 422
    assert store.get("leads", "counts") == {"total": 4}


@pytest.mark.asyncio
async def test_update_missing_lead_keeps_cache(
    client: AsyncClient, store: CacheStore, owner_headers: dict,
):
    store.put("leads", "counts", {"total": 4})
    resp = await client.patch(
        "/v1/admin/leads/00000000-0000-0000-0000-000000000000",
        json={"contact_name": "Nobody"},
        headers=owner_headers,
    )
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "not_found"
    assert store.get("leads", "counts") == {"total": 4}


@pytest.mark.asyncio
async def test_delete_lead(client: AsyncClient, session: AsyncSession, store: CacheStore, owner_headers: dict):
    leads = await _seed(session)
    await client.get("/v1/admin/leads", headers=owner_headers)

    resp = await client.delete(f"/v1/admin/leads/{leads[3].id}", headers=owner_headers)
    assert resp.status_code == 200
    assert store.keys("leads") == []

    data = (await client.get("/v1/admin/leads", headers=owner_headers)).json()["data"]
    assert data["total"] == 3


@pytest.mark.asyncio
async def test_viewer_cannot_modify(client: AsyncClient, session: AsyncSession, owner_headers: dict):
    leads = await _seed(session)
    await client.post("/v1/admins", json={
        "email": "viewer@eventdesk.com",
        "password": "viewerpass1",
        "role": "viewer",
    }, headers=owner_headers)
    viewer_headers = await login(client, "viewer@eventdesk.com", "viewerpass1")

    resp = await client.get("/v1/admin/leads", headers=viewer_headers)
    assert resp.status_code == 200
    resp = await client.delete(f"/v1/admin/leads/{leads[0].id}", headers=viewer_headers)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_export_csv(client: AsyncClient, session: AsyncSession, store: CacheStore, owner_headers: dict):
    await _seed(session)

    resp = await client.get("/v1/admin/leads/export", params={"kinds": ["vendor"]}, headers=owner_headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert 'filename="leads.csv"' in resp.headers["content-disposition"]
    assert resp.text.startswith('"ID","Lead Kind"')

    rows = list(csv.reader(io.StringIO(resp.text)))
    assert rows[0] == EXPORT_HEADERS
    assert len(rows) == 3
    by_email = {row[4]: row for row in rows[1:]}
    assert by_email["bob@crafts.test"][9] == "crafts; wood"
    # Exports are never cached
    assert store.keys("leads") == []

"""Tests for the background cache sweeper."""

import asyncio
import contextlib
from unittest.mock import AsyncMock

import pytest

from app.core.cache import CacheStore
from app.core.config import Settings
from app.main import build_cache
from app.services.coordinator import FetchCoordinator, RefreshPolicy, ViewRequest
from app.workers.sweeper import sweep_forever
from conftest import FakeClock


@pytest.mark.asyncio
async def test_sweeper_removes_expired_entries(store: CacheStore, clock: FakeClock):
    store.put("leads", "old", 1)
    clock.advance(301)
    store.put("analytics", "fresh", 2)

    task = asyncio.create_task(sweep_forever(store, interval=0.01))
    for _ in range(100):
        if not store.keys("leads"):
            break
        await asyncio.sleep(0.01)
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task

    assert store.keys("leads") == []
    assert store.get("analytics", "fresh") == 2


@pytest.mark.asyncio
async def test_sweeper_rejects_non_positive_interval(store: CacheStore):
    with pytest.raises(ValueError):
        await sweep_forever(store, interval=0)


def test_build_cache_from_settings():
    settings = Settings(cache_ttl_seconds=60, cache_refresh_policy="invalidate_on_success")
    store, coordinator = build_cache(settings)
    assert store.ttl == 60
    assert coordinator.store is store
    assert coordinator.refresh_policy is RefreshPolicy.INVALIDATE_ON_SUCCESS


@pytest.mark.asyncio
async def test_sweeper_drops_view_state_of_expired_keys(
    coordinator: FetchCoordinator, clock: FakeClock,
):
    view = ViewRequest("leads", "search", {"search": "bakery"}, AsyncMock(return_value=[]))
    loaded = await coordinator.load_view(view)
    clock.advance(301)

    task = asyncio.create_task(sweep_forever(coordinator.store, 0.01, coordinator))
    for _ in range(100):
        if not coordinator.state(loaded.key).has_data:
            break
        await asyncio.sleep(0.01)
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task

    assert coordinator.store.keys("leads") == []
    assert not coordinator.state(loaded.key).has_data

"""Periodic job — drop expired entries from the view cache."""

from __future__ import annotations

import asyncio
import logging

from app.core.cache import CacheStore
from app.services.coordinator import FetchCoordinator

logger = logging.getLogger(__name__)


async def sweep_forever(
    store: CacheStore,
    interval: float,
    coordinator: FetchCoordinator | None = None,
) -> None:
    """Run ``store.sweep_expired()`` every ``interval`` seconds until cancelled.

    Started from the application lifespan; reads never evict, so without
    this loop expired entries would only leave memory when overwritten or
    invalidated. With a ``coordinator``, view state for swept keys is
    dropped too.
    """
    if interval <= 0:
        raise ValueError("Sweep interval must be positive")

    logger.info("Cache sweeper started (every %.0fs)", interval)
    try:
        while True:
            await asyncio.sleep(interval)
            store.sweep_expired()
            if coordinator is not None:
                coordinator.prune_states()
    finally:
        logger.info("Cache sweeper stopped")

"""FastAPI application entrypoint."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1 import v1_router
from app.core.cache import CacheStore
from app.core.config import get_settings
from app.core.database import init_db
from app.services.coordinator import FetchCoordinator, RefreshPolicy
from app.workers.sweeper import sweep_forever

_settings = get_settings()
logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_cache(settings=_settings) -> tuple[CacheStore, FetchCoordinator]:
    """Create the view cache and its coordinator from settings."""
    store = CacheStore(ttl=settings.cache_ttl_seconds)
    coordinator = FetchCoordinator(store, RefreshPolicy(settings.cache_refresh_policy))
    return store, coordinator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup: ensure tables exist (use Alembic in production)
    await init_db()
    app.state.cache_store, app.state.coordinator = build_cache()

    sweeper = None
    if _settings.cache_sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(
            sweep_forever(
                app.state.cache_store,
                _settings.cache_sweep_interval_seconds,
                app.state.coordinator,
            )
        )
    yield

    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    app.state.cache_store.clear()
    logger.info("View cache cleared on shutdown")


app = FastAPI(
    title="EventDesk",
    version="0.1.0",
    description="Back-office API for community events: leads, analytics and a TTL view cache",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _settings.allowed_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── API routes ───────────────────────────────────────────────
app.include_router(v1_router)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    return {"status": "ok"}

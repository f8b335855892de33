"""System health endpoint — database connectivity and view cache size."""

import time

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from app.api.deps import Session, Store

router = APIRouter(prefix="/system", tags=["system"])

_start_time = time.time()


class ServiceHealth(BaseModel):
    status: str  # "ok" or "error"
    detail: str | None = None
    latency_ms: int | None = None


class CacheHealth(BaseModel):
    ttl_seconds: float
    entries: dict[str, int]


class HealthResponse(BaseModel):
    status: str
    uptime_seconds: int
    database: ServiceHealth
    cache: CacheHealth


@router.get("/health", response_model=HealthResponse)
async def system_health(session: Session, store: Store) -> HealthResponse:
    """Check database connectivity and report cache entry counts."""
    db = await _check_database(session)
    cache = CacheHealth(
        ttl_seconds=store.ttl,
        entries={name: len(entries) for name, entries in store.snapshot().items()},
    )
    return HealthResponse(
        status="ok" if db.status == "ok" else "degraded",
        uptime_seconds=int(time.time() - _start_time),
        database=db,
        cache=cache,
    )


async def _check_database(session) -> ServiceHealth:
    try:
        t0 = time.monotonic()
        await session.execute(text("SELECT 1"))
        latency = int((time.monotonic() - t0) * 1000)
        return ServiceHealth(status="ok", latency_ms=latency)
    except Exception as exc:
        return ServiceHealth(status="error", detail=str(exc)[:200])

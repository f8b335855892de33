"""View cache administration — inspect, invalidate and sweep."""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from app.api.deps import Admin, Coordinator, Store, require_elevated

router = APIRouter(prefix="/admin/cache", tags=["cache"])


class CacheEntryInfo(BaseModel):
    key: str
    age_seconds: float
    remaining_seconds: float
    expired: bool


class CacheStatus(BaseModel):
    ttl_seconds: float
    total_entries: int
    partitions: dict[str, list[CacheEntryInfo]]


class RemovedEntries(BaseModel):
    removed: int
    partition: str | None = None


@router.get("", response_model=CacheStatus)
async def cache_status(admin: Admin, store: Store) -> CacheStatus:
    now = store.now()
    partitions = {
        name: [
            CacheEntryInfo(
                key=key,
                age_seconds=round(entry.age(now), 3),
                remaining_seconds=round(entry.remaining(now), 3),
                expired=entry.is_expired(now),
            )
            for key, entry in entries.items()
        ]
        for name, entries in store.snapshot().items()
    }
    return CacheStatus(ttl_seconds=store.ttl, total_entries=len(store), partitions=partitions)


@router.delete("/{partition}", response_model=RemovedEntries)
async def invalidate_partition(
    partition: str, admin: Admin, store: Store, coordinator: Coordinator,
) -> RemovedEntries:
    require_elevated(admin)
    if partition not in store.partitions:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown cache partition: {partition}",
        )
    removed = store.invalidate_partition(partition)
    coordinator.prune_states()
    return RemovedEntries(removed=removed, partition=partition)


@router.delete("", response_model=RemovedEntries)
async def clear_cache(admin: Admin, store: Store, coordinator: Coordinator) -> RemovedEntries:
    require_elevated(admin)
    removed = store.clear()
    coordinator.prune_states()
    return RemovedEntries(removed=removed)


@router.post("/sweep", response_model=RemovedEntries)
async def sweep_cache(admin: Admin, store: Store, coordinator: Coordinator) -> RemovedEntries:
    require_elevated(admin)
    removed = store.sweep_expired()
    coordinator.prune_states()
    return RemovedEntries(removed=removed)

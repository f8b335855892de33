"""Fetch coordinator — decides between cached and fresh data per view.

Each admin list/dashboard view goes through ``load_view``: a valid cache
entry is served without touching the database; otherwise the view's fetch
function runs and its result is stored. Writes go through ``mutate``, which
invalidates the affected partitions and reloads the active view so a stale
dashboard is never served after a successful change.

Concurrent loads of the same key are not coalesced; each issues its own
fetch and the last one to finish wins the cache slot.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from app.core.cache import CacheStore, derive_key
from app.core.errors import MutationError, RemoteFetchError, ServiceError

logger = logging.getLogger(__name__)

FetchFn = Callable[..., Awaitable[Any]]
MutationFn = Callable[[], Awaitable[Any]]


class RefreshPolicy(StrEnum):
    # Clear the partition before the forced fetch; a failed refresh leaves
    # nothing cached.
    INVALIDATE_FIRST = "invalidate_first"
    # Clear the partition only once the forced fetch has succeeded.
    INVALIDATE_ON_SUCCESS = "invalidate_on_success"


@dataclass(frozen=True)
class ViewRequest:
    partition: str
    view: str
    params: Mapping[str, Any]
    fetch: FetchFn

    @property
    def key(self) -> str:
        return derive_key(self.partition, self.view, self.params)


@dataclass
class ViewState:
    loading: bool = False
    refreshing: bool = False
    has_data: bool = False
    last_error: ServiceError | None = None
    loaded_at: float | None = None


@dataclass
class ViewResult:
    key: str
    data: Any = None
    error: ServiceError | None = None
    from_cache: bool = False
    cached_at: float | None = None
    expires_at: float | None = None
    state: ViewState = field(default_factory=ViewState)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class MutationResult:
    action: str
    outcome: Any = None
    error: ServiceError | None = None
    view: ViewResult | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _as_service_error(exc: Exception, error_cls: type[ServiceError], what: str) -> ServiceError:
    if isinstance(exc, ServiceError):
        return error_cls(exc.message, code=exc.code, details=exc.details)
    logger.exception("Unexpected error during %s", what)
    return error_cls(str(exc) or "Unknown error occurred", code=getattr(exc, "code", None))


class FetchCoordinator:
    """Serves views from a ``CacheStore`` and keeps it coherent after writes."""

    def __init__(
        self,
        store: CacheStore,
        refresh_policy: RefreshPolicy = RefreshPolicy.INVALIDATE_FIRST,
    ) -> None:
        self.store = store
        self.refresh_policy = RefreshPolicy(refresh_policy)
        self._states: dict[str, ViewState] = {}

    def state(self, key: str) -> ViewState:
        return replace(self._states.get(key, ViewState()))

    def is_valid(self, partition: str, key: str) -> bool:
        return self.store.is_valid(partition, key)

    def get(self, partition: str, key: str) -> Any | None:
        return self.store.get(partition, key)

    async def load_view(self, request: ViewRequest, force_refresh: bool = False) -> ViewResult:
        partition, key = request.partition, request.key
        state = self._states.setdefault(key, ViewState())

        cached = None
        if not force_refresh and self.store.is_valid(partition, key):
            cached = self.store.entry(partition, key)
        if cached is not None:
            logger.debug("Cache hit: %s", key)
            state.has_data = True
            return ViewResult(
                key=key,
                data=cached.data,
                from_cache=True,
                cached_at=cached.timestamp,
                expires_at=cached.expires_at,
                state=replace(state),
            )

        if force_refresh and self.refresh_policy is RefreshPolicy.INVALIDATE_FIRST:
            self.store.invalidate_partition(partition)

        if force_refresh and state.has_data:
            state.refreshing = True
        else:
            state.loading = True
        logger.debug("Cache miss: %s (force_refresh=%s)", key, force_refresh)

        error: ServiceError | None = None
        try:
            data = await request.fetch(**request.params)
        except Exception as exc:
            error = _as_service_error(exc, RemoteFetchError, f"fetch of {key}")
        finally:
            state.loading = False
            state.refreshing = False

        if error is not None:
            logger.warning("Fetch failed for %s: %s", key, error.message)
            state.last_error = error
            self.prune_states(keep=key)
            return ViewResult(key=key, error=error, state=replace(state))

        if force_refresh and self.refresh_policy is RefreshPolicy.INVALIDATE_ON_SUCCESS:
            self.store.invalidate_partition(partition)
        entry = self.store.put(partition, key, data)
        state.has_data = True
        state.last_error = None
        state.loaded_at = entry.timestamp
        self.prune_states(keep=key)
        return ViewResult(
            key=key,
            data=data,
            cached_at=entry.timestamp,
            expires_at=entry.expires_at,
            state=replace(state),
        )

    def prune_states(self, keep: str | None = None) -> int:
        """Forget view state for keys the store no longer holds.

        States of in-flight loads and of ``keep`` survive. Returns how many
        states were dropped.
        """
        removed = 0
        held = {key for entries in self.store.snapshot().values() for key in entries}
        for key, state in list(self._states.items()):
            if key == keep or key in held or state.loading or state.refreshing:
                continue
            del self._states[key]
            removed += 1
        return removed

    async def refresh(self, request: ViewRequest) -> ViewResult:
        return await self.load_view(request, force_refresh=True)

    async def mutate(
        self,
        action: str,
        operation: MutationFn,
        partitions: Iterable[str],
        reload: ViewRequest | None = None,
    ) -> MutationResult:
        """Run a write, then invalidate ``partitions`` and reload ``reload``.

        On failure nothing is invalidated and the cached views stay as they
        were.
        """
        try:
            outcome = await operation()
        except Exception as exc:
            error = _as_service_error(exc, MutationError, action)
            logger.warning("Mutation %s failed: %s", action, error.message)
            return MutationResult(action=action, error=error)

        for partition in partitions:
            self.store.invalidate_partition(partition)
        logger.info("Mutation %s succeeded", action)
        if reload is None:
            self.prune_states()

        view = await self.load_view(reload, force_refresh=True) if reload is not None else None
        return MutationResult(action=action, outcome=outcome, view=view)

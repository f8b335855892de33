"""Analytics dashboards, detail lookups and visitor exclusions."""

import uuid
from enum import StrEnum
from functools import partial

from fastapi import APIRouter

from app.api.deps import Admin, Coordinator, Session, require_elevated
from app.api.views import MutationEnvelope, ViewEnvelope, http_error, mutation_response, view_response
from app.core.cache import CachePartition
from app.core.errors import NotFoundError, ValidationError
from app.models.analytics import (
    AnalyticsSessionRead,
    AnalyticsUserRead,
    ExclusionCreate,
    ExclusionRead,
    ExclusionTarget,
    TimeRange,
)
from app.services import analytics
from app.services.coordinator import ViewRequest

router = APIRouter(prefix="/admin/analytics", tags=["analytics"])


class AnalyticsView(StrEnum):
    OVERVIEW = "overview"
    USERS = "users"
    SESSIONS = "sessions"
    EVENTS = "events"
    REFERRERS = "referrers"


_VIEW_FETCHERS = {
    AnalyticsView.OVERVIEW: analytics.get_overview,
    AnalyticsView.USERS: analytics.get_users,
    AnalyticsView.SESSIONS: analytics.get_sessions,
    AnalyticsView.EVENTS: analytics.get_events,
    AnalyticsView.REFERRERS: analytics.get_referrers,
}


def view_request(session, view: AnalyticsView, time_range: TimeRange) -> ViewRequest:
    return ViewRequest(
        CachePartition.ANALYTICS,
        view,
        {"time_range": time_range},
        partial(_VIEW_FETCHERS[view], session),
    )


# ── Exclusions ───────────────────────────────────────────────

class ExclusionRequest(ExclusionCreate):
    # The dashboard view to reload once the exclusion is stored.
    view: AnalyticsView = AnalyticsView.USERS
    time_range: TimeRange = TimeRange.THIRTY_DAYS


class ExclusionRemoval(ExclusionTarget):
    view: AnalyticsView = AnalyticsView.USERS
    time_range: TimeRange = TimeRange.THIRTY_DAYS


def _ensure_target(target: ExclusionTarget) -> None:
    try:
        analytics.ensure_target(target)
    except ValidationError as exc:
        raise http_error(exc) from exc


@router.get("/exclusions", response_model=list[ExclusionRead])
async def list_exclusions(admin: Admin, session: Session) -> list[ExclusionRead]:
    return await analytics.list_exclusions(session)


@router.post("/exclusions", response_model=MutationEnvelope)
async def exclude_user(
    body: ExclusionRequest,
    admin: Admin,
    session: Session,
    coordinator: Coordinator,
) -> MutationEnvelope:
    """Exclude a visitor from analytics, then reload the active dashboard view."""
    require_elevated(admin)
    _ensure_target(body)
    exclusion = ExclusionCreate.model_validate(body.model_dump(exclude={"view", "time_range"}))
    result = await coordinator.mutate(
        "exclude user",
        partial(analytics.exclude_user, session, exclusion),
        [CachePartition.ANALYTICS],
        reload=view_request(session, body.view, body.time_range),
    )
    return mutation_response(result)


@router.delete("/exclusions", response_model=MutationEnvelope)
async def remove_exclusion(
    body: ExclusionRemoval,
    admin: Admin,
    session: Session,
    coordinator: Coordinator,
) -> MutationEnvelope:
    require_elevated(admin)
    _ensure_target(body)
    target = ExclusionTarget.model_validate(body.model_dump(exclude={"view", "time_range"}))
    result = await coordinator.mutate(
        "remove exclusion",
        partial(analytics.remove_exclusion, session, target),
        [CachePartition.ANALYTICS],
        reload=view_request(session, body.view, body.time_range),
    )
    return mutation_response(result)


# ── Detail lookups (uncached) ────────────────────────────────

@router.get("/sessions/{session_id}", response_model=AnalyticsSessionRead)
async def session_detail(session_id: uuid.UUID, admin: Admin, session: Session) -> AnalyticsSessionRead:
    try:
        return await analytics.get_session_detail(session, session_id)
    except NotFoundError as exc:
        raise http_error(exc) from exc


@router.get("/users/{visitor_id}", response_model=AnalyticsUserRead)
async def user_detail(visitor_id: uuid.UUID, admin: Admin, session: Session) -> AnalyticsUserRead:
    try:
        return await analytics.get_user_detail(session, visitor_id)
    except NotFoundError as exc:
        raise http_error(exc) from exc


# ── Dashboard views ──────────────────────────────────────────

@router.get("/{view}", response_model=ViewEnvelope)
async def dashboard_view(
    view: AnalyticsView,
    admin: Admin,
    session: Session,
    coordinator: Coordinator,
    time_range: TimeRange = TimeRange.THIRTY_DAYS,
    refresh: bool = False,
) -> ViewEnvelope:
    request = view_request(session, view, time_range)
    return view_response(await coordinator.load_view(request, force_refresh=refresh))

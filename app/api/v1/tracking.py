"""Public visitor tracking — sessions and events from the site's tracker."""

from fastapi import APIRouter, Request

from app.api.deps import Session
from app.api.views import http_error
from app.core.errors import NotFoundError
from app.models.analytics import EventTrack, SessionTrack, TrackResult
from app.services import analytics

router = APIRouter(prefix="/track", tags=["tracking"])


@router.post("/session", response_model=TrackResult)
async def track_session(body: SessionTrack, request: Request, session: Session) -> TrackResult:
    """Record a visit. Dashboards pick it up once their cached views expire."""
    if body.ip_address is None and request.client is not None:
        body.ip_address = request.client.host
    if body.user_agent is None:
        body.user_agent = request.headers.get("user-agent")
    return await analytics.track_session(session, body)


@router.post("/event", response_model=TrackResult)
async def track_event(body: EventTrack, session: Session) -> TrackResult:
    try:
        return await analytics.track_event(session, body)
    except NotFoundError as exc:
        raise http_error(exc) from exc

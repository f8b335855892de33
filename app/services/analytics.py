"""Analytics queries for the admin dashboards, plus visitor tracking.

Every aggregate leaves out visitors and sessions matched by a row in
``excluded_users`` (by visitor id, anon id, session id or IP address).
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from urllib.parse import urlsplit

from sqlalchemy import delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import NotFoundError, ValidationError
from app.models.analytics import (
    AnalyticsSessionRead,
    AnalyticsUserRead,
    DayCount,
    EventSummary,
    EventsData,
    EventTrack,
    ExcludedUser,
    ExclusionCreate,
    ExclusionRead,
    ExclusionTarget,
    LabelCount,
    OverviewData,
    ReferrersData,
    ReferrerSummary,
    SessionsData,
    SessionsPerUser,
    SessionTrack,
    TimeRange,
    TrackedEvent,
    TrackResult,
    UserSessionRead,
    UsersData,
    Visitor,
    VisitSession,
)
from app.models.base import utcnow

logger = logging.getLogger(__name__)

_SOURCE_PATTERNS = (
    ("google", "Google"),
    ("facebook", "Facebook"),
    ("twitter", "Twitter"),
    ("linkedin", "LinkedIn"),
    ("reddit", "Reddit"),
)


def date_range(time_range: TimeRange, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Resolve a named time range to ``(start, end)`` in naive UTC."""
    end = now or utcnow()
    match TimeRange(time_range):
        case TimeRange.TODAY:
            start = end.replace(hour=0, minute=0, second=0, microsecond=0)
        case TimeRange.SEVEN_DAYS:
            start = end - timedelta(days=7)
        case TimeRange.THIRTY_DAYS:
            start = end - timedelta(days=30)
        case TimeRange.YEAR:
            start = end.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return start, end


def classify_source(referrer: str | None) -> str:
    if not referrer:
        return "Direct"
    lowered = referrer.lower()
    for needle, label in _SOURCE_PATTERNS:
        if needle in lowered:
            return label
    return "Other"


def referrer_domain(referrer: str) -> str | None:
    host = urlsplit(referrer).hostname
    if not host:
        return None
    return host.removeprefix("www.")


def _page_path(url: str) -> str:
    return urlsplit(url).path or "/"


def _pct(part: float, whole: float) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


# ── Exclusions ───────────────────────────────────────────────

@dataclass
class _Exclusions:
    visitor_ids: set[uuid.UUID] = field(default_factory=set)
    session_ids: set[uuid.UUID] = field(default_factory=set)
    anon_ids: set[str] = field(default_factory=set)
    ip_addresses: set[str] = field(default_factory=set)

    def session_filters(self) -> list:
        filters = []
        if self.visitor_ids:
            filters.append(VisitSession.visitor_id.not_in(list(self.visitor_ids)))  # type: ignore[attr-defined]
        if self.session_ids:
            filters.append(VisitSession.id.not_in(list(self.session_ids)))  # type: ignore[attr-defined]
        if self.anon_ids:
            filters.append(Visitor.anon_id.not_in(list(self.anon_ids)))  # type: ignore[attr-defined]
        if self.ip_addresses:
            filters.append(or_(
                VisitSession.ip_address.is_(None),  # type: ignore[union-attr]
                VisitSession.ip_address.not_in(list(self.ip_addresses)),  # type: ignore[union-attr]
            ))
        return filters

    def visitor_filters(self) -> list:
        filters = []
        if self.visitor_ids:
            filters.append(Visitor.id.not_in(list(self.visitor_ids)))  # type: ignore[attr-defined]
        if self.anon_ids:
            filters.append(Visitor.anon_id.not_in(list(self.anon_ids)))  # type: ignore[attr-defined]
        if self.ip_addresses:
            seen_from_ip = select(VisitSession.visitor_id).where(
                VisitSession.ip_address.in_(list(self.ip_addresses))  # type: ignore[union-attr]
            )
            filters.append(Visitor.id.not_in(seen_from_ip))  # type: ignore[attr-defined]
        return filters


def _parse_uuid(value: str | None) -> uuid.UUID | None:
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


async def _load_exclusions(session: AsyncSession) -> _Exclusions:
    excl = _Exclusions()
    for row in (await session.execute(select(ExcludedUser))).scalars().all():
        if (visitor_id := _parse_uuid(row.user_id)) is not None:
            excl.visitor_ids.add(visitor_id)
        if (session_id := _parse_uuid(row.session_id)) is not None:
            excl.session_ids.add(session_id)
        if row.anon_id:
            excl.anon_ids.add(row.anon_id)
        if row.ip_address:
            excl.ip_addresses.add(row.ip_address)
    return excl


def ensure_target(target: ExclusionTarget) -> None:
    if not any((target.user_id, target.session_id, target.ip_address, target.anon_id)):
        raise ValidationError(
            ["At least one of user_id, session_id, ip_address or anon_id is required"]
        )


def _target_filter(target: ExclusionTarget):
    clauses = []
    if target.user_id:
        clauses.append(ExcludedUser.user_id == target.user_id)
    if target.session_id:
        clauses.append(ExcludedUser.session_id == target.session_id)
    if target.ip_address:
        clauses.append(ExcludedUser.ip_address == target.ip_address)
    if target.anon_id:
        clauses.append(ExcludedUser.anon_id == target.anon_id)
    return or_(*clauses)


async def is_user_excluded(session: AsyncSession, target: ExclusionTarget) -> bool:
    if not any((target.user_id, target.session_id, target.ip_address, target.anon_id)):
        return False
    stmt = select(ExcludedUser.id).where(_target_filter(target)).limit(1)
    return (await session.execute(stmt)).first() is not None


async def list_exclusions(session: AsyncSession) -> list[ExclusionRead]:
    stmt = select(ExcludedUser).order_by(ExcludedUser.excluded_at.desc())  # type: ignore[attr-defined]
    rows = (await session.execute(stmt)).scalars().all()
    return [ExclusionRead.model_validate(row) for row in rows]


async def exclude_user(session: AsyncSession, body: ExclusionCreate) -> ExclusionRead:
    ensure_target(body)
    row = ExcludedUser(
        user_id=body.user_id,
        session_id=body.session_id,
        ip_address=body.ip_address,
        anon_id=body.anon_id,
        reason=body.reason,
        excluded_by=body.excluded_by,
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    logger.info("Excluded visitor from analytics (exclusion %s)", row.id)
    return ExclusionRead.model_validate(row)


async def remove_exclusion(session: AsyncSession, target: ExclusionTarget) -> int:
    ensure_target(target)
    result = await session.execute(delete(ExcludedUser).where(_target_filter(target)))
    await session.commit()
    if not result.rowcount:
        raise NotFoundError("No matching exclusion")
    return result.rowcount


# ── Dashboard views ──────────────────────────────────────────

def _scoped_sessions(columns, excl: _Exclusions, start: datetime, end: datetime):
    """``select(*columns)`` over in-range, non-excluded sessions."""
    return (
        select(*columns)
        .select_from(VisitSession)
        .join(Visitor, VisitSession.visitor_id == Visitor.id)
        .where(
            VisitSession.started_at >= start,
            VisitSession.started_at <= end,
            *excl.session_filters(),
        )
    )


async def _new_vs_returning(
    session: AsyncSession, excl: _Exclusions, start: datetime, end: datetime,
) -> list[LabelCount]:
    stmt = _scoped_sessions([Visitor.id, Visitor.first_seen_at], excl, start, end).distinct()
    rows = (await session.execute(stmt)).all()
    new = sum(1 for row in rows if row.first_seen_at >= start)
    return [
        LabelCount(label="New Users", count=new),
        LabelCount(label="Returning Users", count=len(rows) - new),
    ]


async def get_overview(session: AsyncSession, time_range: TimeRange) -> OverviewData:
    start, end = date_range(time_range)
    excl = await _load_exclusions(session)

    totals = (await session.execute(_scoped_sessions(
        [
            func.count(func.distinct(VisitSession.visitor_id)),
            func.count(),
            func.coalesce(func.sum(VisitSession.pageviews), 0),
        ],
        excl, start, end,
    ))).one()

    total_events = (await session.execute(
        select(func.count())
        .select_from(TrackedEvent)
        .join(VisitSession, TrackedEvent.session_id == VisitSession.id)
        .join(Visitor, VisitSession.visitor_id == Visitor.id)
        .where(
            TrackedEvent.occurred_at >= start,
            TrackedEvent.occurred_at <= end,
            *excl.session_filters(),
        )
    )).scalar_one()

    day = func.date(VisitSession.started_at)
    daily = (await session.execute(
        _scoped_sessions(
            [
                day.label("day"),
                func.count(func.distinct(VisitSession.visitor_id)).label("users"),
                func.count().label("sessions"),
            ],
            excl, start, end,
        ).group_by(day).order_by(day.asc())
    )).all()

    page_rows = (await session.execute(
        _scoped_sessions(
            [VisitSession.landing_page, func.sum(VisitSession.pageviews).label("views")],
            excl, start, end,
        ).group_by(VisitSession.landing_page)
    )).all()
    page_views: Counter[str] = Counter()
    for row in page_rows:
        page_views[_page_path(row.landing_page)] += row.views or 0

    devices = (await session.execute(
        _scoped_sessions([VisitSession.device_category, func.count().label("count")], excl, start, end)
        .group_by(VisitSession.device_category)
        .order_by(func.count().desc())
    )).all()

    return OverviewData(
        unique_users=totals[0],
        total_sessions=totals[1],
        total_pageviews=totals[2],
        total_events=total_events,
        unique_users_over_time=[DayCount(day=str(r.day), count=r.users) for r in daily],
        sessions_over_time=[DayCount(day=str(r.day), count=r.sessions) for r in daily],
        top_pages=[LabelCount(label=path, count=views) for path, views in page_views.most_common(5)],
        device_breakdown=[LabelCount(label=r.device_category, count=r.count) for r in devices],
        new_vs_returning=await _new_vs_returning(session, excl, start, end),
    )


def _user_read(visitor: Visitor, sessions: int, avg_duration: float | None) -> AnalyticsUserRead:
    return AnalyticsUserRead(
        id=visitor.id,
        anon_id=visitor.anon_id,
        first_seen_at=visitor.first_seen_at,
        last_seen_at=visitor.last_seen_at,
        sessions=sessions,
        avg_duration=round(avg_duration or 0),
        has_lead=visitor.has_lead,
        first_referrer=visitor.first_referrer,
        last_referrer=visitor.last_referrer,
        first_utm_source=visitor.first_utm_source,
        last_utm_source=visitor.last_utm_source,
        device_category=visitor.device_category,
        browser_name=visitor.browser_name,
        os_name=visitor.os_name,
        geo_country=visitor.geo_country,
        geo_city=visitor.geo_city,
    )


async def get_users(session: AsyncSession, time_range: TimeRange) -> UsersData:
    """Visitors first seen in the range, with lifetime session stats."""
    start, end = date_range(time_range)
    excl = await _load_exclusions(session)
    in_range = [Visitor.first_seen_at >= start, Visitor.first_seen_at <= end, *excl.visitor_filters()]

    stmt = (
        select(
            Visitor,
            func.count(VisitSession.id).label("sessions"),
            func.avg(VisitSession.duration).label("avg_duration"),
        )
        .outerjoin(VisitSession, VisitSession.visitor_id == Visitor.id)
        .where(*in_range)
        .group_by(Visitor.id)
        .order_by(Visitor.last_seen_at.desc())  # type: ignore[attr-defined]
    )
    rows = (await session.execute(stmt)).all()

    day = func.date(Visitor.first_seen_at)
    daily = (await session.execute(
        select(day.label("day"), func.count().label("count"))
        .select_from(Visitor)
        .where(*in_range)
        .group_by(day)
        .order_by(day.asc())
    )).all()

    return UsersData(
        users=[_user_read(row[0], row.sessions, row.avg_duration) for row in rows],
        new_users_over_time=[DayCount(day=str(r.day), count=r.count) for r in daily],
        new_vs_returning=await _new_vs_returning(session, excl, start, end),
    )


def _session_read(visit: VisitSession, anon_id: str) -> AnalyticsSessionRead:
    return AnalyticsSessionRead(anon_id=anon_id, **visit.model_dump())


async def get_sessions(session: AsyncSession, time_range: TimeRange) -> SessionsData:
    start, end = date_range(time_range)
    excl = await _load_exclusions(session)

    rows = (await session.execute(
        _scoped_sessions([VisitSession, Visitor.anon_id], excl, start, end)
        .order_by(VisitSession.started_at.desc())  # type: ignore[attr-defined]
    )).all()
    visits = [_session_read(row[0], row.anon_id) for row in rows]

    per_visitor = Counter(v.visitor_id for v in visits)
    distribution = Counter(per_visitor.values())

    return SessionsData(
        sessions=visits,
        sessions_per_user=[
            SessionsPerUser(sessions=n, users=users) for n, users in sorted(distribution.items())
        ],
        avg_session_length=round(sum(v.duration for v in visits) / len(visits)) if visits else 0,
        avg_pages_per_session=round(sum(v.pageviews for v in visits) / len(visits), 1) if visits else 0.0,
    )


async def get_events(session: AsyncSession, time_range: TimeRange) -> EventsData:
    start, end = date_range(time_range)
    excl = await _load_exclusions(session)
    scope = [
        TrackedEvent.occurred_at >= start,
        TrackedEvent.occurred_at <= end,
        *excl.session_filters(),
    ]

    def scoped(*columns):
        return (
            select(*columns)
            .select_from(TrackedEvent)
            .join(VisitSession, TrackedEvent.session_id == VisitSession.id)
            .join(Visitor, VisitSession.visitor_id == Visitor.id)
            .where(*scope)
        )

    total_sessions = (await session.execute(
        _scoped_sessions([func.count()], excl, start, end)
    )).scalar_one()

    rows = (await session.execute(
        scoped(
            TrackedEvent.name,
            func.max(TrackedEvent.label).label("label"),
            func.count().label("count"),
            func.count(func.distinct(TrackedEvent.visitor_id)).label("unique_users"),
            func.count(func.distinct(TrackedEvent.session_id)).label("sessions"),
            func.max(TrackedEvent.occurred_at).label("last_occurred"),
        )
        .group_by(TrackedEvent.name)
        .order_by(func.count().desc())
    )).all()

    events = [
        EventSummary(
            name=row.name,
            label=row.label or row.name,
            count=row.count,
            unique_users=row.unique_users,
            conversion_rate=_pct(row.sessions, total_sessions),
            last_occurred=row.last_occurred,
        )
        for row in rows
    ]

    day = func.date(TrackedEvent.occurred_at)
    trend = (await session.execute(
        scoped(day.label("day"), func.count().label("count")).group_by(day).order_by(day.asc())
    )).all()

    return EventsData(
        events=events,
        event_trends=[DayCount(day=str(r.day), count=r.count) for r in trend],
        top_events=[LabelCount(label=e.label, count=e.count) for e in events[:4]],
    )


async def get_referrers(session: AsyncSession, time_range: TimeRange) -> ReferrersData:
    start, end = date_range(time_range)
    excl = await _load_exclusions(session)

    visits = (await session.execute(
        _scoped_sessions([VisitSession], excl, start, end)
    )).scalars().all()
    referred_ids = [v.id for v in visits if v.referrer]
    converted: set = set()
    if referred_ids:
        converted = set((await session.execute(
            select(TrackedEvent.session_id)
            .where(
                TrackedEvent.is_conversion == True,  # noqa: E712
                TrackedEvent.session_id.in_(referred_ids),
            )
            .distinct()
        )).scalars().all())

    by_domain: dict[str, list[VisitSession]] = defaultdict(list)
    referral_days: Counter[str] = Counter()
    sources: Counter[str] = Counter()
    for visit in visits:
        sources[classify_source(visit.referrer)] += 1
        if not visit.referrer:
            continue
        referral_days[visit.started_at.date().isoformat()] += 1
        domain = referrer_domain(visit.referrer)
        if domain:
            by_domain[domain].append(visit)

    total_referrals = sum(referral_days.values())
    referrers = []
    for domain, group in by_domain.items():
        n = len(group)
        referrers.append(ReferrerSummary(
            domain=domain,
            total_sessions=n,
            total_users=len({v.visitor_id for v in group}),
            conversions=sum(1 for v in group if v.id in converted),
            avg_session_duration=round(sum(v.duration for v in group) / n),
            bounce_rate=_pct(sum(1 for v in group if v.pageviews <= 1), n),
            pages_per_session=round(sum(v.pageviews for v in group) / n, 1),
            last_seen=max(v.started_at for v in group),
            traffic_share=_pct(n, total_referrals),
        ))
    referrers.sort(key=lambda r: r.total_sessions, reverse=True)

    return ReferrersData(
        referrers=referrers,
        referral_traffic_over_time=[
            DayCount(day=day, count=count) for day, count in sorted(referral_days.items())
        ],
        traffic_share=[LabelCount(label=s, count=c) for s, c in sources.most_common()],
        total_referrals=total_referrals,
        referral_traffic_percentage=_pct(total_referrals, len(visits)),
        top_referrers=[LabelCount(label=r.domain, count=r.total_sessions) for r in referrers[:3]],
    )


# ── Detail lookups ───────────────────────────────────────────

async def get_session_detail(session: AsyncSession, session_id: uuid.UUID) -> AnalyticsSessionRead:
    row = (await session.execute(
        select(VisitSession, Visitor.anon_id)
        .join(Visitor, VisitSession.visitor_id == Visitor.id)
        .where(VisitSession.id == session_id)
    )).first()
    if row is None:
        raise NotFoundError("Session not found")
    return _session_read(row[0], row.anon_id)


async def get_user_detail(session: AsyncSession, visitor_id: uuid.UUID) -> AnalyticsUserRead:
    visitor = await session.get(Visitor, visitor_id)
    if visitor is None:
        raise NotFoundError("User not found")
    visits = (await session.execute(
        select(VisitSession)
        .where(VisitSession.visitor_id == visitor_id)
        .order_by(VisitSession.started_at.desc())  # type: ignore[attr-defined]
    )).scalars().all()

    user = _user_read(
        visitor,
        len(visits),
        sum(v.duration for v in visits) / len(visits) if visits else 0,
    )
    user.user_sessions = [UserSessionRead.model_validate(v, from_attributes=True) for v in visits]
    return user


# ── Tracking ─────────────────────────────────────────────────

async def track_session(session: AsyncSession, body: SessionTrack) -> TrackResult:
    """Upsert the visitor by anon id and record (or extend) a session."""
    target = ExclusionTarget(
        anon_id=body.anon_id,
        ip_address=body.ip_address,
        session_id=str(body.session_id) if body.session_id else None,
    )
    if await is_user_excluded(session, target):
        return TrackResult(accepted=False)

    now = utcnow()
    visitor = (await session.execute(
        select(Visitor).where(Visitor.anon_id == body.anon_id)
    )).scalar_one_or_none()
    if visitor is None:
        visitor = Visitor(
            anon_id=body.anon_id,
            first_seen_at=now,
            first_referrer=body.referrer,
            first_utm_source=body.utm_source,
        )
    elif await is_user_excluded(session, ExclusionTarget(user_id=str(visitor.id))):
        return TrackResult(accepted=False)

    visitor.last_seen_at = now
    visitor.last_referrer = body.referrer or visitor.last_referrer
    visitor.last_utm_source = body.utm_source or visitor.last_utm_source
    visitor.device_category = body.device_category
    visitor.browser_name = body.browser_name or visitor.browser_name
    visitor.os_name = body.os_name or visitor.os_name
    visitor.geo_country = body.geo_country or visitor.geo_country
    visitor.geo_city = body.geo_city or visitor.geo_city
    session.add(visitor)
    await session.flush()

    existing = await session.get(VisitSession, body.session_id) if body.session_id else None
    visit = existing if existing is not None and existing.visitor_id == visitor.id else None
    if visit is not None:
        visit.duration = max(visit.duration, body.duration)
        visit.pageviews = max(visit.pageviews, body.pageviews)
        visit.ended_at = now
    else:
        visit = VisitSession(
            visitor_id=visitor.id,
            started_at=now,
            landing_page=body.landing_page,
            referrer=body.referrer,
            duration=body.duration,
            pageviews=body.pageviews,
            device_category=body.device_category,
            browser_name=body.browser_name,
            os_name=body.os_name,
            geo_country=body.geo_country,
            geo_city=body.geo_city,
            utm_source=body.utm_source,
            utm_medium=body.utm_medium,
            utm_campaign=body.utm_campaign,
            ip_address=body.ip_address,
            user_agent=body.user_agent,
        )
        # A session id owned by another visitor is never reused
        if body.session_id and existing is None:
            visit.id = body.session_id
    session.add(visit)
    await session.commit()
    return TrackResult(accepted=True, visitor_id=visitor.id, session_id=visit.id)


async def track_event(session: AsyncSession, body: EventTrack) -> TrackResult:
    row = (await session.execute(
        select(VisitSession, Visitor.anon_id)
        .join(Visitor, VisitSession.visitor_id == Visitor.id)
        .where(VisitSession.id == body.session_id)
    )).first()
    if row is None:
        raise NotFoundError("Session not found")
    visit: VisitSession = row[0]

    excluded = await is_user_excluded(session, ExclusionTarget(
        user_id=str(visit.visitor_id),
        session_id=str(visit.id),
        ip_address=visit.ip_address,
        anon_id=row.anon_id,
    ))
    if excluded:
        return TrackResult(accepted=False)

    session.add(TrackedEvent(
        session_id=visit.id,
        visitor_id=visit.visitor_id,
        name=body.name,
        label=body.label,
        is_conversion=body.is_conversion,
    ))
    visit.events += 1
    session.add(visit)
    await session.commit()
    return TrackResult(accepted=True, visitor_id=visit.visitor_id, session_id=visit.id)

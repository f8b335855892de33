"""Analytics models — visitors, sessions, events and exclusions."""

import uuid
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel
from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from app.models.base import new_uuid, utcnow


class TimeRange(StrEnum):
    TODAY = "today"
    SEVEN_DAYS = "7days"
    THIRTY_DAYS = "30days"
    YEAR = "year"


class Visitor(SQLModel, table=True):
    __tablename__ = "analytics_visitors"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    anon_id: str = Field(max_length=128, unique=True, nullable=False, index=True)
    first_seen_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)
    last_seen_at: datetime = Field(default_factory=utcnow, nullable=False)
    has_lead: bool = Field(default=False)

    first_referrer: str | None = Field(default=None, max_length=2048)
    last_referrer: str | None = Field(default=None, max_length=2048)
    first_utm_source: str | None = Field(default=None, max_length=255)
    last_utm_source: str | None = Field(default=None, max_length=255)
    device_category: str | None = Field(default=None, max_length=50)
    browser_name: str | None = Field(default=None, max_length=100)
    os_name: str | None = Field(default=None, max_length=100)
    geo_country: str | None = Field(default=None, max_length=100)
    geo_city: str | None = Field(default=None, max_length=100)


class VisitSession(SQLModel, table=True):
    __tablename__ = "analytics_sessions"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    visitor_id: uuid.UUID = Field(foreign_key="analytics_visitors.id", nullable=False, index=True)
    started_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)
    ended_at: datetime | None = None
    duration: int = Field(default=0)  # seconds
    pageviews: int = Field(default=0)
    events: int = Field(default=0)

    landing_page: str = Field(default="/", max_length=2048)
    referrer: str | None = Field(default=None, max_length=2048)
    device_category: str = Field(default="desktop", max_length=50)
    browser_name: str = Field(default="", max_length=100)
    os_name: str = Field(default="", max_length=100)
    geo_country: str | None = Field(default=None, max_length=100)
    geo_city: str | None = Field(default=None, max_length=100)
    utm_source: str | None = Field(default=None, max_length=255)
    utm_medium: str | None = Field(default=None, max_length=255)
    utm_campaign: str | None = Field(default=None, max_length=255)
    ip_address: str | None = Field(default=None, max_length=64)
    user_agent: str | None = Field(default=None, sa_column=Column(Text))


class TrackedEvent(SQLModel, table=True):
    __tablename__ = "analytics_events"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    session_id: uuid.UUID = Field(foreign_key="analytics_sessions.id", nullable=False, index=True)
    visitor_id: uuid.UUID = Field(foreign_key="analytics_visitors.id", nullable=False, index=True)
    name: str = Field(max_length=100, nullable=False, index=True)
    label: str = Field(default="", max_length=255)
    is_conversion: bool = Field(default=False)
    occurred_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)


class ExcludedUser(SQLModel, table=True):
    __tablename__ = "excluded_users"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    user_id: str | None = Field(default=None, max_length=64, index=True)
    session_id: str | None = Field(default=None, max_length=64)
    ip_address: str | None = Field(default=None, max_length=64)
    anon_id: str | None = Field(default=None, max_length=128, index=True)
    reason: str = Field(default="", max_length=500)
    excluded_by: str = Field(default="admin", max_length=100)
    excluded_at: datetime = Field(default_factory=utcnow, nullable=False)


# ── Tracking input schemas ───────────────────────────────────

class SessionTrack(SQLModel):
    anon_id: str = Field(min_length=1, max_length=128)
    session_id: uuid.UUID | None = None
    landing_page: str = "/"
    referrer: str | None = None
    duration: int = 0
    pageviews: int = 1
    device_category: str = "desktop"
    browser_name: str = ""
    os_name: str = ""
    geo_country: str | None = None
    geo_city: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


class EventTrack(SQLModel):
    session_id: uuid.UUID
    name: str = Field(min_length=1, max_length=100)
    label: str = ""
    is_conversion: bool = False


class TrackResult(BaseModel):
    accepted: bool
    visitor_id: uuid.UUID | None = None
    session_id: uuid.UUID | None = None


# ── Exclusion schemas ────────────────────────────────────────

class ExclusionTarget(BaseModel):
    user_id: str | None = None
    session_id: str | None = None
    ip_address: str | None = None
    anon_id: str | None = None


class ExclusionCreate(ExclusionTarget):
    reason: str = "Manual exclusion from admin panel"
    excluded_by: str = "admin"


class ExclusionRead(SQLModel):
    id: uuid.UUID
    user_id: str | None
    session_id: str | None
    ip_address: str | None
    anon_id: str | None
    reason: str
    excluded_by: str
    excluded_at: datetime


# ── Dashboard payloads ───────────────────────────────────────

class DayCount(BaseModel):
    day: str
    count: int


class LabelCount(BaseModel):
    label: str
    count: int


class UserSessionRead(BaseModel):
    id: uuid.UUID
    started_at: datetime
    ended_at: datetime | None
    duration: int
    pageviews: int
    events: int
    landing_page: str
    device_category: str
    geo_country: str | None
    geo_city: str | None


class AnalyticsUserRead(BaseModel):
    id: uuid.UUID
    anon_id: str
    first_seen_at: datetime
    last_seen_at: datetime
    sessions: int
    avg_duration: int
    has_lead: bool
    first_referrer: str | None = None
    last_referrer: str | None = None
    first_utm_source: str | None = None
    last_utm_source: str | None = None
    device_category: str | None = None
    browser_name: str | None = None
    os_name: str | None = None
    geo_country: str | None = None
    geo_city: str | None = None
    user_sessions: list[UserSessionRead] | None = None


class AnalyticsSessionRead(BaseModel):
    id: uuid.UUID
    visitor_id: uuid.UUID
    anon_id: str
    started_at: datetime
    ended_at: datetime | None
    duration: int
    pageviews: int
    events: int
    landing_page: str
    referrer: str | None
    device_category: str
    browser_name: str
    os_name: str
    geo_country: str | None
    geo_city: str | None
    utm_source: str | None
    utm_medium: str | None
    utm_campaign: str | None
    ip_address: str | None
    user_agent: str | None


class EventSummary(BaseModel):
    name: str
    label: str
    count: int
    unique_users: int
    conversion_rate: float
    last_occurred: datetime


class ReferrerSummary(BaseModel):
    domain: str
    total_sessions: int
    total_users: int
    conversions: int
    avg_session_duration: int
    bounce_rate: float
    pages_per_session: float
    last_seen: datetime
    traffic_share: float


class OverviewData(BaseModel):
    unique_users: int
    total_sessions: int
    total_pageviews: int
    total_events: int
    unique_users_over_time: list[DayCount]
    sessions_over_time: list[DayCount]
    top_pages: list[LabelCount]
    device_breakdown: list[LabelCount]
    new_vs_returning: list[LabelCount]


class UsersData(BaseModel):
    users: list[AnalyticsUserRead]
    new_users_over_time: list[DayCount]
    new_vs_returning: list[LabelCount]


class SessionsPerUser(BaseModel):
    sessions: int
    users: int


class SessionsData(BaseModel):
    sessions: list[AnalyticsSessionRead]
    sessions_per_user: list[SessionsPerUser]
    avg_session_length: int
    avg_pages_per_session: float


class EventsData(BaseModel):
    events: list[EventSummary]
    event_trends: list[DayCount]
    top_events: list[LabelCount]


class ReferrersData(BaseModel):
    referrers: list[ReferrerSummary]
    referral_traffic_over_time: list[DayCount]
    traffic_share: list[LabelCount]
    total_referrals: int
    referral_traffic_percentage: float
    top_referrers: list[LabelCount]

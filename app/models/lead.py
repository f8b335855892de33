"""Lead model — a sign-up from one of the public get-involved forms."""

import json
import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from app.models.base import TimestampMixin, new_uuid


class LeadKind(StrEnum):
    VENDOR = "vendor"
    SPONSOR = "sponsor"
    VOLUNTEER = "volunteer"
    SUBSCRIBER = "subscriber"


class Lead(TimestampMixin, SQLModel, table=True):
    __tablename__ = "leads"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    lead_kind: LeadKind = Field(nullable=False, index=True)
    business_name: str | None = Field(default=None, max_length=255)
    contact_name: str | None = Field(default=None, max_length=255)
    email: str = Field(max_length=320, nullable=False, index=True)
    phone: str | None = Field(default=None, max_length=32)
    website: str | None = Field(default=None, max_length=2048)
    source_path: str | None = Field(default=None, max_length=500)

    # JSON arrays / object stored as text
    social_links: str | None = Field(default=None, sa_column=Column(Text))
    tags: str | None = Field(default=None, sa_column=Column(Text))
    meta: str | None = Field(default=None, sa_column=Column(Text))


def dump_json(value: Any) -> str | None:
    return None if value is None else json.dumps(value)


def load_json(value: str | None) -> Any:
    return None if value is None else json.loads(value)


# ── Pydantic schemas ─────────────────────────────────────────

class LeadCreate(SQLModel):
    lead_kind: LeadKind | None = None
    email: str = Field(default="", max_length=320)
    business_name: str | None = Field(default=None, max_length=255)
    contact_name: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=32)
    website: str | None = Field(default=None, max_length=2048)
    social_links: list[str] | None = None
    source_path: str | None = Field(default=None, max_length=500)
    tags: list[str] | None = None
    meta: dict[str, Any] | None = None


class LeadUpdate(SQLModel):
    lead_kind: LeadKind | None = None
    email: str | None = Field(default=None, max_length=320)
    business_name: str | None = Field(default=None, max_length=255)
    contact_name: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=32)
    website: str | None = Field(default=None, max_length=2048)
    social_links: list[str] | None = None
    source_path: str | None = Field(default=None, max_length=500)
    tags: list[str] | None = None
    meta: dict[str, Any] | None = None


class LeadRead(SQLModel):
    id: uuid.UUID
    lead_kind: LeadKind
    business_name: str | None
    contact_name: str | None
    email: str
    phone: str | None
    website: str | None
    social_links: list[str] | None
    source_path: str | None
    tags: list[str] | None
    meta: dict[str, Any] | None
    created_at: datetime

    @classmethod
    def from_row(cls, lead: Lead) -> "LeadRead":
        return cls(
            id=lead.id,
            lead_kind=lead.lead_kind,
            business_name=lead.business_name,
            contact_name=lead.contact_name,
            email=lead.email,
            phone=lead.phone,
            website=lead.website,
            social_links=load_json(lead.social_links),
            source_path=lead.source_path,
            tags=load_json(lead.tags),
            meta=load_json(lead.meta),
            created_at=lead.created_at,
        )


class LeadSearchResult(SQLModel):
    leads: list[LeadRead]
    total: int
    has_more: bool


class LeadCounts(SQLModel):
    total: int
    vendors: int
    sponsors: int
    volunteers: int
    subscribers: int


class LeadStats(SQLModel):
    total: int
    recent: int
    by_kind: dict[str, int]

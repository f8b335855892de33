"""Public lead submission — validation and insert for the get-involved forms."""

from __future__ import annotations

import logging
import re
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import NotFoundError, ValidationError
from app.models.analytics import Visitor
from app.models.lead import Lead, LeadCreate, LeadRead, dump_json

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^\+?[1-9]\d{0,15}$")
_PHONE_STRIP_RE = re.compile(r"[\s\-()]")
_WEBSITE_RE = re.compile(r"^https?://.+")


def validate_lead(body: LeadCreate) -> list[str]:
    """Return the list of problems with a submission (empty when valid)."""
    errors: list[str] = []
    if not body.email or not EMAIL_RE.match(body.email):
        errors.append("Valid email is required")
    if not body.lead_kind:
        errors.append("Lead kind is required")
    if body.phone and not _PHONE_RE.match(_PHONE_STRIP_RE.sub("", body.phone)):
        errors.append("Invalid phone number format")
    if body.website and not _WEBSITE_RE.match(body.website):
        errors.append("Website must be a valid URL starting with http:// or https://")
    return errors


def ensure_valid(body: LeadCreate) -> None:
    errors = validate_lead(body)
    if errors:
        raise ValidationError(errors)


async def create_lead(
    session: AsyncSession,
    body: LeadCreate,
    anon_id: str | None = None,
) -> LeadRead:
    """Insert a validated lead. ``anon_id`` links it to a tracked visitor."""
    ensure_valid(body)
    lead = Lead(
        lead_kind=body.lead_kind,
        business_name=body.business_name or None,
        contact_name=body.contact_name or None,
        email=body.email,
        phone=body.phone or None,
        website=body.website or None,
        social_links=dump_json(body.social_links or None),
        source_path=body.source_path or None,
        tags=dump_json(body.tags or None),
        meta=dump_json(body.meta or None),
    )
    session.add(lead)

    if anon_id:
        visitor = (await session.execute(
            select(Visitor).where(Visitor.anon_id == anon_id)
        )).scalar_one_or_none()
        if visitor is not None and not visitor.has_lead:
            visitor.has_lead = True
            session.add(visitor)

    await session.commit()
    await session.refresh(lead)
    logger.info("Lead %s created (%s)", lead.id, lead.lead_kind)
    return LeadRead.from_row(lead)


async def email_exists(session: AsyncSession, email: str) -> bool:
    stmt = select(Lead.id).where(Lead.email == email).limit(1)
    return (await session.execute(stmt)).first() is not None


async def get_lead(session: AsyncSession, lead_id: uuid.UUID) -> LeadRead:
    lead = await session.get(Lead, lead_id)
    if lead is None:
        raise NotFoundError("Lead not found")
    return LeadRead.from_row(lead)

"""Back-office lead queries: search, counts, edits and CSV export."""

from __future__ import annotations

import csv
import io
import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from enum import StrEnum

from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import NotFoundError, ValidationError
from app.models.base import utcnow
from app.models.lead import (
    Lead,
    LeadCounts,
    LeadKind,
    LeadRead,
    LeadSearchResult,
    LeadStats,
    LeadUpdate,
    dump_json,
)
from app.services.leads_public import EMAIL_RE

logger = logging.getLogger(__name__)

EXPORT_HEADERS = [
    "ID",
    "Lead Kind",
    "Business Name",
    "Contact Name",
    "Email",
    "Phone",
    "Website",
    "Social Links",
    "Source Path",
    "Tags",
    "Meta",
    "Created At",
]

_JSON_FIELDS = ("social_links", "tags", "meta")


class LeadSortKey(StrEnum):
    CREATED_AT = "created_at"
    EMAIL = "email"
    LEAD_KIND = "lead_kind"
    BUSINESS_NAME = "business_name"
    CONTACT_NAME = "contact_name"


class SortDirection(StrEnum):
    ASC = "asc"
    DESC = "desc"


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _filters(
    kinds: list[LeadKind] | None = None,
    search: str | None = None,
    tags: list[str] | None = None,
    created_after: datetime | None = None,
    created_before: datetime | None = None,
) -> list:
    filters = []
    if kinds:
        filters.append(Lead.lead_kind.in_(kinds))  # type: ignore[attr-defined]
    if search:
        pattern = f"%{search}%"
        filters.append(or_(
            Lead.business_name.ilike(pattern),  # type: ignore[union-attr]
            Lead.contact_name.ilike(pattern),  # type: ignore[union-attr]
            Lead.email.ilike(pattern),  # type: ignore[attr-defined]
        ))
    if tags:
        # Tags are a JSON array in a text column; match the quoted element.
        filters.append(or_(*(Lead.tags.like(f"%{json.dumps(tag)}%") for tag in tags)))  # type: ignore[union-attr]
    if created_after:
        filters.append(Lead.created_at >= _naive_utc(created_after))
    if created_before:
        filters.append(Lead.created_at <= _naive_utc(created_before))
    return filters


async def search_leads(
    session: AsyncSession,
    *,
    kinds: list[LeadKind] | None = None,
    search: str | None = None,
    tags: list[str] | None = None,
    created_after: datetime | None = None,
    created_before: datetime | None = None,
    order_by: LeadSortKey = LeadSortKey.CREATED_AT,
    direction: SortDirection = SortDirection.DESC,
    limit: int = 50,
    offset: int = 0,
) -> LeadSearchResult:
    """Filtered, ordered, paginated lead listing with an exact total."""
    filters = _filters(kinds, search, tags, created_after, created_before)

    total = (await session.execute(
        select(func.count()).select_from(Lead).where(*filters)
    )).scalar_one()

    column = getattr(Lead, LeadSortKey(order_by).value)
    ordering = column.asc() if direction == SortDirection.ASC else column.desc()
    stmt = select(Lead).where(*filters).order_by(ordering).offset(offset).limit(limit)
    rows = (await session.execute(stmt)).scalars().all()

    return LeadSearchResult(
        leads=[LeadRead.from_row(lead) for lead in rows],
        total=total,
        has_more=offset + limit < total,
    )


async def count_leads(session: AsyncSession, kind: LeadKind | None = None) -> int:
    stmt = select(func.count()).select_from(Lead)
    if kind is not None:
        stmt = stmt.where(Lead.lead_kind == kind)
    return (await session.execute(stmt)).scalar_one()


async def dashboard_counts(session: AsyncSession) -> LeadCounts:
    """Total plus per-kind counts for the dashboard tiles."""
    rows = (await session.execute(
        select(Lead.lead_kind, func.count()).group_by(Lead.lead_kind)
    )).all()
    by_kind = {str(kind): count for kind, count in rows}
    return LeadCounts(
        total=sum(by_kind.values()),
        vendors=by_kind.get(LeadKind.VENDOR, 0),
        sponsors=by_kind.get(LeadKind.SPONSOR, 0),
        volunteers=by_kind.get(LeadKind.VOLUNTEER, 0),
        subscribers=by_kind.get(LeadKind.SUBSCRIBER, 0),
    )


async def lead_stats(session: AsyncSession, recent_days: int = 30) -> LeadStats:
    total = await count_leads(session)
    recent = (await session.execute(
        select(func.count()).select_from(Lead)
        .where(Lead.created_at >= utcnow() - timedelta(days=recent_days))
    )).scalar_one()
    rows = (await session.execute(
        select(Lead.lead_kind, func.count()).group_by(Lead.lead_kind)
    )).all()
    return LeadStats(total=total, recent=recent, by_kind={str(k): c for k, c in rows})


async def _get_or_404(session: AsyncSession, lead_id: uuid.UUID) -> Lead:
    lead = await session.get(Lead, lead_id)
    if lead is None:
        raise NotFoundError("Lead not found")
    return lead


def ensure_valid_update(body: LeadUpdate) -> None:
    update_data = body.model_dump(exclude_unset=True)
    if "email" in update_data and not EMAIL_RE.match(update_data["email"] or ""):
        raise ValidationError(["Valid email is required"])
    if "lead_kind" in update_data and update_data["lead_kind"] is None:
        raise ValidationError(["Lead kind is required"])


async def update_lead(session: AsyncSession, lead_id: uuid.UUID, body: LeadUpdate) -> LeadRead:
    lead = await _get_or_404(session, lead_id)

    update_data = body.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if field in _JSON_FIELDS:
            value = dump_json(value)
        setattr(lead, field, value)

    lead.touch()
    session.add(lead)
    await session.commit()
    await session.refresh(lead)
    return LeadRead.from_row(lead)


async def delete_lead(session: AsyncSession, lead_id: uuid.UUID) -> None:
    lead = await _get_or_404(session, lead_id)
    await session.delete(lead)
    await session.commit()
    logger.info("Lead %s deleted", lead_id)


def leads_to_csv(leads: list[LeadRead]) -> str:
    """Render leads as CSV with every field quoted."""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(EXPORT_HEADERS)
    for lead in leads:
        writer.writerow([
            str(lead.id),
            lead.lead_kind,
            lead.business_name or "",
            lead.contact_name or "",
            lead.email,
            lead.phone or "",
            lead.website or "",
            "; ".join(lead.social_links) if lead.social_links else "",
            lead.source_path or "",
            "; ".join(lead.tags) if lead.tags else "",
            json.dumps(lead.meta) if lead.meta else "",
            lead.created_at.isoformat(),
        ])
    return output.getvalue()


async def export_leads_csv(
    session: AsyncSession,
    *,
    limit: int = 10_000,
    **criteria,
) -> str:
    """Every lead matching ``criteria`` (up to ``limit``) as CSV."""
    result = await search_leads(session, limit=limit, offset=0, **criteria)
    return leads_to_csv(result.leads)

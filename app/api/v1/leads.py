"""Lead endpoints — public submission plus the cached back-office listing."""

import uuid
from datetime import datetime
from functools import partial
from typing import Annotated

from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel

from app.api.deps import Admin, Coordinator, Session, require_elevated
from app.api.views import MutationEnvelope, ViewEnvelope, http_error, mutation_response, view_response
from app.core.cache import CachePartition
from app.core.config import get_settings
from app.core.errors import NotFoundError, ValidationError
from app.models.lead import LeadCreate, LeadKind, LeadRead, LeadUpdate
from app.services import leads_admin, leads_public
from app.services.coordinator import ViewRequest
from app.services.leads_admin import LeadSortKey, SortDirection

settings = get_settings()

public_router = APIRouter(prefix="/leads", tags=["leads"])
admin_router = APIRouter(prefix="/admin/leads", tags=["leads"])


class EmailExists(BaseModel):
    exists: bool


# ── Public ───────────────────────────────────────────────────

@public_router.post("", response_model=LeadRead, status_code=status.HTTP_201_CREATED)
async def submit_lead(
    body: LeadCreate,
    session: Session,
    coordinator: Coordinator,
    anon_id: str | None = None,
) -> LeadRead:
    """Submit a get-involved form. ``anon_id`` links the lead to a tracked visitor."""
    try:
        leads_public.ensure_valid(body)
    except ValidationError as exc:
        raise http_error(exc) from exc

    result = await coordinator.mutate(
        "submit lead",
        partial(leads_public.create_lead, session, body, anon_id),
        # The users analytics view shows which visitors became leads.
        [CachePartition.LEADS, CachePartition.ANALYTICS],
    )
    return mutation_response(result).outcome


@public_router.get("/exists", response_model=EmailExists)
async def lead_email_exists(email: str, session: Session) -> EmailExists:
    return EmailExists(exists=await leads_public.email_exists(session, email))


# ── Back-office ──────────────────────────────────────────────

def _criteria(
    kinds: list[LeadKind] | None,
    search: str | None,
    tags: list[str] | None,
    created_after: datetime | None,
    created_before: datetime | None,
    order_by: LeadSortKey,
    direction: SortDirection,
) -> dict:
    return {
        "kinds": sorted(kinds) if kinds else None,
        "search": search or None,
        "tags": sorted(tags) if tags else None,
        "created_after": created_after,
        "created_before": created_before,
        "order_by": order_by,
        "direction": direction,
    }


@admin_router.get("", response_model=ViewEnvelope)
async def search_leads(
    admin: Admin,
    session: Session,
    coordinator: Coordinator,
    kinds: Annotated[list[LeadKind] | None, Query()] = None,
    search: str | None = None,
    tags: Annotated[list[str] | None, Query()] = None,
    created_after: datetime | None = None,
    created_before: datetime | None = None,
    order_by: LeadSortKey = LeadSortKey.CREATED_AT,
    direction: SortDirection = SortDirection.DESC,
    limit: Annotated[int | None, Query(ge=1, le=1000)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
    refresh: bool = False,
) -> ViewEnvelope:
    params = _criteria(kinds, search, tags, created_after, created_before, order_by, direction)
    params["limit"] = limit or settings.leads_page_size
    params["offset"] = offset
    request = ViewRequest(
        CachePartition.LEADS, "search", params, partial(leads_admin.search_leads, session),
    )
    return view_response(await coordinator.load_view(request, force_refresh=refresh))


@admin_router.get("/counts", response_model=ViewEnvelope)
async def lead_counts(
    admin: Admin, session: Session, coordinator: Coordinator, refresh: bool = False,
) -> ViewEnvelope:
    request = ViewRequest(
        CachePartition.LEADS, "counts", {}, partial(leads_admin.dashboard_counts, session),
    )
    return view_response(await coordinator.load_view(request, force_refresh=refresh))


@admin_router.get("/stats", response_model=ViewEnvelope)
async def lead_stats(
    admin: Admin, session: Session, coordinator: Coordinator, refresh: bool = False,
) -> ViewEnvelope:
    request = ViewRequest(
        CachePartition.LEADS, "stats", {}, partial(leads_admin.lead_stats, session),
    )
    return view_response(await coordinator.load_view(request, force_refresh=refresh))


@admin_router.get("/export")
async def export_leads(
    admin: Admin,
    session: Session,
    kinds: Annotated[list[LeadKind] | None, Query()] = None,
    search: str | None = None,
    tags: Annotated[list[str] | None, Query()] = None,
    created_after: datetime | None = None,
    created_before: datetime | None = None,
    order_by: LeadSortKey = LeadSortKey.CREATED_AT,
    direction: SortDirection = SortDirection.DESC,
) -> Response:
    """Download every matching lead as CSV. Always read fresh."""
    csv_text = await leads_admin.export_leads_csv(
        session,
        limit=settings.leads_export_limit,
        **_criteria(kinds, search, tags, created_after, created_before, order_by, direction),
    )
    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="leads.csv"'},
    )


@admin_router.get("/{lead_id}", response_model=LeadRead)
async def get_lead(lead_id: uuid.UUID, admin: Admin, session: Session) -> LeadRead:
    try:
        return await leads_public.get_lead(session, lead_id)
    except NotFoundError as exc:
        raise http_error(exc) from exc


@admin_router.patch("/{lead_id}", response_model=MutationEnvelope)
async def update_lead(
    lead_id: uuid.UUID,
    body: LeadUpdate,
    admin: Admin,
    session: Session,
    coordinator: Coordinator,
) -> MutationEnvelope:
    require_elevated(admin)
    try:
        leads_admin.ensure_valid_update(body)
    except ValidationError as exc:
        raise http_error(exc) from exc

    result = await coordinator.mutate(
        "update lead",
        partial(leads_admin.update_lead, session, lead_id, body),
        [CachePartition.LEADS],
    )
    return mutation_response(result)


@admin_router.delete("/{lead_id}", response_model=MutationEnvelope)
async def delete_lead(
    lead_id: uuid.UUID,
    admin: Admin,
    session: Session,
    coordinator: Coordinator,
) -> MutationEnvelope:
    require_elevated(admin)
    result = await coordinator.mutate(
        "delete lead",
        partial(leads_admin.delete_lead, session, lead_id),
        [CachePartition.LEADS],
    )
    return mutation_response(result)

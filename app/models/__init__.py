"""Import all models so SQLModel.metadata picks them up."""

from app.models.admin_user import AdminRole, AdminUser, AdminUserCreate, AdminUserRead
from app.models.analytics import (
    ExcludedUser,
    ExclusionCreate,
    ExclusionRead,
    ExclusionTarget,
    TimeRange,
    TrackedEvent,
    Visitor,
    VisitSession,
)
from app.models.lead import Lead, LeadCreate, LeadKind, LeadRead, LeadUpdate

__all__ = [
    "AdminRole",
    "AdminUser",
    "AdminUserCreate",
    "AdminUserRead",
    "ExcludedUser",
    "ExclusionCreate",
    "ExclusionRead",
    "ExclusionTarget",
    "Lead",
    "LeadCreate",
    "LeadKind",
    "LeadRead",
    "LeadUpdate",
    "TimeRange",
    "TrackedEvent",
    "Visitor",
    "VisitSession",
]

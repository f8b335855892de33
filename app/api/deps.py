"""FastAPI dependencies for admin authentication and the view cache."""

import uuid
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import CacheStore
from app.core.database import get_session
from app.core.security import decode_jwt
from app.models.admin_user import AdminRole, AdminUser
from app.services.coordinator import FetchCoordinator

bearer_scheme = HTTPBearer()


class AdminContext:
    """Resolved admin identity carried through a request."""

    __slots__ = ("admin_id", "email", "role")

    def __init__(self, admin_id: uuid.UUID, email: str, role: AdminRole) -> None:
        self.admin_id = admin_id
        self.email = email
        self.role = role


def _resolve_jwt(token: str) -> uuid.UUID:
    """Decode a JWT and extract the admin id."""
    try:
        payload = decode_jwt(token)
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired JWT",
        ) from exc

    try:
        return uuid.UUID(payload["sub"])
    except (KeyError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed JWT payload",
        ) from exc


async def get_admin_context(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AdminContext:
    """Resolve a bearer JWT to an active admin account."""
    admin_id = _resolve_jwt(credentials.credentials)
    admin = await session.get(AdminUser, admin_id)
    if admin is None or not admin.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin account is disabled",
        )
    return AdminContext(admin_id=admin.id, email=admin.email, role=admin.role)


def require_elevated(admin: AdminContext) -> None:
    """Raise 403 if the caller is a read-only viewer."""
    if admin.role not in (AdminRole.OWNER, AdminRole.ADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only owners and admins can make changes",
        )


def require_owner(admin: AdminContext) -> None:
    if admin.role != AdminRole.OWNER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only owners can manage admin accounts",
        )


def get_cache_store(request: Request) -> CacheStore:
    return request.app.state.cache_store


def get_coordinator(request: Request) -> FetchCoordinator:
    return request.app.state.coordinator


# Typed shorthand for use in route signatures
Admin = Annotated[AdminContext, Depends(get_admin_context)]
Session = Annotated[AsyncSession, Depends(get_session)]
Store = Annotated[CacheStore, Depends(get_cache_store)]
Coordinator = Annotated[FetchCoordinator, Depends(get_coordinator)]

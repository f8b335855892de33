"""Admin accounts — first-run bootstrap plus owner-only management."""

import logging
import uuid

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import func
from sqlmodel import select

from app.api.deps import Admin, Session, require_owner
from app.core.security import hash_password
from app.models.admin_user import AdminRole, AdminUser, AdminUserCreate, AdminUserRead

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admins", tags=["admins"])


@router.post("/bootstrap", response_model=AdminUserRead, status_code=status.HTTP_201_CREATED)
async def bootstrap_owner(body: AdminUserCreate, session: Session) -> AdminUserRead:
    """Create the first owner account. Refused once any admin exists."""
    existing = (await session.execute(select(func.count()).select_from(AdminUser))).scalar_one()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Admin accounts already exist",
        )

    admin = AdminUser(
        email=body.email,
        password_hash=hash_password(body.password),
        display_name=body.display_name,
        role=AdminRole.OWNER,
    )
    session.add(admin)
    await session.commit()
    await session.refresh(admin)
    logger.info("Bootstrapped owner account %s", admin.email)
    return AdminUserRead.model_validate(admin)


@router.post("", response_model=AdminUserRead, status_code=status.HTTP_201_CREATED)
async def create_admin(body: AdminUserCreate, admin: Admin, session: Session) -> AdminUserRead:
    require_owner(admin)

    stmt = select(AdminUser).where(AdminUser.email == body.email)
    if (await session.execute(stmt)).scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An admin with this email already exists",
        )

    account = AdminUser(
        email=body.email,
        password_hash=hash_password(body.password),
        display_name=body.display_name,
        role=body.role,
    )
    session.add(account)
    await session.commit()
    await session.refresh(account)
    return AdminUserRead.model_validate(account)


@router.get("", response_model=list[AdminUserRead])
async def list_admins(admin: Admin, session: Session) -> list[AdminUserRead]:
    require_owner(admin)
    stmt = select(AdminUser).order_by(AdminUser.email.asc())  # type: ignore[attr-defined]
    result = await session.execute(stmt)
    return [AdminUserRead.model_validate(a) for a in result.scalars().all()]


@router.delete("/{admin_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_admin(admin_id: uuid.UUID, admin: Admin, session: Session) -> None:
    require_owner(admin)
    if admin_id == admin.admin_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Owners cannot deactivate themselves",
        )

    account = await session.get(AdminUser, admin_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Admin not found")
    account.is_active = False
    account.touch()
    session.add(account)
    await session.commit()

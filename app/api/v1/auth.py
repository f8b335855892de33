"""Authentication endpoints — login + current admin."""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, EmailStr
from sqlmodel import select

from app.api.deps import Admin, Session
from app.core.security import create_jwt, verify_password
from app.models.admin_user import AdminUser, AdminUserRead

router = APIRouter(prefix="/auth", tags=["auth"])


# ── Schemas ──────────────────────────────────────────────────

class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    admin: AdminUserRead


# ── Routes ───────────────────────────────────────────────────

@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, session: Session) -> LoginResponse:
    """Authenticate with email + password, receive a JWT."""
    stmt = select(AdminUser).where(AdminUser.email == body.email)
    result = await session.execute(stmt)
    admin = result.scalar_one_or_none()

    if admin is None or not verify_password(body.password, admin.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not admin.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is disabled",
        )

    token = create_jwt(subject=str(admin.id), role=admin.role)
    return LoginResponse(access_token=token, admin=AdminUserRead.model_validate(admin))


@router.get("/me", response_model=AdminUserRead)
async def get_me(admin: Admin, session: Session) -> AdminUserRead:
    """Return the current authenticated admin."""
    account = await session.get(AdminUser, admin.admin_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Admin not found")
    return AdminUserRead.model_validate(account)

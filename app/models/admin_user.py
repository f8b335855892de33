"""Admin user model — accounts allowed into the back-office."""

import uuid
from enum import StrEnum

from pydantic import EmailStr
from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin, new_uuid


class AdminRole(StrEnum):
    OWNER = "owner"
    ADMIN = "admin"
    VIEWER = "viewer"


class AdminUser(TimestampMixin, SQLModel, table=True):
    __tablename__ = "admin_users"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    email: str = Field(max_length=320, unique=True, nullable=False, index=True)
    password_hash: str = Field(nullable=False)
    display_name: str = Field(default="", max_length=255)
    role: AdminRole = Field(default=AdminRole.ADMIN)
    is_active: bool = Field(default=True)


# ── Pydantic schemas ─────────────────────────────────────────

class AdminUserCreate(SQLModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    display_name: str = Field(default="", max_length=255)
    role: AdminRole = AdminRole.ADMIN


class AdminUserRead(SQLModel):
    id: uuid.UUID
    email: str
    display_name: str
    role: AdminRole
    is_active: bool

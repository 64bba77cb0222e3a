"""
Pydantic models for users, sessions and credentials.

``UserRecord`` is what the store persists (it carries the password hash).
``UserPublic`` is the only user shape that leaves the service; it is built
field-by-field from a record and has no password attribute at all.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.password import MAX_PASSWORD_BYTES


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


# ── Stored records ─────────────────────────────────────────────────────


class UserRecord(BaseModel):
    id: str
    username: str
    email: str
    password_hash: str
    is_active: bool = True
    settings: Dict[str, Any] = Field(default_factory=dict)
    role: Role = Role.USER
    created_at: datetime
    updated_at: datetime


class SessionRecord(BaseModel):
    token: str
    user_id: str
    expires_at: datetime
    created_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


# ── Credentials in flight ──────────────────────────────────────────────


class RegisterData(BaseModel):
    username: str = Field(..., min_length=2, max_length=64)
    email: str = Field(..., min_length=5, max_length=255)
    password: str = Field(..., min_length=4)

    @field_validator("password")
    @classmethod
    def _fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes in UTF-8")
        return value


class LoginData(BaseModel):
    email: str
    password: str


# ── Boundary shapes ────────────────────────────────────────────────────


class UserPublic(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    username: str
    email: str
    settings: Dict[str, Any] = Field(default_factory=dict)
    role: Role
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: UserRecord) -> "UserPublic":
        return cls(
            id=record.id,
            username=record.username,
            email=record.email,
            settings=dict(record.settings),
            role=record.role,
            is_active=record.is_active,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class AuthResult(BaseModel):
    user: UserPublic
    token: str


class AdminUserUpdate(BaseModel):
    """Fields an admin may change on another account. Passwords are not among them."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    username: Optional[str] = Field(None, min_length=2, max_length=64)
    email: Optional[str] = Field(None, min_length=5, max_length=255)
    role: Optional[Role] = None
    is_active: Optional[bool] = None
    settings: Optional[Dict[str, Any]] = None

"""
user.py — Pydantic schemas for user-related request / response bodies.

Separation of concerns:
  Role / UserStatus — enumerations shared with the role model
  RegisterRequest   — student self-registration (account starts pending)
  UserCreate        — admin-created account with an explicit role
  UserOut           — what the API returns (never includes hashed_password)
  Token             — JWT response from /auth/login and /auth/guest
  LoginRequest      — credentials + optional portal hint
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, Field, StringConstraints


class Role(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"
    SECURITY_HEAD = "security_head"
    PRINCIPAL = "principal"
    HOD = "hod"
    CLASS_IN_CHARGE = "class_in_charge"


class UserStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    BANNED = "banned"


class Portal(str, Enum):
    """Which login screen the credentials were entered on."""
    STUDENT = "student"
    ADMIN = "admin"


# ── User ──────────────────────────────────────────────────────────────────────

# Whitespace is stripped before the length check, so "   " is rejected.
Identifier = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)]
DisplayName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]


class RegisterRequest(BaseModel):
    """Payload for POST /auth/register."""
    college_id: Identifier
    name: DisplayName
    password: str = Field(min_length=8, max_length=128)
    biometric_id: Identifier


class UserCreate(BaseModel):
    """Payload for POST /api/v1/users (admin-created accounts)."""
    college_id: Identifier
    name: DisplayName
    password: str = Field(min_length=8, max_length=128)
    role: Role
    phone: Optional[str] = Field(default=None, max_length=32)
    status: UserStatus = UserStatus.APPROVED


class UserOut(BaseModel):
    """Safe user representation — no secrets."""
    id: str
    college_id: Optional[str] = None
    name: str
    role: Role
    status: UserStatus
    phone: Optional[str] = None
    is_guest: bool = False
    created_at: Optional[datetime] = None


class UserStatusUpdate(BaseModel):
    """Payload for PATCH /api/v1/users/{id}/status."""
    status: UserStatus


# ── Auth tokens ───────────────────────────────────────────────────────────────

class Token(BaseModel):
    """Response body for successful login / guest session."""
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class LoginRequest(BaseModel):
    """Payload for POST /auth/login."""
    college_id: str
    password: str
    # Required for students; staff accounts omit it
    biometric_id: Optional[str] = None
    portal: Optional[Portal] = None


class RegisterResponse(BaseModel):
    user: UserOut
    message: str = "Registration received. An administrator must approve the account before login."

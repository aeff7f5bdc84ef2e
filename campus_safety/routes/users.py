"""
users.py — Account management for staff.

Routes:
  GET   /api/v1/users               — list accounts (filter by role / status)
  POST  /api/v1/users               — create an account with any role
  PATCH /api/v1/users/{id}/status   — approve or ban an account

All routes require the manage_users capability (any admin-group role).
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status

from campus_safety.core.database import get_db
from campus_safety.core.errors import ValidationError
from campus_safety.models.user import Role, UserCreate, UserOut, UserStatus, UserStatusUpdate
from campus_safety.repositories.users import UserDirectory
from campus_safety.routes.auth import require
from campus_safety.services.roles import Capability

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/users", tags=["users"])

UserManager = Annotated[UserOut, Depends(require(Capability.MANAGE_USERS))]


@router.get("", response_model=list[UserOut])
async def list_users(
    actor: UserManager,
    role: Optional[Role] = Query(default=None),
    user_status: Optional[UserStatus] = Query(default=None, alias="status"),
    db=Depends(get_db),
):
    """List accounts, newest first. `?role=student&status=pending` is the approval queue."""
    return await UserDirectory(db).list_users(role=role, status=user_status)


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def create_user(payload: UserCreate, actor: UserManager, db=Depends(get_db)):
    """Create an account directly (staff onboarding)."""
    user = await UserDirectory(db).create(
        college_id=payload.college_id,
        name=payload.name,
        password=payload.password,
        role=payload.role,
        status=payload.status,
        phone=payload.phone,
    )
    logger.info("%s created account %s", actor.id, user.id)
    return user


@router.patch("/{user_id}/status", response_model=UserOut)
async def set_user_status(
    user_id: str,
    payload: UserStatusUpdate,
    actor: UserManager,
    db=Depends(get_db),
):
    """Approve, re-queue or ban an account."""
    if user_id == actor.id:
        raise ValidationError("You cannot change your own account status")
    return await UserDirectory(db).set_status(user_id, payload.status)

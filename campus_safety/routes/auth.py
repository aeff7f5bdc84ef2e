"""
auth.py — Authentication routes and the session dependencies.

Routes:
  POST /auth/register  — student self-registration (account starts pending)
  POST /auth/login     — exchange credentials for a JWT
  POST /auth/guest     — anonymous guest session (Guest_NNNN)
  GET  /auth/me        — return current user (requires valid JWT)
  POST /auth/logout    — stateless; the client drops its token

Dependencies re-exported for other routers:
  CurrentUser           — any approved user or guest
  require(capability)   — gate a route on a role capability

Passwords are hashed with bcrypt; tokens are HS256 JWTs. Errors are
CampusSafetyError subclasses, serialised by the handler in main.py as:
  { "detail": "...", "error": "<kind>" }
"""

import logging
import secrets
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from campus_safety.core.config import settings
from campus_safety.core.database import get_db
from campus_safety.core.errors import (
    AccountNotApprovedError,
    AuthError,
    PermissionDeniedError,
    ValidationError,
)
from campus_safety.core.rate_limit import limiter
from campus_safety.core.security import (
    GUEST_SUBJECT_PREFIX,
    create_access_token,
    decode_access_token,
    verify_password,
)
from campus_safety.models.user import (
    LoginRequest,
    RegisterRequest,
    RegisterResponse,
    Role,
    Token,
    UserOut,
    UserStatus,
)
from campus_safety.repositories.users import UserDirectory, doc_to_user_out
from campus_safety.services.roles import Capability, can_use_portal, roles_for
from campus_safety.services.session_gate import (
    DenyReason,
    GateDecision,
    SessionState,
    decide,
    log_denial,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

# Reusable bearer extractor (does NOT auto-raise on missing token)
_bearer = HTTPBearer(auto_error=False)
CredDep = Annotated[Optional[HTTPAuthorizationCredentials], Depends(_bearer)]


# ── Helpers ───────────────────────────────────────────────────────────────────

def _guest_user(subject: str) -> UserOut:
    return UserOut(
        id=subject,
        name=subject[len(GUEST_SUBJECT_PREFIX):],
        role=Role.STUDENT,
        status=UserStatus.APPROVED,
        is_guest=True,
    )


def _ensure_approved(user: UserOut) -> None:
    if user.status is UserStatus.PENDING:
        raise AccountNotApprovedError("Account pending approval")
    if user.status is UserStatus.BANNED:
        raise AccountNotApprovedError("Account banned")


async def resolve_session(credentials: CredDep, db=Depends(get_db)) -> SessionState:
    """
    Resolve the bearer token to `absent` or `present(user)`.

    A token belonging to a pending or banned account is refused outright
    (AccountNotApprovedError), even if it was issued before the ban.
    """
    if not credentials:
        return SessionState.absent()

    subject = decode_access_token(credentials.credentials)
    if not subject:
        return SessionState.absent()

    if subject.startswith(GUEST_SUBJECT_PREFIX):
        return SessionState.present(_guest_user(subject))

    doc = await UserDirectory(db).get(subject)
    if not doc:
        return SessionState.absent()

    user = doc_to_user_out(doc)
    _ensure_approved(user)
    return SessionState.present(user)


SessionDep = Annotated[SessionState, Depends(resolve_session)]


def require(capability: Capability):
    """
    Build a dependency that admits only roles holding `capability`.

    No session → 401, wrong role → 403. Both are logged as audit records.
    """
    allowed = roles_for(capability)

    async def _gate(request: Request, session: SessionDep) -> UserOut:
        result = decide(session, allowed)
        if result.decision is GateDecision.PERMIT:
            return session.user

        log_denial(f"{request.method} {request.url.path}", session, result.reason)
        if result.reason is DenyReason.NO_SESSION:
            raise AuthError("Not authenticated")
        raise PermissionDeniedError(
            f"Your role does not allow this action ({capability.value})"
        )

    return _gate


# Re-export so other routes can depend on it
CurrentUser = Annotated[UserOut, Depends(require(Capability.VIEW_INCIDENTS))]


# ── Routes ────────────────────────────────────────────────────────────────────

@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.login_rate_limit)
async def register(request: Request, payload: RegisterRequest, db=Depends(get_db)):
    """Register a student account. An administrator must approve it before login."""
    if settings.college_id_marker and settings.college_id_marker not in payload.college_id:
        raise ValidationError(
            f'Invalid College ID. Must contain "{settings.college_id_marker}".'
        )

    user = await UserDirectory(db).create(
        college_id=payload.college_id,
        name=payload.name,
        password=payload.password,
        role=Role.STUDENT,
        status=UserStatus.PENDING,
        phone=payload.biometric_id,
    )
    return RegisterResponse(user=user)


@router.post("/login", response_model=Token)
@limiter.limit(settings.login_rate_limit)
async def login(request: Request, payload: LoginRequest, db=Depends(get_db)):
    """Authenticate with college ID + password and return a JWT."""
    directory = UserDirectory(db)
    doc = await directory.find_by_college_id(payload.college_id)
    if not doc or not verify_password(payload.password, doc["hashed_password"]):
        raise AuthError("Invalid credentials")

    user = doc_to_user_out(doc)

    # Students confirm the biometric id they registered with
    if user.role is Role.STUDENT:
        if not payload.biometric_id or doc.get("phone") != payload.biometric_id:
            raise AuthError("Biometric ID does not match our records")

    if payload.portal is not None and not can_use_portal(user.role, payload.portal):
        logger.warning("Login refused: %s (%s) on %s portal", user.id, user.role.value, payload.portal.value)
        raise PermissionDeniedError("Unauthorized access")

    _ensure_approved(user)

    logger.info("User %s logged in as %s", user.id, user.role.value)
    return Token(access_token=create_access_token(user.id), user=user)


@router.post("/guest", response_model=Token)
@limiter.limit(settings.login_rate_limit)
async def guest(request: Request):
    """Issue a guest session. Guests are students without a stored account."""
    label = f"Guest_{secrets.randbelow(10000):04d}"
    subject = f"{GUEST_SUBJECT_PREFIX}{label}"
    return Token(access_token=create_access_token(subject), user=_guest_user(subject))


@router.get("/me", response_model=UserOut)
async def me(session: SessionDep):
    """Return the currently authenticated user's profile."""
    if session.user is None:
        raise AuthError("Not authenticated")
    return session.user


@router.post("/logout")
async def logout():
    """JWTs are stateless; the client discards its token."""
    return {"message": "Logged out"}

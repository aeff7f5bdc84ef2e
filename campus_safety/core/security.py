"""
security.py — Password hashing and JWT utilities.

Uses:
  - bcrypt directly (no passlib)
  - python-jose for JWT creation / verification

Configuration is read from campus_safety.core.config.settings so all secrets
live in environment variables / .env files, never in code.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
from jose import JWTError, jwt

from campus_safety.core.config import settings

# Guest sessions have no stored user; their subject carries this prefix.
GUEST_SUBJECT_PREFIX = "guest:"


# ── Password hashing ──────────────────────────────────────────────────────────

# bcrypt only looks at the first 72 bytes; newer releases reject longer input
BCRYPT_MAX_BYTES = 72


def _password_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return bcrypt hash of *plain* password."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(_password_bytes(plain), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if *plain* matches *hashed*."""
    return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))


# ── JWT ───────────────────────────────────────────────────────────────────────

def create_access_token(
    subject: str,
    expires_delta: Optional[timedelta] = None,
    extra_claims: Optional[dict[str, Any]] = None,
) -> str:
    """
    Create a signed JWT.

    Args:
        subject:       The user's string ID, or "guest:<label>" for guests.
        expires_delta: Custom TTL; defaults to settings.jwt_expiry_hours.
        extra_claims:  Additional claims (e.g. the guest display name).

    Returns:
        Encoded JWT string.
    """
    delta = expires_delta or timedelta(hours=settings.jwt_expiry_hours)
    expire = datetime.now(tz=timezone.utc) + delta
    payload = {**(extra_claims or {}), "sub": subject, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_claims(token: str) -> Optional[dict[str, Any]]:
    """Return all claims of a valid token, or None."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None


def decode_access_token(token: str) -> Optional[str]:
    """
    Decode and validate a JWT.

    Returns the *sub* claim on success, or None if the token
    is missing, expired, or otherwise invalid.
    """
    claims = decode_access_claims(token)
    if claims is None:
        return None
    return claims.get("sub")

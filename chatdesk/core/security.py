"""
Security utilities: password hashing, JWT tokens and request authentication.

Clients authenticate with an access token in the Authorization header
("Bearer <token>"). Each request re-loads the user so that deactivated
accounts and revoked admin rights take effect immediately.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
from fastapi import Header, HTTPException, Security, status
from jose import JWTError, jwt

from chatdesk.core.config import settings

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


@dataclass
class UserContext:
    """
    The authenticated user for the current request.

    Attributes:
        user_id: Unique identifier for the user
        email: User's email
        is_admin: Whether user has admin privileges
    """

    user_id: str
    email: str
    is_admin: bool = False


# =============================================================================
# Password hashing
# =============================================================================


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


# =============================================================================
# JWT
# =============================================================================


def create_access_token(user_id: str, email: str, is_admin: bool = False) -> str:
    """Create a short-lived access token."""
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "email": email,
        "is_admin": is_admin,
        "type": TOKEN_TYPE_ACCESS,
        "exp": now + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
        "iat": now,
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_refresh_token(user_id: str) -> str:
    """Create a long-lived refresh token."""
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "type": TOKEN_TYPE_REFRESH,
        "exp": now + timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS),
        "iat": now,
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, expected_type: str) -> dict[str, Any] | None:
    """
    Verify and decode a JWT of the expected type.

    Returns:
        Decoded payload if valid, None if invalid, expired or of another type.
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != expected_type:
        return None
    return payload


def access_token_expiry_seconds() -> int:
    return settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60


def extract_bearer_token(authorization: str | None) -> str | None:
    """Extract Bearer token from Authorization header."""
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


# =============================================================================
# Dependencies
# =============================================================================


async def get_current_user(authorization: str | None = Header(None)) -> UserContext:
    """
    Resolve the authenticated, active user from the Bearer token.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired, or the
        account no longer exists or is disabled.
    """
    token = extract_bearer_token(authorization)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(token, TOKEN_TYPE_ACCESS)
    if not payload or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired access token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Import here to avoid circular imports
    from chatdesk.services.database import database

    user = await database.get_user(payload["sub"])
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return UserContext(user_id=user.id, email=user.email, is_admin=user.is_admin)


async def require_admin_user(
    user_ctx: UserContext = Security(get_current_user),
) -> UserContext:
    """
    Dependency that requires an admin user.

    Raises:
        HTTPException: 403 if not admin.
    """
    if not user_ctx.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user_ctx

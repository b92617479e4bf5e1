"""
Authentication service for user account management.

Handles:
- Registration (with email verification link when SMTP is configured)
- Login with email/password (with Redis-backed brute force protection)
- Token refresh
- Password reset via emailed one-time token
"""

import json
import logging
import secrets
from datetime import UTC, datetime, timedelta

from fastapi import HTTPException, status
from redis.exceptions import RedisError

from chatdesk.core.config import settings
from chatdesk.core.security import (
    TOKEN_TYPE_REFRESH,
    access_token_expiry_seconds,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from chatdesk.models.user import User
from chatdesk.schemas.auth import TokenResponse, UserInfo
from chatdesk.services.database import database
from chatdesk.services.email_service import email_service
from chatdesk.services.redis_cache import redis_cache

logger = logging.getLogger("chatdesk.auth")


def user_info(user: User) -> UserInfo:
    return UserInfo(**user.to_dict())


class AuthService:
    """
    Service for user authentication and account management.

    Security features:
    - Login brute force protection (configurable attempts/window, needs Redis)
    - One-time verification and reset tokens stored on the user row
    - Reset responses never reveal whether an email is registered
    """

    LOGIN_ATTEMPTS_KEY = "auth:login_attempts:{email}"

    def __init__(self):
        self.db = database
        self.redis = redis_cache

    # =========================================================================
    # Registration
    # =========================================================================

    async def register(self, email: str, password: str, first_name: str, last_name: str) -> User:
        """
        Register a new user account.

        With email enabled the account stays inactive until the emailed link
        is followed. Otherwise it is active and verified immediately.

        Raises:
            HTTPException: 400 if email already registered.
        """
        if await self.db.get_user_by_email(email):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered",
            )

        requires_verification = email_service.is_enabled
        verification_token = secrets.token_hex(32) if requires_verification else None

        user = await self.db.create_user(
            email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            is_active=not requires_verification,
            email_verified=not requires_verification,
            verification_token=verification_token,
        )

        if verification_token:
            sent = await email_service.send_verification_email(user.email, first_name, verification_token)
            if not sent:
                logger.warning("Verification email to %s could not be sent", user.email)

        return user

    async def verify_email(self, token: str) -> User:
        """
        Activate the account holding the verification token.

        Raises:
            HTTPException: 400 if the token is unknown.
        """
        user = await self.db.get_user_by_verification_token(token)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid or expired verification token",
            )

        updated = await self.db.update_user(
            user.id,
            email_verified=True,
            is_active=True,
            verification_token=None,
        )
        logger.info("Email verified for user %s", user.id)
        return updated or user

    # =========================================================================
    # Login
    # =========================================================================

    async def login(self, email: str, password: str) -> TokenResponse:
        """
        Login with email and password with brute force protection.

        Raises:
            HTTPException: 401 if credentials invalid.
            HTTPException: 403 if the account is inactive (unverified or disabled).
            HTTPException: 429 if too many failed attempts.
        """
        is_locked, remaining_seconds = await self._check_login_lockout(email)
        if is_locked:
            logger.warning("Login blocked for %s - too many failed attempts", email)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Too many failed login attempts. Try again in {remaining_seconds} seconds.",
                headers={"Retry-After": str(remaining_seconds)},
            )

        user = await self.db.get_user_by_email(email)

        if not user or not user.password_hash or not verify_password(password, user.password_hash):
            await self._record_failed_login(email)
            logger.info("Login failed for %s", email)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
            )

        await self._clear_failed_logins(email)

        if not user.is_active:
            logger.info("Login refused for inactive account %s", user.id)
            detail = (
                "Please verify your email before logging in."
                if not user.email_verified
                else "Account is disabled. Please contact an administrator."
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

        logger.info("Successful login for user %s", user.id)
        return self._create_token_response(user)

    async def refresh_token(self, refresh_token: str) -> TokenResponse:
        """
        Issue fresh tokens from a refresh token.

        Raises:
            HTTPException: 401 if the token is invalid or the user is gone or disabled.
        """
        payload = decode_token(refresh_token, TOKEN_TYPE_REFRESH)
        if not payload:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired refresh token",
            )

        user = await self.db.get_user(payload.get("sub", ""))
        if not user or not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found or disabled",
            )

        return self._create_token_response(user)

    async def _check_login_lockout(self, email: str) -> tuple[bool, int]:
        """
        Check if login is locked out due to too many failed attempts.

        Returns:
            Tuple of (is_locked, remaining_seconds).
        """
        if not self.redis.is_available:
            return (False, 0)

        key = self.LOGIN_ATTEMPTS_KEY.format(email=email.lower())
        try:
            raw_data = await self.redis.client.get(key)
            if not raw_data:
                return (False, 0)

            attempts = json.loads(raw_data).get("attempts", 0)
            if attempts >= settings.LOGIN_RATE_LIMIT_ATTEMPTS:
                ttl = await self.redis.client.ttl(key)
                return (True, max(0, ttl))
            return (False, 0)
        except RedisError as e:
            logger.error("Redis error checking login lockout: %s", e)
            return (False, 0)

    async def _record_failed_login(self, email: str) -> None:
        if not self.redis.is_available:
            return

        key = self.LOGIN_ATTEMPTS_KEY.format(email=email.lower())
        try:
            raw_data = await self.redis.client.get(key)
            if raw_data:
                data = json.loads(raw_data)
                data["attempts"] = data.get("attempts", 0) + 1
            else:
                data = {"attempts": 1, "first_attempt": datetime.now(UTC).isoformat()}

            await self.redis.client.setex(key, settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS, json.dumps(data))

            if data["attempts"] >= settings.LOGIN_RATE_LIMIT_ATTEMPTS:
                logger.warning("Login rate limit reached for %s - %d attempts", email, data["attempts"])
        except RedisError as e:
            logger.error("Redis error recording failed login: %s", e)

    async def _clear_failed_logins(self, email: str) -> None:
        if not self.redis.is_available:
            return

        try:
            await self.redis.client.delete(self.LOGIN_ATTEMPTS_KEY.format(email=email.lower()))
        except RedisError as e:
            logger.error("Redis error clearing failed logins: %s", e)

    # =========================================================================
    # Password Reset
    # =========================================================================

    async def request_password_reset(self, email: str) -> None:
        """Store a reset token and email it. Silent when the email is unknown."""
        user = await self.db.get_user_by_email(email)
        if not user or not user.password_hash:
            return

        token = secrets.token_hex(32)
        expiry = datetime.now(UTC) + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
        await self.db.update_user(user.id, reset_token=token, reset_token_expiry=expiry)

        sent = await email_service.send_password_reset_email(user.email, user.first_name, token)
        if not sent:
            logger.warning("Password reset email to %s could not be sent", user.email)

    async def reset_password(self, token: str, new_password: str) -> None:
        """
        Set a new password with a valid, unexpired reset token.

        Raises:
            HTTPException: 400 if the token is invalid or expired.
        """
        user = await self.db.get_user_by_reset_token(token)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid or expired reset token",
            )

        await self.db.update_user(
            user.id,
            password_hash=hash_password(new_password),
            reset_token=None,
            reset_token_expiry=None,
        )
        logger.info("Password reset for user %s", user.id)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _create_token_response(self, user: User) -> TokenResponse:
        return TokenResponse(
            access_token=create_access_token(user.id, user.email, user.is_admin),
            refresh_token=create_refresh_token(user.id),
            token_type="bearer",
            expires_in=access_token_expiry_seconds(),
            user=user_info(user),
        )


# Global instance
auth_service = AuthService()

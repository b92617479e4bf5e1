"""
Pydantic schemas for authentication API requests and responses.
"""

from pydantic import BaseModel, EmailStr, Field

# =============================================================================
# Registration
# =============================================================================


class RegisterRequest(BaseModel):
    """Request to register a new user account with email and password."""

    email: EmailStr
    password: str = Field(..., min_length=8, description="Password (minimum 8 characters)")
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)


class RegisterResponse(BaseModel):
    """Response after successful registration."""

    user_id: str
    email: str
    requires_verification: bool
    message: str


# =============================================================================
# Login
# =============================================================================


class LoginRequest(BaseModel):
    """Request to login with email and password."""

    email: EmailStr
    password: str


class UserInfo(BaseModel):
    """Profile of a user, including quota and usage."""

    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    profile_image_url: str | None = None
    is_active: bool
    is_admin: bool = False
    email_verified: bool
    token_quota: int
    token_used: int
    created_at: str | None = None
    updated_at: str | None = None


class TokenResponse(BaseModel):
    """Response containing authentication tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token expiry in seconds")
    user: UserInfo | None = None


class RefreshTokenRequest(BaseModel):
    """Request to refresh an access token."""

    refresh_token: str


# =============================================================================
# Password Reset
# =============================================================================


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Request to set a new password with a reset token from email."""

    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8, description="New password (minimum 8 characters)")


class MessageResponse(BaseModel):
    """Generic message response."""

    success: bool = True
    message: str

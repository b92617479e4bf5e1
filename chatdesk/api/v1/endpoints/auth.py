"""
Authentication API endpoints.

Provides registration, email verification, login, token refresh, password
reset and the current user's profile.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from chatdesk.core.security import UserContext, get_current_user
from chatdesk.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RefreshTokenRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    TokenResponse,
    UserInfo,
)
from chatdesk.services.auth_service import auth_service, user_info
from chatdesk.services.database import database

router = APIRouter()


# =============================================================================
# Registration
# =============================================================================


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest) -> RegisterResponse:
    """
    Register a new user account.

    When outbound email is configured, a verification link is sent and the
    account stays inactive until it is followed. Otherwise the account can
    log in right away.

    **Request Body:**
    ```json
    {
        "email": "user@example.com",
        "password": "SecurePass123",
        "first_name": "Jane",
        "last_name": "Doe"
    }
    ```
    """
    user = await auth_service.register(
        email=request.email,
        password=request.password,
        first_name=request.first_name,
        last_name=request.last_name,
    )

    requires_verification = not user.email_verified
    message = (
        "Registration successful. Please check your email to verify your account."
        if requires_verification
        else "Registration successful. You can now log in."
    )
    return RegisterResponse(
        user_id=user.id,
        email=user.email,
        requires_verification=requires_verification,
        message=message,
    )


@router.get("/verify-email", response_model=MessageResponse)
async def verify_email(token: str = Query(..., min_length=1)) -> MessageResponse:
    """Activate an account with the token from the verification email."""
    await auth_service.verify_email(token)
    return MessageResponse(message="Email verified successfully. You can now log in.")


# =============================================================================
# Login
# =============================================================================


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest) -> TokenResponse:
    """
    Login with email and password.

    Returns access and refresh tokens plus the user's profile. Send the
    access token on subsequent requests:

    ```
    Authorization: Bearer eyJ...
    ```
    """
    return await auth_service.login(email=request.email, password=request.password)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(request: RefreshTokenRequest) -> TokenResponse:
    return await auth_service.refresh_token(refresh_token=request.refresh_token)


@router.post("/logout", response_model=MessageResponse, dependencies=[Depends(get_current_user)])
async def logout() -> MessageResponse:
    """Tokens are stateless; clients discard them on logout."""
    return MessageResponse(message="Logged out successfully")


# =============================================================================
# Password Reset
# =============================================================================


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(request: ForgotPasswordRequest) -> MessageResponse:
    """
    Request a password reset link.

    The response is the same whether or not the email is registered.
    """
    await auth_service.request_password_reset(request.email)
    return MessageResponse(message="If an account with that email exists, we've sent a password reset link.")


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(request: ResetPasswordRequest) -> MessageResponse:
    await auth_service.reset_password(request.token, request.password)
    return MessageResponse(message="Password reset successful. You can now log in with your new password.")


# =============================================================================
# Current User
# =============================================================================


@router.get("/me", response_model=UserInfo)
async def get_current_user_info(user_ctx: UserContext = Depends(get_current_user)) -> UserInfo:
    """Profile of the authenticated user, including token quota and usage."""
    user = await database.get_user(user_ctx.user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user_info(user)

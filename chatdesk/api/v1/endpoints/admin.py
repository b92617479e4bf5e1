"""
Administration API endpoints (admin users only).

Manages the active provider configuration and user accounts: activation,
token quotas and usage resets.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, status

from chatdesk.core.config import settings
from chatdesk.core.security import UserContext, require_admin_user
from chatdesk.schemas.admin import AdminConfigInfo, AdminConfigRequest, UserQuotaRequest, UserStatusRequest
from chatdesk.schemas.auth import UserInfo
from chatdesk.services.auth_service import user_info
from chatdesk.services.database import database

logger = logging.getLogger("chatdesk.admin")

router = APIRouter(dependencies=[Depends(require_admin_user)])


async def _update_user_or_404(user_id: str, **values) -> UserInfo:
    user = await database.update_user(user_id, **values)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user_info(user)


@router.get("/config", response_model=AdminConfigInfo)
async def get_config() -> AdminConfigInfo:
    """The active provider configuration, or defaults when none was saved. The API key is never returned."""
    config = await database.get_active_admin_config()
    if not config:
        return AdminConfigInfo(
            api_provider="openai",
            api_key="",
            api_endpoint="",
            model_name=settings.OPENAI_MODEL,
            default_token_quota=settings.DEFAULT_TOKEN_QUOTA,
            is_active=False,
        )
    return AdminConfigInfo(**config.to_public_dict())


@router.post("/config", response_model=AdminConfigInfo)
async def update_config(
    request: AdminConfigRequest,
    admin_ctx: UserContext = Depends(require_admin_user),
) -> AdminConfigInfo:
    """
    Save a new provider configuration.

    The new row becomes the only active configuration; its provider is tried
    before the environment-configured ones and its default quota applies to
    new accounts.
    """
    config = await database.save_admin_config(**request.model_dump())
    logger.info("Admin %s updated provider config to %s/%s", admin_ctx.user_id, config.api_provider, config.model_name)
    return AdminConfigInfo(**config.to_public_dict())


@router.get("/users", response_model=list[UserInfo])
async def list_users() -> list[UserInfo]:
    return [user_info(u) for u in await database.list_users()]


@router.patch("/users/{user_id}/status", response_model=UserInfo)
async def update_user_status(
    request: UserStatusRequest,
    user_id: str = Path(..., description="The user ID"),
) -> UserInfo:
    """Activate or deactivate an account. Deactivated users are refused on their next request."""
    return await _update_user_or_404(user_id, is_active=request.is_active)


@router.patch("/users/{user_id}/quota", response_model=UserInfo)
async def update_user_quota(
    request: UserQuotaRequest,
    user_id: str = Path(..., description="The user ID"),
) -> UserInfo:
    return await _update_user_or_404(user_id, token_quota=request.token_quota)


@router.post("/users/{user_id}/reset-usage", response_model=UserInfo)
async def reset_user_usage(user_id: str = Path(..., description="The user ID")) -> UserInfo:
    """Reset the user's token_used counter to zero."""
    return await _update_user_or_404(user_id, token_used=0)

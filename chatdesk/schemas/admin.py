"""
Pydantic schemas for the administration API.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

ApiProvider = Literal["openai", "qwen", "deepseek", "custom"]


class AdminConfigRequest(BaseModel):
    """New provider configuration. Saving it makes it the only active one."""

    api_provider: ApiProvider = "openai"
    api_key: str = Field(..., min_length=1)
    api_endpoint: str | None = None
    model_name: str = Field("gpt-4o", min_length=1, max_length=100)
    default_token_quota: int = Field(10000, ge=0)

    @model_validator(mode="after")
    def require_endpoint_for_custom(self) -> "AdminConfigRequest":
        if self.api_provider == "custom" and not self.api_endpoint:
            raise ValueError("api_endpoint is required for a custom provider")
        return self


class AdminConfigInfo(BaseModel):
    """Provider configuration as shown to admins (API key hidden)."""

    id: int | None = None
    api_provider: str
    api_key: str
    api_endpoint: str = ""
    model_name: str
    default_token_quota: int
    is_active: bool
    created_at: str | None = None
    updated_at: str | None = None


class UserStatusRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_active: bool = Field(..., alias="isActive", strict=True)


class UserQuotaRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token_quota: int = Field(..., alias="tokenQuota", ge=0, strict=True)

import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from ..core.config import Plan

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9 _-]+$")
_DOMAIN_PATTERN = re.compile(r"^[A-Za-z0-9.-]+$")
_ORIGIN_PATTERN = re.compile(r"^https?://[^\s/]+(:\d+)?/?$")


def _check_origins(origins: list[str]) -> list[str]:
    for origin in origins:
        if not _ORIGIN_PATTERN.match(origin):
            raise ValueError(f"Invalid origin: {origin}")
    return origins


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    description: str | None = Field(None, max_length=200)
    domain: str = Field(..., min_length=1, max_length=100)
    allowed_origins: list[str] = Field(default_factory=list)
    plan: Plan = Field(default=Plan.FREE)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2 or not _NAME_PATTERN.match(value):
            raise ValueError(
                "Name may only contain letters, numbers, spaces, hyphens and underscores"
            )
        return value

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, value: str) -> str:
        value = value.strip().lower()
        if not _DOMAIN_PATTERN.match(value):
            raise ValueError("Invalid domain format")
        return value

    @field_validator("allowed_origins")
    @classmethod
    def validate_origins(cls, value: list[str]) -> list[str]:
        return _check_origins(value)


class ApplicationSummary(BaseModel):
    id: UUID
    name: str
    description: str | None = None
    domain: str
    plan: Plan
    allowed_origins: list[str]
    created_at: datetime


class RegisterResponse(BaseModel):
    application: ApplicationSummary
    api_key: str
    api_secret: str = Field(..., description="Shown once; store it securely")
    note: str = "Store your API secret securely. It will not be shown again."


class AuthenticateRequest(BaseModel):
    api_key: str = Field(..., min_length=1)
    api_secret: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int = Field(..., description="Access token lifetime in seconds")


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: str | None = None


class PlanLimits(BaseModel):
    max_file_size: int
    max_images_per_month: int
    max_storage_size: int


class UsageSummary(BaseModel):
    total_images: int
    total_storage_used: int
    current_month_uploads: int
    last_reset_date: datetime


class ApplicationSettings(BaseModel):
    enable_public_access: bool
    default_image_quality: int
    allowed_formats: list[str]


class ProfileResponse(BaseModel):
    id: UUID
    name: str
    description: str | None = None
    domain: str
    allowed_origins: list[str]
    plan: Plan
    is_active: bool
    limits: PlanLimits
    usage: UsageSummary
    settings: ApplicationSettings
    created_at: datetime


class SettingsUpdateRequest(BaseModel):
    description: str | None = Field(None, max_length=200)
    allowed_origins: list[str] | None = None
    enable_public_access: bool | None = None
    default_image_quality: int | None = Field(None, ge=50, le=100)
    allowed_formats: list[str] | None = None

    @field_validator("allowed_origins")
    @classmethod
    def validate_origins(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return value
        return _check_origins(value)

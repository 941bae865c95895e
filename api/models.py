"""
API request and response models for the boxid REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
apart from the dataclasses in auth/models.py, which own the domain shape.
Route handlers map between the two.

Request bodies only bound sizes and strip whitespace. Business rules
(required fields, password length, studio codes) live in AuthService so the
CLI and the HTTP surface enforce the same thing.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Account

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    artist = "artist"
    studio = "studio"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(default="", max_length=255)
    # Upper bound on request size only; PasswordHasher truncates to bcrypt's 72 bytes.
    password: str = Field(default="", max_length=255)
    display_name: str = Field(default="", max_length=255)
    first_name: Optional[str] = Field(default=None, max_length=255)
    last_name: Optional[str] = Field(default=None, max_length=255)
    role: RoleEnum = RoleEnum.artist
    business_name: Optional[str] = Field(default=None, max_length=255)
    studio_code: Optional[str] = Field(default=None, max_length=16)


class LoginRequest(BaseModel):
    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=255)


class ResendVerificationRequest(BaseModel):
    email: str = Field(default="", max_length=255)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(default="", max_length=255)
    new_password: str = Field(default="", max_length=255)


class UpdateProfileRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    display_name: Optional[str] = Field(default=None, max_length=255)


class DevVerifyRequest(BaseModel):
    email: str = Field(default="", max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class RegisterResponse(BaseModel):
    success: bool = True
    needs_verification: bool = True
    message: str


class UserSummary(BaseModel):
    """Minimal identity returned by login."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class LoginResponse(BaseModel):
    success: bool = True
    user: UserSummary


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class AccountResponse(BaseModel):
    """Response for GET /api/v1/auth/user."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    box_alias: str
    role: str
    email_verified: bool
    display_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    business_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    auth_type: str

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            email=account.email,
            box_alias=account.box_alias,
            role=account.role,
            email_verified=account.email_verified,
            display_name=account.display_name,
            first_name=account.first_name,
            last_name=account.last_name,
            business_name=account.business_name,
            profile_image_url=account.profile_image_url,
            auth_type="local" if account.has_local_password else "oauth",
        )


class OAuthProviderInfo(BaseModel):
    name: str
    label: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)

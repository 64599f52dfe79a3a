"""Authentication schemas - data contracts for the dashboard auth API."""

from datetime import datetime
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# =============================================================================
# Enums
# =============================================================================


class UserRole(str, Enum):
    """Dashboard user roles."""

    ADMIN = "admin"
    RESTAURANT = "restaurant"
    SERVER = "server"


class UserStatus(str, Enum):
    """Account status."""

    ACTIVE = "active"
    INACTIVE = "inactive"


# =============================================================================
# Users
# =============================================================================


class User(BaseModel):
    """An authenticated dashboard user."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    email: str
    role: UserRole
    restaurant_id: str | None = Field(default=None, alias="restaurantId")
    status: UserStatus = UserStatus.ACTIVE
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")


# =============================================================================
# Authentication
# =============================================================================


class LoginRequest(BaseModel):
    """Credentials posted to the login endpoint."""

    email: str
    password: str


class AuthResponse(BaseModel):
    """Successful login or 2FA verification."""

    user: User
    token: str


class TwoFactorChallenge(BaseModel):
    """Login response when the account requires a second factor."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    requires_two_factor: bool = Field(alias="requiresTwoFactor")
    temp_token: str = Field(alias="tempToken")
    user_id: str | None = Field(default=None, alias="userId")
    email: str | None = None


class TwoFactorVerifyRequest(BaseModel):
    """Second-factor code posted with the temporary login token."""

    model_config = ConfigDict(populate_by_name=True)

    temp_token: str = Field(alias="tempToken")
    token: str


class RefreshResponse(BaseModel):
    """Body returned by the token refresh endpoint."""

    token: str


class ResetPasswordRequest(BaseModel):
    """Password reset confirmation."""

    model_config = ConfigDict(populate_by_name=True)

    token: str
    new_password: str = Field(alias="newPassword")


class MessageResponse(BaseModel):
    """Generic acknowledgement with a human-readable message."""

    message: str


# =============================================================================
# Errors
# =============================================================================


class ErrorDetail(BaseModel):
    """Error details inside the API error envelope."""

    model_config = ConfigDict(extra="ignore")

    message: str | None = None
    code: str | None = None


class ErrorEnvelope(BaseModel):
    """Non-2xx response body: ``{"error": {"message": ...}}``."""

    model_config = ConfigDict(extra="ignore")

    error: ErrorDetail | None = None

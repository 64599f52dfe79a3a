"""Tablemaster Schemas - Pydantic models for data contracts."""

from tablemaster_schemas.auth import (
    AuthResponse,
    ErrorDetail,
    ErrorEnvelope,
    LoginRequest,
    MessageResponse,
    RefreshResponse,
    ResetPasswordRequest,
    TwoFactorChallenge,
    TwoFactorVerifyRequest,
    User,
    UserRole,
    UserStatus,
)

__all__ = [
    # Users
    "User",
    "UserRole",
    "UserStatus",
    # Authentication
    "AuthResponse",
    "LoginRequest",
    "MessageResponse",
    "RefreshResponse",
    "ResetPasswordRequest",
    "TwoFactorChallenge",
    "TwoFactorVerifyRequest",
    # Errors
    "ErrorDetail",
    "ErrorEnvelope",
]

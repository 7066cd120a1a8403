"""Pydantic schemas for request and response validation."""

# User schemas
from .user import (
    UserRecord,
    UserPublic,
    ProfileValue,
    ProviderProfile,
    SocialIdentity,
)

# Auth schemas
from .auth import (
    AuthResponse,
    LogoutResponse,
    DeletionResponse,
    DeletionStatusResponse,
    ErrorResponse,
)

__all__ = [
    # User schemas
    "UserRecord",
    "UserPublic",
    "ProfileValue",
    "ProviderProfile",
    "SocialIdentity",
    # Auth schemas
    "AuthResponse",
    "LogoutResponse",
    "DeletionResponse",
    "DeletionStatusResponse",
    "ErrorResponse",
]

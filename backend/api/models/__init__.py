"""API models package."""

from .auth import (
    AuthResponse,
    AuthStatusResponse,
    LoginRequest,
    RegisterRequest,
    RegisterResponse,
    ResendVerificationRequest,
    SubscriptionResponse,
    SuccessResponse,
    UserStatsResponse,
    UpdateProfileRequest,
    VerificationResponse,
    VerificationStatusResponse,
    VerifyEmailRequest,
)
from .errors import ErrorResponse, ValidationErrorResponse

__all__ = [
    "AuthResponse",
    "AuthStatusResponse",
    "LoginRequest",
    "RegisterRequest",
    "RegisterResponse",
    "ResendVerificationRequest",
    "SubscriptionResponse",
    "SuccessResponse",
    "UserStatsResponse",
    "UpdateProfileRequest",
    "VerificationResponse",
    "VerificationStatusResponse",
    "VerifyEmailRequest",
    "ErrorResponse",
    "ValidationErrorResponse",
]

"""
Request and response models for the auth and user endpoints.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from shared.models import AuthenticatedUser


class RegisterRequest(BaseModel):
    """Email/password registration."""

    email: str = Field(..., description="Email address")
    password: str = Field(..., description="Plain-text password")
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)


class LoginRequest(BaseModel):
    email: str
    password: str


class VerifyEmailRequest(BaseModel):
    email: str
    code: str


class ResendVerificationRequest(BaseModel):
    email: str


class AuthResponse(BaseModel):
    """Token plus the public user projection."""

    token: str
    user: AuthenticatedUser
    expires_at: datetime


class RegisterResponse(AuthResponse):
    requires_email_verification: bool = True


class VerificationResponse(BaseModel):
    success: bool
    message: str


class SuccessResponse(BaseModel):
    success: bool


class VerificationStatusResponse(BaseModel):
    email_verified: bool
    has_unverified_code: bool


class AuthStatusResponse(BaseModel):
    """Result of the optional-auth probe."""

    authenticated: bool
    user: Optional[AuthenticatedUser] = None


class UpdateProfileRequest(BaseModel):
    """Only fields that are present are changed."""

    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    profile_image_url: Optional[str] = Field(None, max_length=2048)


class SubscriptionResponse(BaseModel):
    tier: str
    monthly_story_limit: int
    usage_count: int


class UserStatsResponse(BaseModel):
    tier: str
    usage_count: int
    monthly_story_limit: int
    has_reached_limit: bool
    member_since: datetime

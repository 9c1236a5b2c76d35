"""
Shared data models used across modules.

These models are shared infrastructure, not business logic.
Module-specific models should stay in their respective module directories.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field


class AuthenticatedUser(BaseModel):
    """
    Represents an authenticated user in the system.

    This is the public projection of a stored subject: it never carries the
    password hash or OAuth tokens. The access gate produces one per
    authenticated request and route handlers receive it via dependency
    injection. Story routes read `id` as the owner foreign key.
    """

    id: str = Field(..., description="Subject ID (UUID)")
    email: EmailStr = Field(..., description="Lowercase-normalized email address")
    first_name: Optional[str] = Field(None, description="Given name")
    last_name: Optional[str] = Field(None, description="Family name")
    profile_image_url: Optional[str] = Field(None, description="Profile image reference")
    email_verified: bool = Field(default=False, description="Whether email is verified")

    role: str = Field(default="user", description="user or admin")
    tier: str = Field(default="free", description="Subscription tier")
    usage_count: int = Field(default=0, description="Stories generated so far")

    created_at: Optional[datetime] = Field(None, description="Account creation time")

    model_config = {
        "frozen": True,  # Make immutable for safety
        "extra": "ignore",
    }

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

"""
Authentication module data models.

These models define the stored records owned by the credential store
(subjects, OAuth account links, sessions, email verifications) and the
result shapes the auth module exposes to other modules and the API layer.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field

from shared.models import AuthenticatedUser


class SubscriptionTier(str, Enum):
    """Subscription tier of a subject."""

    FREE = "free"
    PREMIUM = "premium"
    PRO = "pro"


# Stories a subject may generate per month, by tier.
TIER_MONTHLY_STORY_LIMITS: dict[SubscriptionTier, int] = {
    SubscriptionTier.FREE: 5,
    SubscriptionTier.PREMIUM: 50,
    SubscriptionTier.PRO: 50,
}


class SubjectRole(str, Enum):
    """Role carried by a subject."""

    USER = "user"
    ADMIN = "admin"


class OAuthProvider(str, Enum):
    """External identity providers an account link can point at."""

    GOOGLE = "google"
    APPLE = "apple"
    EMAIL = "email"


class Subject(BaseModel):
    """
    A registered user as stored by the credential store.

    `password_hash` is None for subjects that only ever signed in through
    an OAuth provider.
    """

    id: str = Field(..., description="Subject ID (UUID)")
    email: str = Field(..., description="Lowercase-normalized, globally unique")
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    password_hash: Optional[str] = Field(None, repr=False)
    email_verified: bool = False
    role: SubjectRole = SubjectRole.USER
    tier: SubscriptionTier = SubscriptionTier.FREE
    usage_count: int = Field(default=0, ge=0)
    created_at: datetime
    updated_at: datetime

    def to_public(self) -> AuthenticatedUser:
        """Project to the shape handed to route handlers and API clients."""
        return AuthenticatedUser(
            id=self.id,
            email=self.email,
            first_name=self.first_name,
            last_name=self.last_name,
            profile_image_url=self.profile_image_url,
            email_verified=self.email_verified,
            role=self.role.value,
            tier=self.tier.value,
            usage_count=self.usage_count,
            created_at=self.created_at,
        )


class OAuthAccountLink(BaseModel):
    """One external-provider identity bound to exactly one subject.

    The tokens are stored blind; nothing in this module interprets them.
    """

    id: str
    subject_id: str
    provider: OAuthProvider
    external_account_id: str
    access_token: Optional[str] = Field(None, repr=False)
    refresh_token: Optional[str] = Field(None, repr=False)
    id_token: Optional[str] = Field(None, repr=False)
    created_at: datetime
    updated_at: datetime


class Session(BaseModel):
    """Server-side record of one issued bearer credential."""

    id: str
    subject_id: str
    token: str = Field(..., description="Raw session identifier, not the signed token")
    expires_at: datetime
    created_at: datetime

    def is_live(self, now: datetime) -> bool:
        return self.expires_at > now


class EmailVerification(BaseModel):
    """One outstanding (or completed) email verification attempt."""

    id: str
    subject_id: str
    email: str
    code: str = Field(..., min_length=6, max_length=6, repr=False)
    expires_at: datetime
    verified: bool = False
    created_at: datetime


class TokenClaims(BaseModel):
    """
    Decoded bearer-token payload.

    Only `sub` and `sid` are trusted by callers; liveness is always
    re-checked against the session store.
    """

    sub: str = Field(..., description="Subject ID")
    sid: str = Field(..., description="Session ID")
    iat: int = Field(..., description="Issued-at timestamp")
    exp: int = Field(..., description="Expiration timestamp")


class SessionToken(BaseModel):
    """A freshly minted bearer token and the instant its session ends."""

    token: str
    session_id: str
    expires_at: datetime


class OAuthProfile(BaseModel):
    """Identity data asserted by an OAuth provider callback."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    access_token: Optional[str] = Field(None, repr=False)
    refresh_token: Optional[str] = Field(None, repr=False)
    id_token: Optional[str] = Field(None, repr=False)

    @classmethod
    def from_provider_payload(cls, payload: dict[str, Any]) -> "OAuthProfile":
        """Normalise the loosely shaped profile dicts providers hand back."""
        name = payload.get("name") if isinstance(payload.get("name"), dict) else {}
        photos = payload.get("photos") or []
        return cls(
            first_name=payload.get("given_name") or name.get("givenName") or name.get("firstName"),
            last_name=payload.get("family_name") or name.get("familyName") or name.get("lastName"),
            profile_image_url=payload.get("picture") or (photos[0].get("value") if photos else None),
            access_token=payload.get("access_token") or payload.get("accessToken"),
            refresh_token=payload.get("refresh_token") or payload.get("refreshToken"),
            id_token=payload.get("id_token") or payload.get("idToken"),
        )


class AuthResult(BaseModel):
    """Result of a successful login or OAuth callback."""

    token: str
    user: AuthenticatedUser
    expires_at: datetime


class RegisterResult(AuthResult):
    """Result of a successful registration."""

    requires_email_verification: bool = True


class VerificationResult(BaseModel):
    """Outcome of an email verification attempt."""

    success: bool
    message: str


class VerificationStatus(BaseModel):
    """Email verification state of a subject."""

    email_verified: bool
    has_unverified_code: bool


class UsageStats(BaseModel):
    """Story allowance of a subject for the current tier."""

    tier: SubscriptionTier
    usage_count: int
    monthly_story_limit: int
    has_reached_limit: bool
    member_since: datetime

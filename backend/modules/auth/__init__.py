"""
Authentication module.

Handles password and OAuth sign-in, session-bound bearer tokens, email
verification and the access control gate.

Public API:
- IAuthService / AuthService: registration, login, OAuth linking, verification
- SessionManager: session lifecycle
- AccessGate, authorize: request authentication and ownership checks
- ICredentialStore: persistence contract (InMemoryCredentialStore, SupabaseCredentialStore)
- Auth exceptions
"""

from .access import AccessGate, OwnedResource, authorize, require_access
from .exceptions import (
    AccessDeniedError,
    DuplicateOAuthLinkError,
    DuplicateSessionTokenError,
    EmailAlreadyExistsError,
    InvalidCredentialsError,
    InvalidTokenError,
    MissingCredentialsError,
    MissingTokenError,
    ResendRateLimitedError,
    SessionInvalidError,
    SubjectNotFoundError,
    TokenExpiredError,
    WeakPasswordError,
)
from .hashing import PasswordHasher
from .interfaces import IAuthService, ICredentialStore, INotificationSink, ISubjectResolver
from .models import (
    AuthResult,
    OAuthProfile,
    OAuthProvider,
    RegisterResult,
    SubjectRole,
    SubscriptionTier,
    TIER_MONTHLY_STORY_LIMITS,
    UsageStats,
    VerificationResult,
    VerificationStatus,
)
from .notifications import LoggingNotificationSink, ResendNotificationSink
from .rate_limit import ResendRateLimiter
from .service import AuthService
from .sessions import SessionManager
from .store import InMemoryCredentialStore
from .tokens import TokenIssuer

__all__ = [
    # Interfaces
    "IAuthService",
    "ICredentialStore",
    "INotificationSink",
    "ISubjectResolver",
    # Services
    "AuthService",
    "SessionManager",
    "TokenIssuer",
    "PasswordHasher",
    "AccessGate",
    "OwnedResource",
    "authorize",
    "require_access",
    "InMemoryCredentialStore",
    "LoggingNotificationSink",
    "ResendNotificationSink",
    "ResendRateLimiter",
    # Models
    "AuthResult",
    "RegisterResult",
    "OAuthProfile",
    "OAuthProvider",
    "SubjectRole",
    "SubscriptionTier",
    "TIER_MONTHLY_STORY_LIMITS",
    "UsageStats",
    "VerificationResult",
    "VerificationStatus",
    # Exceptions
    "AccessDeniedError",
    "DuplicateOAuthLinkError",
    "DuplicateSessionTokenError",
    "EmailAlreadyExistsError",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "MissingCredentialsError",
    "MissingTokenError",
    "ResendRateLimitedError",
    "SessionInvalidError",
    "SubjectNotFoundError",
    "TokenExpiredError",
    "WeakPasswordError",
]

"""
Authentication module exceptions.

These exceptions are raised by the auth module and can be caught
by API error handlers to return appropriate HTTP responses.
"""

from shared.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)


class EmailAlreadyExistsError(ConflictError):
    """Raised when registering an email that already belongs to a subject."""

    def __init__(self, message: str = "User with this email already exists"):
        super().__init__(message, code="EMAIL_ALREADY_EXISTS")


class DuplicateOAuthLinkError(ConflictError):
    """Raised by stores when (provider, external account ID) is already linked."""

    def __init__(self, provider: str, external_account_id: str):
        super().__init__(
            "OAuth account is already linked",
            code="OAUTH_LINK_EXISTS",
            details={"provider": provider},
        )
        self.provider = provider
        self.external_account_id = external_account_id


class DuplicateSessionTokenError(ConflictError):
    """Raised by stores when a session token value collides."""

    def __init__(self):
        super().__init__("Session token already exists", code="SESSION_TOKEN_EXISTS")


class WeakPasswordError(ValidationError):
    """Raised when a password does not satisfy the password policy."""

    def __init__(self, message: str):
        super().__init__(message, code="WEAK_PASSWORD")


class MissingCredentialsError(ValidationError):
    """Raised when email or password is missing from a request."""

    def __init__(self, message: str = "Email and password are required"):
        super().__init__(message, code="MISSING_CREDENTIALS")


class InvalidCredentialsError(AuthenticationError):
    """
    Raised when email/password login fails.

    The same message is used whether the email is unknown, the subject has
    no password, or the password is wrong.
    """

    def __init__(self):
        super().__init__("Invalid email or password", code="INVALID_CREDENTIALS")


class InvalidTokenError(AuthenticationError):
    """Raised when a bearer token is malformed or its signature does not verify."""

    def __init__(self, reason: str = "malformed"):
        super().__init__("Invalid authentication token", code="INVALID_TOKEN")
        # Internal only; never serialised into responses.
        self.reason = reason


class TokenExpiredError(InvalidTokenError):
    """Raised when a bearer token's signature is valid but its exp has passed."""

    def __init__(self):
        super().__init__(reason="expired")


class MissingTokenError(AuthenticationError):
    """Raised when no authentication token is provided."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, code="MISSING_TOKEN")


class SessionInvalidError(AuthenticationError):
    """
    Raised when a request cannot be tied to a live session.

    Covers bad tokens, expired sessions, revoked sessions and sessions whose
    subject no longer exists. The message never says which.
    """

    def __init__(self, reason: str = "unknown"):
        super().__init__("Invalid or expired authentication token", code="UNAUTHENTICATED")
        self.reason = reason


class SubjectNotFoundError(NotFoundError):
    """Raised when a subject ID does not resolve to a stored subject."""

    def __init__(self, subject_id: str):
        super().__init__(
            "User not found",
            code="USER_NOT_FOUND",
            details={"user_id": subject_id},
        )


class AccessDeniedError(AuthorizationError):
    """Raised when an authenticated subject may not access a resource."""

    def __init__(self, resource_type: str = "resource"):
        super().__init__(
            f"Not allowed to access this {resource_type}",
            code="FORBIDDEN",
            details={"resource_type": resource_type},
        )


class ResendRateLimitedError(RateLimitError):
    """Raised when verification emails are requested too often for one address."""

    def __init__(self, retry_after: int):
        super().__init__(
            "Too many verification emails requested. Try again later.",
            retry_after=retry_after,
            code="RESEND_RATE_LIMITED",
        )

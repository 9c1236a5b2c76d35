"""
Authentication module interfaces.

Other modules should depend on these protocols, not the concrete
implementations. This enables testing with in-memory fakes and swapping the
persistence or notification backend without touching the services.
"""

from datetime import datetime
from typing import Any, Protocol, Optional, runtime_checkable

from shared.models import AuthenticatedUser

from .models import (
    AuthResult,
    EmailVerification,
    OAuthAccountLink,
    OAuthProfile,
    OAuthProvider,
    RegisterResult,
    Session,
    Subject,
    VerificationResult,
    VerificationStatus,
)


@runtime_checkable
class ICredentialStore(Protocol):
    """
    Persistence contract for subjects, OAuth links, sessions and email
    verifications.

    Implementations hold no business rules, but they MUST enforce the
    uniqueness constraints themselves (not by check-then-insert in callers):
    subject email, (provider, external account ID), and session token.
    `replace_email_verification` and `confirm_email_verification` must each
    be atomic.
    """

    # Subjects

    def create_subject(self, subject: Subject) -> Subject:
        """
        Insert a new subject.

        Raises:
            EmailAlreadyExistsError: If the email is already taken
        """
        ...

    def get_subject(self, subject_id: str) -> Optional[Subject]:
        ...

    def get_subject_by_email(self, email: str) -> Optional[Subject]:
        """Look up a subject by its normalized email."""
        ...

    def update_subject(self, subject_id: str, changes: dict[str, Any]) -> Optional[Subject]:
        """Apply column changes and bump updated_at. Returns None if absent."""
        ...

    def increment_usage(self, subject_id: str) -> Optional[Subject]:
        """Atomically add one to the subject's usage counter."""
        ...

    # OAuth account links

    def get_oauth_link(
        self, provider: OAuthProvider, external_account_id: str
    ) -> Optional[OAuthAccountLink]:
        ...

    def create_oauth_link(self, link: OAuthAccountLink) -> OAuthAccountLink:
        """
        Insert a link for an existing subject.

        Raises:
            DuplicateOAuthLinkError: If (provider, external ID) is already linked
        """
        ...

    def create_subject_with_oauth_link(
        self, subject: Subject, link: OAuthAccountLink
    ) -> Subject:
        """
        Insert a password-less subject together with its first link, atomically.

        Raises:
            EmailAlreadyExistsError: If the email is already taken
            DuplicateOAuthLinkError: If the external identity is already linked
        """
        ...

    def update_oauth_tokens(
        self,
        link_id: str,
        access_token: Optional[str],
        refresh_token: Optional[str],
        id_token: Optional[str],
    ) -> Optional[OAuthAccountLink]:
        ...

    # Sessions

    def create_session(self, session: Session) -> Session:
        """
        Raises:
            DuplicateSessionTokenError: If the token value collides
        """
        ...

    def get_session(self, session_id: str) -> Optional[Session]:
        ...

    def delete_session(self, session_id: str) -> None:
        """Delete a session. Deleting a missing session is not an error."""
        ...

    def delete_expired_sessions(self, now: datetime) -> int:
        """Delete every session with expires_at <= now and return the count."""
        ...

    # Email verifications

    def replace_email_verification(self, record: EmailVerification) -> EmailVerification:
        """Delete the subject's unverified records and insert `record`, atomically."""
        ...

    def find_unverified_verification(
        self, email: str, code: str
    ) -> Optional[EmailVerification]:
        ...

    def confirm_email_verification(self, verification_id: str, subject_id: str) -> bool:
        """
        Mark the record verified and set the subject's email_verified flag,
        atomically.

        Returns:
            False if the record was not (or no longer) an unverified record
        """
        ...

    def has_unverified_verification(self, subject_id: str) -> bool:
        ...


@runtime_checkable
class INotificationSink(Protocol):
    """
    Outbound email boundary.

    Implementations return False (or raise) on delivery failure; the auth
    service treats either as a non-fatal, logged failure.
    """

    async def send_verification_email(
        self,
        email: str,
        code: str,
        verification_url: str,
        first_name: Optional[str] = None,
    ) -> bool:
        ...

    async def send_welcome_email(self, email: str, first_name: Optional[str] = None) -> bool:
        ...


@runtime_checkable
class ISubjectResolver(Protocol):
    """
    Anything that can turn a raw bearer token into an authenticated subject.

    Production wiring uses the session manager. Test harnesses may wire a
    fixture identity provider instead.
    """

    async def resolve_session(self, token: str) -> AuthenticatedUser:
        """
        Raises:
            AuthenticationError: If the token does not identify a live session
        """
        ...


@runtime_checkable
class IAuthService(Protocol):
    """
    Interface for authentication operations.

    This protocol defines the contract that the auth module exposes
    to other modules and to the API layer.
    """

    async def register(
        self,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> RegisterResult:
        """
        Create a password subject, send a verification code and log it in.

        Raises:
            MissingCredentialsError: If email or password is empty
            WeakPasswordError: If the password fails the policy
            EmailAlreadyExistsError: If the email is already registered
        """
        ...

    async def login(self, email: str, password: str) -> AuthResult:
        """
        Raises:
            InvalidCredentialsError: For any email/password mismatch
        """
        ...

    async def logout(self, token: str) -> None:
        ...

    async def handle_oauth_callback(
        self,
        provider: OAuthProvider,
        external_account_id: str,
        email: str,
        profile: OAuthProfile,
    ) -> AuthResult:
        ...

    async def verify_email(self, email: str, code: str) -> VerificationResult:
        ...

    async def resend_verification_email(self, email: str) -> bool:
        ...

    async def get_verification_status(self, subject_id: str) -> VerificationStatus:
        """
        Raises:
            SubjectNotFoundError: If the subject does not exist
        """
        ...

    async def has_reached_usage_limit(self, subject_id: str) -> bool:
        """Whether the usage counter has reached the tier's monthly allowance."""
        ...

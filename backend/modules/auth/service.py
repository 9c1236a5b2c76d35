"""
Authentication service implementation.

Registration, password login, OAuth account linking, the email verification
state machine and logout. Composes the credential store, password hasher,
session manager and notification sink; owns no state of its own beyond the
set of in-flight notification tasks.
"""

import asyncio
import logging
import secrets
import uuid
from datetime import timedelta
from urllib.parse import urlencode
from typing import Any, Awaitable, Optional

from email_validator import EmailNotValidError, validate_email

from shared.exceptions import ValidationError
from shared.logging import redact_email
from shared.models import AuthenticatedUser

from .exceptions import (
    DuplicateOAuthLinkError,
    EmailAlreadyExistsError,
    InvalidCredentialsError,
    MissingCredentialsError,
    SubjectNotFoundError,
    WeakPasswordError,
)
from .hashing import MAX_PASSWORD_BYTES, PasswordHasher
from .interfaces import IAuthService, ICredentialStore, INotificationSink
from .models import (
    AuthResult,
    EmailVerification,
    OAuthAccountLink,
    OAuthProfile,
    OAuthProvider,
    RegisterResult,
    Subject,
    TIER_MONTHLY_STORY_LIMITS,
    UsageStats,
    VerificationResult,
    VerificationStatus,
)
from .sessions import Clock, SessionManager, utc_now

logger = logging.getLogger(__name__)

VERIFICATION_CODE_TTL = timedelta(minutes=15)
MIN_PASSWORD_LENGTH = 6

INVALID_CODE_MESSAGE = "Invalid verification code or email"
EXPIRED_CODE_MESSAGE = "Verification code has expired"
VERIFIED_MESSAGE = "Email verified successfully"


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def check_password_policy(password: str) -> None:
    """
    Raises:
        WeakPasswordError: If the password is too short, blank or too long for bcrypt
    """
    if len(password) < MIN_PASSWORD_LENGTH or not password.strip():
        raise WeakPasswordError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise WeakPasswordError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")


def _check_email_format(email: str) -> None:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError("Invalid email address", code="INVALID_EMAIL") from e


def generate_verification_code() -> str:
    """Six random digits, never starting with zero."""
    return str(100000 + secrets.randbelow(900000))


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class AuthService(IAuthService):
    """
    Implementation of the authentication service.

    Store failures propagate to the caller. Notification failures never do:
    they are logged and, where the operation reports delivery, turned into
    a False result.
    """

    def __init__(
        self,
        store: ICredentialStore,
        sessions: SessionManager,
        hasher: PasswordHasher,
        notifier: INotificationSink,
        frontend_url: str = "http://localhost:3000",
        verification_ttl: timedelta = VERIFICATION_CODE_TTL,
        clock: Clock = utc_now,
        notify_in_background: bool = True,
    ):
        self._store = store
        self._sessions = sessions
        self._hasher = hasher
        self._notifier = notifier
        self._frontend_url = frontend_url.rstrip("/")
        self._verification_ttl = verification_ttl
        self._clock = clock
        self._notify_in_background = notify_in_background
        self._pending: set[asyncio.Task] = set()
        self._dummy_hash: Optional[str] = None

    # -------------------------------------------------------------------------
    # Password registration and login
    # -------------------------------------------------------------------------

    async def register(
        self,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> RegisterResult:
        """
        Create a password subject and log it in straight away.

        The subject starts unverified; a verification code is persisted
        before returning and its email is sent in the background. Unverified
        subjects hold fully functional sessions.
        """
        email = normalize_email(email)
        if not email or not password:
            raise MissingCredentialsError()
        _check_email_format(email)
        check_password_policy(password)

        # Cheap early exit; the store's unique index is what actually decides races.
        if self._store.get_subject_by_email(email) is not None:
            raise EmailAlreadyExistsError()

        password_hash = await asyncio.to_thread(self._hasher.hash, password)
        now = self._clock()
        subject = self._store.create_subject(
            Subject(
                id=str(uuid.uuid4()),
                email=email,
                first_name=_clean(first_name),
                last_name=_clean(last_name),
                password_hash=password_hash,
                email_verified=False,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("Subject registered", extra={"subject_id": subject.id})

        record = self._issue_verification_code(subject.id, subject.email)
        await self._dispatch(
            self._deliver_verification(subject.email, record.code, subject.first_name)
        )

        session = self._sessions.create_session(subject.id)
        return RegisterResult(
            token=session.token,
            user=subject.to_public(),
            expires_at=session.expires_at,
            requires_email_verification=True,
        )

    async def login(self, email: str, password: str) -> AuthResult:
        """
        Authenticate with email and password.

        Unknown email, password-less (OAuth-only) subject and wrong password
        all raise the same InvalidCredentialsError.
        """
        email = normalize_email(email)
        if not email or not password:
            raise MissingCredentialsError()

        subject = self._store.get_subject_by_email(email)
        if subject is None or not subject.password_hash:
            # Burn comparable time so response latency doesn't reveal which case this was.
            await asyncio.to_thread(self._verify_against_dummy, password)
            raise InvalidCredentialsError()

        if not await asyncio.to_thread(self._hasher.verify, password, subject.password_hash):
            logger.info("Password mismatch", extra={"subject_id": subject.id})
            raise InvalidCredentialsError()

        session = self._sessions.create_session(subject.id)
        return AuthResult(token=session.token, user=subject.to_public(), expires_at=session.expires_at)

    async def logout(self, token: str) -> None:
        """Revoke the session behind a bearer token. Always succeeds."""
        session_id = self._sessions.session_id_for(token)
        if session_id is not None:
            self._sessions.revoke_session(session_id)

    def _verify_against_dummy(self, password: str) -> bool:
        # Runs in a worker thread; the first call also pays for hashing the dummy.
        if self._dummy_hash is None:
            self._dummy_hash = self._hasher.hash(secrets.token_urlsafe(16))
        return self._hasher.verify(password, self._dummy_hash)

    # -------------------------------------------------------------------------
    # OAuth
    # -------------------------------------------------------------------------

    async def find_or_create_oauth_subject(
        self,
        provider: OAuthProvider,
        external_account_id: str,
        email: str,
        profile: OAuthProfile,
    ) -> Subject:
        """
        Resolve an external identity to a subject, linking or creating as needed.

        1. Known (provider, external ID): refresh stored tokens, return its subject.
        2. Known email: link the identity to that subject.
        3. Otherwise: create a verified, password-less subject with the link.

        A concurrent callback for the same identity can win the insert; the
        loser re-reads and returns the winner's subject.
        """
        if not external_account_id:
            raise ValidationError("OAuth account ID is required", code="INVALID_OAUTH_PROFILE")

        for _ in range(2):
            link = self._store.get_oauth_link(provider, external_account_id)
            if link is not None:
                self._store.update_oauth_tokens(
                    link.id, profile.access_token, profile.refresh_token, profile.id_token
                )
                subject = self._store.get_subject(link.subject_id)
                if subject is None:
                    raise SubjectNotFoundError(link.subject_id)
                return subject

            normalized = normalize_email(email)
            if not normalized:
                raise ValidationError(
                    "OAuth provider did not supply an email address",
                    code="INVALID_OAUTH_PROFILE",
                )
            _check_email_format(normalized)

            try:
                return self._link_or_create(provider, external_account_id, normalized, profile)
            except (DuplicateOAuthLinkError, EmailAlreadyExistsError):
                logger.info("OAuth link race lost, re-reading", extra={"provider": provider.value})

        # Second pass found neither a link nor a usable subject.
        raise DuplicateOAuthLinkError(provider.value, external_account_id)

    def _link_or_create(
        self,
        provider: OAuthProvider,
        external_account_id: str,
        email: str,
        profile: OAuthProfile,
    ) -> Subject:
        now = self._clock()
        existing = self._store.get_subject_by_email(email)
        subject_id = existing.id if existing is not None else str(uuid.uuid4())
        link = OAuthAccountLink(
            id=str(uuid.uuid4()),
            subject_id=subject_id,
            provider=provider,
            external_account_id=external_account_id,
            access_token=profile.access_token,
            refresh_token=profile.refresh_token,
            id_token=profile.id_token,
            created_at=now,
            updated_at=now,
        )

        if existing is not None:
            self._store.create_oauth_link(link)
            logger.info(
                "Linked OAuth identity to existing subject",
                extra={"subject_id": existing.id, "provider": provider.value},
            )
            return existing

        subject = self._store.create_subject_with_oauth_link(
            Subject(
                id=subject_id,
                email=email,
                first_name=_clean(profile.first_name),
                last_name=_clean(profile.last_name),
                profile_image_url=profile.profile_image_url,
                password_hash=None,
                email_verified=True,
                created_at=now,
                updated_at=now,
            ),
            link,
        )
        logger.info(
            "Subject created from OAuth identity",
            extra={"subject_id": subject.id, "provider": provider.value},
        )
        return subject

    async def handle_oauth_callback(
        self,
        provider: OAuthProvider,
        external_account_id: str,
        email: str,
        profile: OAuthProfile,
    ) -> AuthResult:
        """Resolve the identity and issue a session for it."""
        subject = await self.find_or_create_oauth_subject(provider, external_account_id, email, profile)
        session = self._sessions.create_session(subject.id)
        return AuthResult(token=session.token, user=subject.to_public(), expires_at=session.expires_at)

    # -------------------------------------------------------------------------
    # Email verification
    # -------------------------------------------------------------------------

    def _issue_verification_code(self, subject_id: str, email: str) -> EmailVerification:
        now = self._clock()
        return self._store.replace_email_verification(
            EmailVerification(
                id=str(uuid.uuid4()),
                subject_id=subject_id,
                email=normalize_email(email),
                code=generate_verification_code(),
                expires_at=now + self._verification_ttl,
                verified=False,
                created_at=now,
            )
        )

    def verification_url(self, email: str, code: str) -> str:
        query = urlencode({"code": code, "email": email})
        return f"{self._frontend_url}/auth/verify-email?{query}"

    async def send_verification_email(
        self, subject_id: str, email: str, first_name: Optional[str] = None
    ) -> bool:
        """
        Replace any outstanding code for the subject and email the new one.

        Returns:
            False if delivery failed. The new code is stored either way.
        """
        record = self._issue_verification_code(subject_id, email)
        return await self._deliver_verification(record.email, record.code, first_name)

    async def verify_email(self, email: str, code: str) -> VerificationResult:
        """
        Check a code against the subject's outstanding verification.

        Wrong email and wrong code produce the same failure message. A code
        is still accepted at the exact instant it expires.
        """
        email = normalize_email(email)
        code = (code or "").strip()
        if not email or not code:
            return VerificationResult(success=False, message=INVALID_CODE_MESSAGE)

        record = self._store.find_unverified_verification(email, code)
        if record is None:
            return VerificationResult(success=False, message=INVALID_CODE_MESSAGE)

        if record.expires_at < self._clock():
            return VerificationResult(success=False, message=EXPIRED_CODE_MESSAGE)

        if not self._store.confirm_email_verification(record.id, record.subject_id):
            # Superseded or already used by a concurrent request.
            return VerificationResult(success=False, message=INVALID_CODE_MESSAGE)

        logger.info("Email verified", extra={"subject_id": record.subject_id})
        subject = self._store.get_subject(record.subject_id)
        if subject is not None:
            await self._dispatch(self._deliver_welcome(subject.email, subject.first_name))

        return VerificationResult(success=True, message=VERIFIED_MESSAGE)

    async def resend_verification_email(self, email: str) -> bool:
        """
        Send a fresh code to an unverified subject.

        Already-verified subjects get a no-op success. Unknown emails return
        False.
        """
        subject = self._store.get_subject_by_email(normalize_email(email))
        if subject is None:
            logger.info("Resend requested for unknown email %s", redact_email(normalize_email(email)))
            return False
        if subject.email_verified:
            return True
        return await self.send_verification_email(subject.id, subject.email, subject.first_name)

    async def get_verification_status(self, subject_id: str) -> VerificationStatus:
        subject = self._store.get_subject(subject_id)
        if subject is None:
            raise SubjectNotFoundError(subject_id)
        return VerificationStatus(
            email_verified=subject.email_verified,
            has_unverified_code=self._store.has_unverified_verification(subject_id),
        )

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    async def get_subject(self, subject_id: str) -> AuthenticatedUser:
        subject = self._store.get_subject(subject_id)
        if subject is None:
            raise SubjectNotFoundError(subject_id)
        return subject.to_public()

    async def update_profile(
        self,
        subject_id: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        profile_image_url: Optional[str] = None,
    ) -> AuthenticatedUser:
        """Change only the provided fields."""
        changes: dict[str, Any] = {}
        if first_name is not None:
            changes["first_name"] = _clean(first_name)
        if last_name is not None:
            changes["last_name"] = _clean(last_name)
        if profile_image_url is not None:
            changes["profile_image_url"] = _clean(profile_image_url)

        if not changes:
            return await self.get_subject(subject_id)

        subject = self._store.update_subject(subject_id, changes)
        if subject is None:
            raise SubjectNotFoundError(subject_id)
        return subject.to_public()

    async def increment_usage(self, subject_id: str) -> AuthenticatedUser:
        subject = self._store.increment_usage(subject_id)
        if subject is None:
            raise SubjectNotFoundError(subject_id)
        return subject.to_public()

    async def get_usage_stats(self, subject_id: str) -> UsageStats:
        """Tier, usage counter and the tier's monthly story allowance."""
        subject = self._store.get_subject(subject_id)
        if subject is None:
            raise SubjectNotFoundError(subject_id)
        limit = TIER_MONTHLY_STORY_LIMITS[subject.tier]
        return UsageStats(
            tier=subject.tier,
            usage_count=subject.usage_count,
            monthly_story_limit=limit,
            has_reached_limit=subject.usage_count >= limit,
            member_since=subject.created_at,
        )

    async def has_reached_usage_limit(self, subject_id: str) -> bool:
        return (await self.get_usage_stats(subject_id)).has_reached_limit

    # -------------------------------------------------------------------------
    # Notification delivery
    # -------------------------------------------------------------------------

    async def _deliver_verification(
        self, email: str, code: str, first_name: Optional[str]
    ) -> bool:
        try:
            sent = await self._notifier.send_verification_email(
                email, code, self.verification_url(email, code), first_name
            )
        except Exception:
            logger.exception("Verification email to %s failed", redact_email(email))
            return False
        if not sent:
            logger.warning("Verification email to %s was not delivered", redact_email(email))
        return bool(sent)

    async def _deliver_welcome(self, email: str, first_name: Optional[str]) -> bool:
        try:
            sent = await self._notifier.send_welcome_email(email, first_name)
        except Exception:
            logger.exception("Welcome email to %s failed", redact_email(email))
            return False
        return bool(sent)

    async def _dispatch(self, delivery: Awaitable[bool]) -> None:
        """
        Run a delivery without making the caller wait for it.

        With notify_in_background=False the delivery is awaited inline, for
        callers whose event loop does not outlive the request (test clients,
        one-shot scripts).
        """
        if not self._notify_in_background:
            await delivery
            return
        task = asyncio.ensure_future(delivery)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain_notifications(self) -> None:
        """Wait for in-flight background deliveries (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

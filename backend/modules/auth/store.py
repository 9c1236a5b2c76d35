"""
In-memory credential store.

For tests and local development. Uniqueness and the two atomic compound
operations are enforced under a single lock, mirroring what the Postgres
schema enforces with unique indexes and transactional functions.
Use SupabaseCredentialStore for production.
"""

import threading
from datetime import datetime, timezone
from typing import Any, Optional

from .exceptions import (
    DuplicateOAuthLinkError,
    DuplicateSessionTokenError,
    EmailAlreadyExistsError,
)
from .models import (
    EmailVerification,
    OAuthAccountLink,
    OAuthProvider,
    Session,
    Subject,
)

# Subject columns update_subject may change.
UPDATABLE_SUBJECT_FIELDS = frozenset(
    {"first_name", "last_name", "profile_image_url", "tier", "role", "email_verified", "password_hash"}
)


class InMemoryCredentialStore:
    """Credential store backed by dictionaries. Thread-safe."""

    def __init__(self):
        self._lock = threading.RLock()
        self._subjects: dict[str, Subject] = {}
        self._subject_ids_by_email: dict[str, str] = {}
        self._links: dict[str, OAuthAccountLink] = {}
        self._link_ids_by_identity: dict[tuple[OAuthProvider, str], str] = {}
        self._sessions: dict[str, Session] = {}
        self._session_tokens: set[str] = set()
        self._verifications: dict[str, EmailVerification] = {}

    # -------------------------------------------------------------------------
    # Subjects
    # -------------------------------------------------------------------------

    def create_subject(self, subject: Subject) -> Subject:
        with self._lock:
            self._insert_subject(subject)
            return subject

    def _insert_subject(self, subject: Subject) -> None:
        if subject.email in self._subject_ids_by_email:
            raise EmailAlreadyExistsError()
        self._subjects[subject.id] = subject
        self._subject_ids_by_email[subject.email] = subject.id

    def get_subject(self, subject_id: str) -> Optional[Subject]:
        with self._lock:
            return self._subjects.get(subject_id)

    def get_subject_by_email(self, email: str) -> Optional[Subject]:
        with self._lock:
            subject_id = self._subject_ids_by_email.get(email)
            return self._subjects.get(subject_id) if subject_id else None

    def update_subject(self, subject_id: str, changes: dict[str, Any]) -> Optional[Subject]:
        unknown = set(changes) - UPDATABLE_SUBJECT_FIELDS
        if unknown:
            raise ValueError(f"Cannot update subject fields: {sorted(unknown)}")
        with self._lock:
            subject = self._subjects.get(subject_id)
            if subject is None:
                return None
            updated = subject.model_copy(
                update={**changes, "updated_at": datetime.now(timezone.utc)}
            )
            self._subjects[subject_id] = updated
            return updated

    def increment_usage(self, subject_id: str) -> Optional[Subject]:
        with self._lock:
            subject = self._subjects.get(subject_id)
            if subject is None:
                return None
            updated = subject.model_copy(
                update={
                    "usage_count": subject.usage_count + 1,
                    "updated_at": datetime.now(timezone.utc),
                }
            )
            self._subjects[subject_id] = updated
            return updated

    # -------------------------------------------------------------------------
    # OAuth account links
    # -------------------------------------------------------------------------

    def get_oauth_link(
        self, provider: OAuthProvider, external_account_id: str
    ) -> Optional[OAuthAccountLink]:
        with self._lock:
            link_id = self._link_ids_by_identity.get((provider, external_account_id))
            return self._links.get(link_id) if link_id else None

    def create_oauth_link(self, link: OAuthAccountLink) -> OAuthAccountLink:
        with self._lock:
            self._insert_link(link)
            return link

    def _insert_link(self, link: OAuthAccountLink) -> None:
        key = (link.provider, link.external_account_id)
        if key in self._link_ids_by_identity:
            raise DuplicateOAuthLinkError(link.provider.value, link.external_account_id)
        if link.subject_id not in self._subjects:
            raise ValueError(f"Subject {link.subject_id} does not exist")
        self._links[link.id] = link
        self._link_ids_by_identity[key] = link.id

    def create_subject_with_oauth_link(
        self, subject: Subject, link: OAuthAccountLink
    ) -> Subject:
        with self._lock:
            if (link.provider, link.external_account_id) in self._link_ids_by_identity:
                raise DuplicateOAuthLinkError(link.provider.value, link.external_account_id)
            self._insert_subject(subject)
            self._insert_link(link)
            return subject

    def update_oauth_tokens(
        self,
        link_id: str,
        access_token: Optional[str],
        refresh_token: Optional[str],
        id_token: Optional[str],
    ) -> Optional[OAuthAccountLink]:
        with self._lock:
            link = self._links.get(link_id)
            if link is None:
                return None
            updated = link.model_copy(
                update={
                    "access_token": access_token,
                    "refresh_token": refresh_token,
                    "id_token": id_token,
                    "updated_at": datetime.now(timezone.utc),
                }
            )
            self._links[link_id] = updated
            return updated

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def create_session(self, session: Session) -> Session:
        with self._lock:
            if session.token in self._session_tokens or session.id in self._sessions:
                raise DuplicateSessionTokenError()
            self._sessions[session.id] = session
            self._session_tokens.add(session.token)
            return session

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def delete_session(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is not None:
                self._session_tokens.discard(session.token)

    def delete_expired_sessions(self, now: datetime) -> int:
        with self._lock:
            expired = [s.id for s in self._sessions.values() if s.expires_at <= now]
            for session_id in expired:
                self.delete_session(session_id)
            return len(expired)

    # -------------------------------------------------------------------------
    # Email verifications
    # -------------------------------------------------------------------------

    def replace_email_verification(self, record: EmailVerification) -> EmailVerification:
        with self._lock:
            stale = [
                v.id
                for v in self._verifications.values()
                if v.subject_id == record.subject_id and not v.verified
            ]
            for verification_id in stale:
                del self._verifications[verification_id]
            self._verifications[record.id] = record
            return record

    def find_unverified_verification(
        self, email: str, code: str
    ) -> Optional[EmailVerification]:
        with self._lock:
            for record in self._verifications.values():
                if record.email == email and record.code == code and not record.verified:
                    return record
            return None

    def confirm_email_verification(self, verification_id: str, subject_id: str) -> bool:
        with self._lock:
            record = self._verifications.get(verification_id)
            subject = self._subjects.get(subject_id)
            if record is None or record.verified or subject is None:
                return False
            self._verifications[verification_id] = record.model_copy(update={"verified": True})
            self._subjects[subject_id] = subject.model_copy(
                update={"email_verified": True, "updated_at": datetime.now(timezone.utc)}
            )
            return True

    def has_unverified_verification(self, subject_id: str) -> bool:
        with self._lock:
            return any(
                v.subject_id == subject_id and not v.verified
                for v in self._verifications.values()
            )

"""
Credential repository for database access.

Encapsulates all Supabase queries and data mapping for the auth tables
created by migrations/001_auth_schema.sql:
- subjects
- oauth_links
- sessions
- email_verifications

Uniqueness is enforced by the schema's unique indexes; the compound
operations that must be atomic are Postgres functions called through RPC.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from postgrest.exceptions import APIError

from shared.repository import BaseRepository
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

logger = logging.getLogger(__name__)

SUBJECT_EMAIL_INDEX = "subjects_email_lower_key"
OAUTH_IDENTITY_INDEX = "oauth_links_provider_external_key"


class SupabaseCredentialStore(BaseRepository[Subject]):
    """
    Credential store backed by Postgres through the Supabase client.

    Note: This repository does NOT perform authorization checks or apply
    business rules. The auth services are responsible for both.
    """

    def _run(self, query: Any, operation: str) -> Any:
        """Execute a PostgREST query, mapping transport failures to StorageError."""
        try:
            return query.execute()
        except httpx.HTTPError as e:
            logger.error("Credential store unreachable during %s", operation, exc_info=True)
            raise self.storage_error(e, operation) from e

    def _raise_unexpected(self, error: APIError, operation: str) -> None:
        logger.error("Credential store error during %s: %s", operation, error.code)
        raise self.storage_error(error, operation) from error

    # -------------------------------------------------------------------------
    # Subjects
    # -------------------------------------------------------------------------

    def create_subject(self, subject: Subject) -> Subject:
        try:
            result = self._run(
                self._db.table("subjects").insert(subject.model_dump(mode="json")),
                "create_subject",
            )
        except APIError as e:
            if self.is_unique_violation(e):
                raise EmailAlreadyExistsError() from e
            self._raise_unexpected(e, "create_subject")
        return Subject(**result.data[0])

    def get_subject(self, subject_id: str) -> Optional[Subject]:
        return self._select_one("subjects", Subject, "get_subject", id=subject_id)

    def get_subject_by_email(self, email: str) -> Optional[Subject]:
        return self._select_one("subjects", Subject, "get_subject_by_email", email=email)

    def update_subject(self, subject_id: str, changes: dict[str, Any]) -> Optional[Subject]:
        payload = {
            key: value.value if hasattr(value, "value") else value
            for key, value in changes.items()
        }
        payload["updated_at"] = datetime.now(timezone.utc).isoformat()
        try:
            result = self._run(
                self._db.table("subjects").update(payload).eq("id", subject_id),
                "update_subject",
            )
        except APIError as e:
            self._raise_unexpected(e, "update_subject")
        return Subject(**result.data[0]) if result.data else None

    def increment_usage(self, subject_id: str) -> Optional[Subject]:
        try:
            result = self._run(
                self._db.rpc("increment_subject_usage", {"p_subject_id": subject_id}),
                "increment_usage",
            )
        except APIError as e:
            self._raise_unexpected(e, "increment_usage")
        return Subject(**result.data[0]) if result.data else None

    # -------------------------------------------------------------------------
    # OAuth account links
    # -------------------------------------------------------------------------

    def get_oauth_link(
        self, provider: OAuthProvider, external_account_id: str
    ) -> Optional[OAuthAccountLink]:
        return self._select_one(
            "oauth_links",
            OAuthAccountLink,
            "get_oauth_link",
            provider=provider.value,
            external_account_id=external_account_id,
        )

    def create_oauth_link(self, link: OAuthAccountLink) -> OAuthAccountLink:
        try:
            result = self._run(
                self._db.table("oauth_links").insert(link.model_dump(mode="json")),
                "create_oauth_link",
            )
        except APIError as e:
            if self.is_unique_violation(e):
                raise DuplicateOAuthLinkError(link.provider.value, link.external_account_id) from e
            self._raise_unexpected(e, "create_oauth_link")
        return OAuthAccountLink(**result.data[0])

    def create_subject_with_oauth_link(
        self, subject: Subject, link: OAuthAccountLink
    ) -> Subject:
        try:
            result = self._run(
                self._db.rpc(
                    "create_subject_with_oauth_link",
                    {
                        "p_subject": subject.model_dump(mode="json"),
                        "p_link": link.model_dump(mode="json"),
                    },
                ),
                "create_subject_with_oauth_link",
            )
        except APIError as e:
            if self.is_unique_violation(e, OAUTH_IDENTITY_INDEX):
                raise DuplicateOAuthLinkError(link.provider.value, link.external_account_id) from e
            if self.is_unique_violation(e, SUBJECT_EMAIL_INDEX):
                raise EmailAlreadyExistsError() from e
            self._raise_unexpected(e, "create_subject_with_oauth_link")
        return Subject(**result.data[0])

    def update_oauth_tokens(
        self,
        link_id: str,
        access_token: Optional[str],
        refresh_token: Optional[str],
        id_token: Optional[str],
    ) -> Optional[OAuthAccountLink]:
        try:
            result = self._run(
                self._db.table("oauth_links")
                .update(
                    {
                        "access_token": access_token,
                        "refresh_token": refresh_token,
                        "id_token": id_token,
                        "updated_at": datetime.now(timezone.utc).isoformat(),
                    }
                )
                .eq("id", link_id),
                "update_oauth_tokens",
            )
        except APIError as e:
            self._raise_unexpected(e, "update_oauth_tokens")
        return OAuthAccountLink(**result.data[0]) if result.data else None

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def create_session(self, session: Session) -> Session:
        try:
            result = self._run(
                self._db.table("sessions").insert(session.model_dump(mode="json")),
                "create_session",
            )
        except APIError as e:
            if self.is_unique_violation(e):
                raise DuplicateSessionTokenError() from e
            self._raise_unexpected(e, "create_session")
        return Session(**result.data[0])

    def get_session(self, session_id: str) -> Optional[Session]:
        return self._select_one("sessions", Session, "get_session", id=session_id)

    def delete_session(self, session_id: str) -> None:
        try:
            self._run(self._db.table("sessions").delete().eq("id", session_id), "delete_session")
        except APIError as e:
            self._raise_unexpected(e, "delete_session")

    def delete_expired_sessions(self, now: datetime) -> int:
        try:
            result = self._run(
                self._db.table("sessions").delete().lte("expires_at", now.isoformat()),
                "delete_expired_sessions",
            )
        except APIError as e:
            self._raise_unexpected(e, "delete_expired_sessions")
        return len(result.data or [])

    # -------------------------------------------------------------------------
    # Email verifications
    # -------------------------------------------------------------------------

    def replace_email_verification(self, record: EmailVerification) -> EmailVerification:
        try:
            result = self._run(
                self._db.rpc(
                    "replace_email_verification",
                    {"p_record": record.model_dump(mode="json")},
                ),
                "replace_email_verification",
            )
        except APIError as e:
            self._raise_unexpected(e, "replace_email_verification")
        return EmailVerification(**result.data[0])

    def find_unverified_verification(
        self, email: str, code: str
    ) -> Optional[EmailVerification]:
        return self._select_one(
            "email_verifications",
            EmailVerification,
            "find_unverified_verification",
            email=email,
            code=code,
            verified="false",
        )

    def confirm_email_verification(self, verification_id: str, subject_id: str) -> bool:
        try:
            result = self._run(
                self._db.rpc(
                    "confirm_email_verification",
                    {"p_verification_id": verification_id, "p_subject_id": subject_id},
                ),
                "confirm_email_verification",
            )
        except APIError as e:
            self._raise_unexpected(e, "confirm_email_verification")
        return bool(result.data)

    def has_unverified_verification(self, subject_id: str) -> bool:
        try:
            result = self._run(
                self._db.table("email_verifications")
                .select("id")
                .eq("subject_id", subject_id)
                .eq("verified", "false")
                .limit(1),
                "has_unverified_verification",
            )
        except APIError as e:
            self._raise_unexpected(e, "has_unverified_verification")
        return bool(result.data)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _select_one(self, table: str, model: type, operation: str, **filters: Any):
        query = self._db.table(table).select("*")
        for column, value in filters.items():
            query = query.eq(column, value)
        try:
            result = self._run(query.limit(1), operation)
        except APIError as e:
            self._raise_unexpected(e, operation)
        if not result.data:
            return None
        return model(**result.data[0])

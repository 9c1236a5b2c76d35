"""
Session lifecycle: creation, resolution, revocation and expiry sweep.

A session is valid from creation until `expires_at`; after that, or after
revocation, it is treated as nonexistent whether or not its row still
exists.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from shared.models import AuthenticatedUser

from .exceptions import InvalidTokenError, MissingTokenError, SessionInvalidError
from .interfaces import ICredentialStore
from .models import Session, SessionToken, Subject
from .tokens import TokenIssuer

logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(days=7)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """
    Owns the session entity lifecycle.

    Tokens minted here are bound to exactly one session row; resolving a
    token always goes back to the store, so revocation takes effect
    immediately.
    """

    def __init__(
        self,
        store: ICredentialStore,
        tokens: TokenIssuer,
        ttl: timedelta = SESSION_TTL,
        clock: Clock = utc_now,
    ):
        self._store = store
        self._tokens = tokens
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def create_session(self, subject_id: str) -> SessionToken:
        """Persist a new session row and mint a token bound to it."""
        now = self._clock()
        session_id = str(uuid.uuid4())
        session = self._store.create_session(
            Session(
                id=session_id,
                subject_id=subject_id,
                token=session_id,
                expires_at=now + self._ttl,
                created_at=now,
            )
        )
        token = self._tokens.issue(subject_id, session.id, self._ttl, issued_at=now)
        logger.debug("Session created", extra={"subject_id": subject_id, "session_id": session.id})
        return SessionToken(token=token, session_id=session.id, expires_at=session.expires_at)

    async def resolve_session(self, token: str) -> AuthenticatedUser:
        """
        Turn a bearer token into the subject that owns its live session.

        Raises:
            MissingTokenError: If no token was supplied
            SessionInvalidError: For every other failure, with the reason logged
        """
        subject = self.resolve_subject(token)
        return subject.to_public()

    def resolve_subject(self, token: str) -> Subject:
        """Like resolve_session, but returns the full stored subject."""
        if not token:
            raise MissingTokenError()

        try:
            claims = self._tokens.verify(token)
        except InvalidTokenError as e:
            logger.info("Token rejected", extra={"reason": e.reason})
            raise SessionInvalidError(reason=e.reason) from e

        session = self._store.get_session(claims.sid)
        if session is None or session.subject_id != claims.sub:
            logger.info("Token rejected", extra={"reason": "session_not_found", "session_id": claims.sid})
            raise SessionInvalidError(reason="session_not_found")

        if not session.is_live(self._clock()):
            # Lazily purge; the sweep would catch it later anyway.
            self._store.delete_session(session.id)
            logger.info("Token rejected", extra={"reason": "session_expired", "session_id": session.id})
            raise SessionInvalidError(reason="session_expired")

        subject = self._store.get_subject(session.subject_id)
        if subject is None:
            logger.warning("Session owner missing", extra={"session_id": session.id})
            raise SessionInvalidError(reason="subject_not_found")
        return subject

    def session_id_for(self, token: str) -> Optional[str]:
        """
        Extract the session ID a token is bound to, ignoring token expiry.

        Used by logout, which must work even for a token whose exp has just
        passed. Returns None for tokens that do not verify.
        """
        try:
            return self._tokens.verify(token, verify_expiry=False).sid
        except (InvalidTokenError, MissingTokenError):
            return None

    def revoke_session(self, session_id: str) -> None:
        """Delete a session. Idempotent."""
        self._store.delete_session(session_id)
        logger.debug("Session revoked", extra={"session_id": session_id})

    def purge_expired(self) -> int:
        """Hard-delete every session past expiry. Best-effort housekeeping."""
        removed = self._store.delete_expired_sessions(self._clock())
        if removed:
            logger.info("Purged %d expired sessions", removed)
        return removed

"""
Bearer token issuing and verification.

Tokens are HS256 JWTs carrying the subject ID, the session ID and the
issue/expiry instants. They are deliberately thin: every use is followed by a
session-store lookup, so a token that outlives its session is worthless.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone

import jwt
from pydantic import ValidationError as PydanticValidationError

from shared.config import Settings
from shared.exceptions import ConfigurationError

from .exceptions import InvalidTokenError, MissingTokenError, TokenExpiredError
from .models import TokenClaims

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["sub", "sid", "iat", "exp"]


class TokenIssuer:
    """Mints and checks signed, time-limited session tokens."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        leeway_seconds: int = 0,
    ):
        if not secret:
            raise ConfigurationError(
                "Token signing key is not configured. Set JWT_SECRET.",
                code="SIGNING_KEY_MISSING",
            )
        self._secret = secret
        self._algorithm = algorithm
        self._leeway = timedelta(seconds=leeway_seconds)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        """
        Build the process-wide issuer from configuration.

        Outside development/test a missing JWT_SECRET is fatal. In development
        a random per-process key is used, which invalidates all tokens on
        restart.
        """
        secret = settings.jwt_secret
        if not secret:
            if not settings.is_development:
                raise ConfigurationError(
                    f"JWT_SECRET must be set when ENVIRONMENT={settings.environment}",
                    code="SIGNING_KEY_MISSING",
                )
            logger.warning("JWT_SECRET not set; using an ephemeral development signing key")
            secret = secrets.token_urlsafe(64)
        return cls(
            secret,
            algorithm=settings.jwt_algorithm,
            leeway_seconds=settings.token_clock_skew_seconds,
        )

    @property
    def leeway(self) -> timedelta:
        return self._leeway

    def issue(
        self,
        subject_id: str,
        session_id: str,
        ttl: timedelta,
        issued_at: datetime | None = None,
    ) -> str:
        """Sign a token bound to one session of one subject."""
        issued_at = issued_at or datetime.now(timezone.utc)
        payload = {
            "sub": subject_id,
            "sid": session_id,
            "iat": issued_at,
            "exp": issued_at + ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str, verify_expiry: bool = True) -> TokenClaims:
        """
        Validate signature, then expiry, and return the claims.

        `verify_expiry=False` still checks the signature; logout uses it so a
        just-expired token can still revoke its session.

        Raises:
            MissingTokenError: If the token is empty
            TokenExpiredError: If the signature is valid but exp has passed
            InvalidTokenError: For a bad signature or any malformed input
        """
        if not token:
            raise MissingTokenError()

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                leeway=self._leeway,
                options={"require": REQUIRED_CLAIMS, "verify_exp": verify_expiry},
            )
            return TokenClaims(**payload)
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError()
        except jwt.InvalidSignatureError:
            raise InvalidTokenError(reason="invalid_signature")
        except (jwt.InvalidTokenError, PydanticValidationError):
            raise InvalidTokenError(reason="malformed")

"""
Dependency injection setup for FastAPI.

This module provides the "container" that wires together all module
implementations. Each module exposes its service through an interface,
and this file creates the concrete implementations.

Every component is constructed once per container and handed to its
collaborators by reference; nothing below reaches for a global.
"""

from datetime import timedelta
from typing import TYPE_CHECKING, Optional

from shared.config import Settings, get_settings
from shared.exceptions import ConfigurationError

# Type checking imports for interfaces (avoids circular imports)
if TYPE_CHECKING:
    from modules.auth.access import AccessGate
    from modules.auth.hashing import PasswordHasher
    from modules.auth.interfaces import ICredentialStore, INotificationSink
    from modules.auth.rate_limit import ResendRateLimiter
    from modules.auth.service import AuthService
    from modules.auth.sessions import SessionManager
    from modules.auth.tokens import TokenIssuer


class ServiceContainer:
    """
    Container for all service instances.

    This class manages the lifecycle of service instances and their
    dependencies. Services are created lazily on first access and cached
    for the lifetime of the container.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self._store: "ICredentialStore | None" = None
        self._tokens: "TokenIssuer | None" = None
        self._hasher: "PasswordHasher | None" = None
        self._sessions: "SessionManager | None" = None
        self._notifier: "INotificationSink | None" = None
        self._auth_service: "AuthService | None" = None
        self._access_gate: "AccessGate | None" = None
        self._resend_limiter: "ResendRateLimiter | None" = None

    @property
    def store(self) -> "ICredentialStore":
        """Get the credential store selected by AUTH_STORE_BACKEND."""
        if self._store is None:
            backend = self.settings.auth_store_backend.lower()
            if backend == "memory":
                from modules.auth.store import InMemoryCredentialStore
                self._store = InMemoryCredentialStore()
            elif backend == "supabase":
                from modules.auth.repository import SupabaseCredentialStore
                from shared.database import get_supabase_client
                self._store = SupabaseCredentialStore(get_supabase_client())
            else:
                raise ConfigurationError(
                    f"Unknown AUTH_STORE_BACKEND '{self.settings.auth_store_backend}'",
                    code="UNKNOWN_STORE_BACKEND",
                )
        return self._store

    @property
    def tokens(self) -> "TokenIssuer":
        """Get the token issuer. Raises ConfigurationError without a usable key."""
        if self._tokens is None:
            from modules.auth.tokens import TokenIssuer
            self._tokens = TokenIssuer.from_settings(self.settings)
        return self._tokens

    @property
    def hasher(self) -> "PasswordHasher":
        if self._hasher is None:
            from modules.auth.hashing import PasswordHasher
            self._hasher = PasswordHasher()
        return self._hasher

    @property
    def sessions(self) -> "SessionManager":
        if self._sessions is None:
            from modules.auth.sessions import SessionManager
            self._sessions = SessionManager(
                self.store,
                self.tokens,
                ttl=timedelta(days=self.settings.session_ttl_days),
            )
        return self._sessions

    @property
    def notifier(self) -> "INotificationSink":
        """Resend when an API key is configured, otherwise the logging sink."""
        if self._notifier is None:
            from modules.auth.notifications import LoggingNotificationSink, ResendNotificationSink
            if self.settings.resend_api_key:
                self._notifier = ResendNotificationSink(
                    api_key=self.settings.resend_api_key,
                    from_email=self.settings.from_email,
                    app_name=self.settings.app_name,
                    frontend_url=self.settings.frontend_url,
                    verification_ttl_minutes=self.settings.verification_code_ttl_minutes,
                )
            else:
                self._notifier = LoggingNotificationSink()
        return self._notifier

    @property
    def auth(self) -> "AuthService":
        """Get the auth service instance."""
        if self._auth_service is None:
            from modules.auth.service import AuthService
            self._auth_service = AuthService(
                store=self.store,
                sessions=self.sessions,
                hasher=self.hasher,
                notifier=self.notifier,
                frontend_url=self.settings.frontend_url,
                verification_ttl=timedelta(minutes=self.settings.verification_code_ttl_minutes),
            )
        return self._auth_service

    @property
    def access_gate(self) -> "AccessGate":
        if self._access_gate is None:
            from modules.auth.access import AccessGate
            self._access_gate = AccessGate(self.sessions)
        return self._access_gate

    @property
    def resend_limiter(self) -> "ResendRateLimiter":
        if self._resend_limiter is None:
            from modules.auth.rate_limit import ResendRateLimiter
            self._resend_limiter = ResendRateLimiter(
                capacity=self.settings.resend_verification_limit,
                window_seconds=self.settings.resend_verification_window_seconds,
            )
        return self._resend_limiter

    def validate(self) -> None:
        """
        Build the components that must be valid before serving requests.

        Raises:
            ConfigurationError: If the signing key or store backend is unusable
        """
        _ = self.tokens
        _ = self.store


# Module-level container singleton
_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """Get the singleton service container."""
    global _container
    if _container is None:
        _container = ServiceContainer()
    return _container


def set_container(container: ServiceContainer) -> None:
    """Install a pre-built container (tests wire in-memory components this way)."""
    global _container
    _container = container


def reset_container() -> None:
    """
    Reset the service container.

    This clears the cached container, so the next call to get_container()
    will create a fresh container with new service instances.

    Primarily used for testing.
    """
    global _container
    _container = None


# FastAPI dependency functions
# These are the functions that should be used in route Depends() calls


def get_auth_service() -> "AuthService":
    """FastAPI dependency for auth service."""
    return get_container().auth


def get_access_gate() -> "AccessGate":
    """FastAPI dependency for the access control gate."""
    return get_container().access_gate


def get_resend_limiter() -> "ResendRateLimiter":
    """FastAPI dependency for the verification-resend rate limiter."""
    return get_container().resend_limiter

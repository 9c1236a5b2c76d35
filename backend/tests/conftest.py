"""
Shared test fixtures and utilities.

This module provides common test infrastructure used across all test modules:
a controllable clock, a recording notification sink and a fully wired
in-memory auth stack with a cheap bcrypt cost.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from api.dependencies import ServiceContainer, reset_container, set_container
from modules.auth.hashing import PasswordHasher
from modules.auth.service import AuthService
from modules.auth.sessions import SessionManager
from modules.auth.store import InMemoryCredentialStore
from modules.auth.tokens import TokenIssuer
from shared.config import Settings


# Test JWT secret (only for testing)
TEST_JWT_SECRET = "test-secret-key-for-testing-only"

# Lowest cost bcrypt accepts.
TEST_BCRYPT_ROUNDS = 4


class FrozenClock:
    """
    Callable clock that only moves when told to.

    Starts at the real current time: token expiry is checked by PyJWT against
    the wall clock, so session rows and tokens must agree at the start.
    """

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingNotificationSink:
    """Notification sink that records every send. Set `fail` to simulate outages."""

    def __init__(self):
        self.verification_emails: list[dict] = []
        self.welcome_emails: list[dict] = []
        self.fail = False
        self.raise_error: Optional[Exception] = None

    async def send_verification_email(self, email, code, verification_url, first_name=None) -> bool:
        if self.raise_error is not None:
            raise self.raise_error
        self.verification_emails.append(
            {"email": email, "code": code, "url": verification_url, "first_name": first_name}
        )
        return not self.fail

    async def send_welcome_email(self, email, first_name=None) -> bool:
        if self.raise_error is not None:
            raise self.raise_error
        self.welcome_emails.append({"email": email, "first_name": first_name})
        return not self.fail

    @property
    def last_code(self) -> str:
        return self.verification_emails[-1]["code"]


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def tokens() -> TokenIssuer:
    return TokenIssuer(TEST_JWT_SECRET)


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture
def sink() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def sessions(store, tokens, clock) -> SessionManager:
    return SessionManager(store, tokens, clock=clock)


@pytest.fixture
def auth_service(store, sessions, hasher, sink, clock) -> AuthService:
    return AuthService(
        store=store,
        sessions=sessions,
        hasher=hasher,
        notifier=sink,
        frontend_url="https://app.example.com",
        clock=clock,
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        jwt_secret=TEST_JWT_SECRET,
        auth_store_backend="memory",
        resend_api_key="",
        session_sweep_interval_seconds=0,
        resend_verification_limit=3,
        resend_verification_window_seconds=900,
    )


@pytest.fixture
def container(test_settings, sink) -> ServiceContainer:
    """In-memory container with a cheap hasher and the recording sink."""
    container = ServiceContainer(test_settings)
    container._hasher = PasswordHasher(rounds=TEST_BCRYPT_ROUNDS)
    container._notifier = sink
    # TestClient runs each request on a short-lived event loop, so deliveries
    # are awaited inline rather than left as background tasks.
    container._auth_service = AuthService(
        store=container.store,
        sessions=container.sessions,
        hasher=container.hasher,
        notifier=sink,
        frontend_url=test_settings.frontend_url,
        notify_in_background=False,
    )
    return container


@pytest.fixture
def app(container):
    set_container(container)
    yield create_app()
    reset_container()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture(autouse=True)
def reset_service_container():
    """Drop any container a previous test installed."""
    reset_container()
    yield
    reset_container()

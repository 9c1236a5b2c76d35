"""
Fixture identity provider for test harnesses.

Maps fixed bearer strings to canned users. It satisfies ISubjectResolver so
a test can hand it to AccessGate in place of the session manager; nothing in
the production container ever constructs one.
"""

from typing import Optional

from shared.models import AuthenticatedUser

from .exceptions import MissingTokenError, SessionInvalidError


class FixtureIdentityProvider:
    """In-memory token -> user table."""

    def __init__(self, identities: Optional[dict[str, AuthenticatedUser]] = None):
        self._identities: dict[str, AuthenticatedUser] = dict(identities or {})

    def register(self, token: str, user: AuthenticatedUser) -> None:
        self._identities[token] = user

    async def resolve_session(self, token: str) -> AuthenticatedUser:
        if not token:
            raise MissingTokenError()
        user = self._identities.get(token)
        if user is None:
            raise SessionInvalidError(reason="unknown_fixture_token")
        return user

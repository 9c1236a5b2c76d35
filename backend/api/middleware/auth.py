"""
Bearer-token authentication dependencies.

Extracts `Authorization: Bearer <token>` and hands it to the access gate,
which resolves it against the session store on every request.
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from modules.auth.access import AccessGate
from modules.auth.exceptions import MissingTokenError
from shared.models import AuthenticatedUser

from ..dependencies import get_access_gate

# Bearer token extractor
bearer_scheme = HTTPBearer(auto_error=False)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """Raw bearer token, or None if the header is absent."""
    if credentials is None:
        return None
    return credentials.credentials


def require_bearer_token(token: Optional[str] = Depends(get_bearer_token)) -> str:
    """Raw bearer token. Raises MissingTokenError if absent."""
    if not token:
        raise MissingTokenError()
    return token


async def get_current_user(
    token: Optional[str] = Depends(get_bearer_token),
    gate: AccessGate = Depends(get_access_gate),
) -> AuthenticatedUser:
    """
    Dependency that requires authentication.

    Use this for endpoints that require a logged-in user.

    Usage:
        @router.get("/protected")
        async def protected_route(user: AuthenticatedUser = Depends(get_current_user)):
            return {"user_id": user.id}
    """
    return await gate.authenticate(token)


async def get_optional_user(
    token: Optional[str] = Depends(get_bearer_token),
    gate: AccessGate = Depends(get_access_gate),
) -> Optional[AuthenticatedUser]:
    """
    Dependency that optionally extracts user if authenticated.

    Use this for endpoints that work with or without authentication.
    """
    return await gate.authenticate_optional(token)


# Type aliases for cleaner route definitions
RequireAuth = Depends(get_current_user)
OptionalAuth = Depends(get_optional_user)

"""
Access control gate.

Authentication turns a bearer token into a subject through whatever
ISubjectResolver was wired at startup. Authorization is a pure ownership
predicate that works for any resource exposing `owner_id` and `is_public`.
"""

import logging
from typing import Optional, Protocol, runtime_checkable

from shared.exceptions import AuthenticationError
from shared.models import AuthenticatedUser

from .exceptions import AccessDeniedError, MissingTokenError
from .interfaces import ISubjectResolver

logger = logging.getLogger(__name__)


@runtime_checkable
class OwnedResource(Protocol):
    """Anything with an owner and a public flag: stories, profiles, ..."""

    @property
    def owner_id(self) -> str:
        ...

    @property
    def is_public(self) -> bool:
        ...


def authorize(subject: AuthenticatedUser, resource: OwnedResource) -> bool:
    """True if the subject owns the resource, it is public, or the subject is an admin."""
    return resource.owner_id == subject.id or bool(resource.is_public) or subject.is_admin


def require_access(
    subject: AuthenticatedUser, resource: OwnedResource, resource_type: str = "resource"
) -> None:
    """
    Raises:
        AccessDeniedError: If `authorize` is False
    """
    if not authorize(subject, resource):
        logger.info(
            "Access denied to %s", resource_type, extra={"subject_id": subject.id}
        )
        raise AccessDeniedError(resource_type)


class AccessGate:
    """Request-level authentication in required or optional mode."""

    def __init__(self, resolver: ISubjectResolver):
        self._resolver = resolver

    async def authenticate(self, token: Optional[str]) -> AuthenticatedUser:
        """
        Required mode.

        Raises:
            MissingTokenError: If no token was supplied
            AuthenticationError: If the token does not identify a live session
        """
        if not token:
            raise MissingTokenError()
        return await self._resolver.resolve_session(token)

    async def authenticate_optional(self, token: Optional[str]) -> Optional[AuthenticatedUser]:
        """Optional mode: any authentication failure yields None."""
        if not token:
            return None
        try:
            return await self._resolver.resolve_session(token)
        except AuthenticationError:
            return None

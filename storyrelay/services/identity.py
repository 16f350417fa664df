"""Credential resolution

Verifying credentials is someone else's job; the coordinator only needs a
user id. Deployments plug in their own IdentityResolver.
"""

from abc import ABC, abstractmethod
from typing import Optional

from storyrelay.core.errors import AuthenticationError

BEARER_PREFIX = "bearer "


class IdentityResolver(ABC):
    """Maps a client credential to a user id."""

    @abstractmethod
    def resolve(self, token: Optional[str]) -> str:
        """User id for ``token``. Raises AuthenticationError when unresolvable."""
        ...

    def resolve_header(self, authorization: Optional[str]) -> str:
        """Resolve an ``Authorization: Bearer <token>`` header value."""
        if not authorization or not authorization.lower().startswith(BEARER_PREFIX):
            raise AuthenticationError("Authentication token required.")
        return self.resolve(authorization[len(BEARER_PREFIX):])


class TrustedTokenResolver(IdentityResolver):
    """Development resolver: the token *is* the user id."""

    def resolve(self, token: Optional[str]) -> str:
        if not isinstance(token, str) or not token.strip():
            raise AuthenticationError("Authentication token required.")
        return token.strip()

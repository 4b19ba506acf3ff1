"""Moderator authentication behind a swappable interface.

The shared secret is a placeholder gate, not a security boundary.
"""
import hmac
from typing import Optional, Protocol

from fastapi import Header, Request

from scamwatch.errors import AuthenticationFailed


class ModeratorAuthenticator(Protocol):
    def authenticate(self, credential: Optional[str]) -> bool: ...


class SharedSecretAuthenticator:
    """Compares the credential against one configured secret."""

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def authenticate(self, credential: Optional[str]) -> bool:
        if not credential or not self._secret:
            return False
        return hmac.compare_digest(credential.encode(), self._secret.encode())


def require_moderator(
    request: Request,
    x_moderator_secret: Optional[str] = Header(default=None),
) -> None:
    """FastAPI dependency for moderator-only routes."""
    authenticator: ModeratorAuthenticator = request.app.state.authenticator
    if not authenticator.authenticate(x_moderator_secret):
        raise AuthenticationFailed("Moderator secret missing or invalid")

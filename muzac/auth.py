"""
Bearer-token dependencies for routes.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header

from muzac.dependencies import get_identity_provider
from muzac.errors import AuthenticationFailure
from muzac.identity import AuthenticatedUser, IdentityProvider

BEARER_PREFIX = "Bearer "


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    return authorization[len(BEARER_PREFIX):]


def get_optional_user(
    authorization: Optional[str] = Header(default=None),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> Optional[AuthenticatedUser]:
    """Resolve the caller if a valid bearer is present; anonymous otherwise."""
    token = bearer_token(authorization)
    if not token:
        return None
    try:
        return identity.verify_access_token(token)
    except AuthenticationFailure:
        return None


def get_current_user(
    user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> AuthenticatedUser:
    if user is None:
        raise AuthenticationFailure("Unauthorized")
    return user

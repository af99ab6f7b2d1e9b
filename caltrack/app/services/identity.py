"""Caller identity taken from session tokens issued by the CalTrack auth service."""
from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Optional

from jose import JWTError, jwt
from pydantic import ValidationError

from ... import app_context
from ...config import EntitlementConfig
from ..entitlements import UserIdentity

logger = logging.getLogger("entitlements.identity")


class IdentitySession:
    """Holds the user most recently authenticated on this instance.

    Background resolutions, which run outside any request, read it.
    """

    def __init__(self) -> None:
        self._identity: Optional[UserIdentity] = None
        self._lock = threading.Lock()

    def sign_in(self, identity: UserIdentity) -> None:
        with self._lock:
            self._identity = identity

    def current(self) -> Optional[UserIdentity]:
        with self._lock:
            return self._identity


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    credentials = credentials.strip()
    if scheme.lower() != "bearer" or not credentials:
        return None
    return credentials


def identity_from_claims(claims: Mapping[str, Any]) -> Optional[UserIdentity]:
    subject = claims.get("sub")
    if subject is None:
        return None
    email = claims.get("email")
    try:
        return UserIdentity(id=str(subject), email=email if isinstance(email, str) else None)
    except ValidationError:
        return None


class SessionTokenIdentityProvider:
    """Resolves the caller from a signed session token.

    The token is read from an ``Authorization: Bearer`` header first and the
    session cookie second. Every accepted identity is signed into ``session``.
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        session: Optional[IdentitySession] = None,
    ) -> None:
        if not secret:
            raise ValueError("A token secret is required")
        self._secret = secret
        self._algorithm = algorithm
        self._session = session

    def resolve_token(self, token: str) -> Optional[UserIdentity]:
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError:
            logger.debug("Rejected session token")
            return None
        return identity_from_claims(claims)

    def __call__(
        self,
        *,
        authorization: Optional[str] = None,
        session_token: Optional[str] = None,
    ) -> Optional[UserIdentity]:
        token = _bearer_token(authorization) or session_token
        if not token:
            return None
        identity = self.resolve_token(token)
        if identity is not None and self._session is not None:
            self._session.sign_in(identity)
        return identity


def configure_request_identity(
    config: EntitlementConfig,
    session: Optional[IdentitySession] = None,
) -> Optional[SessionTokenIdentityProvider]:
    """Register the token provider with the application context.

    Without ``AUTH_JWT_SECRET`` every request is treated as unauthenticated.
    """

    if not config.auth_jwt_secret:
        logger.warning("AUTH_JWT_SECRET not set; requests will be treated as unauthenticated")
        app_context.reset()
        return None
    provider = SessionTokenIdentityProvider(
        config.auth_jwt_secret,
        algorithm=config.auth_jwt_algorithm,
        session=session,
    )
    app_context.configure(get_current_identity=provider)
    return provider


__all__ = [
    "IdentitySession",
    "SessionTokenIdentityProvider",
    "configure_request_identity",
    "identity_from_claims",
]

"""Dashboard operator identity: HS256 ID tokens and the session provider."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import jwt
import structlog
from jwt import ExpiredSignatureError
from jwt import InvalidTokenError as PyJWTInvalidTokenError

from ..domain.models import Identity
from ..store.subscriptions import CallbackSubscription

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(tz=timezone.utc)


class AuthError(Exception):
    """Base class for auth failures."""


class InvalidTokenError(AuthError):
    """Raised when token cannot be decoded."""


class TokenExpiredError(AuthError):
    """Raised when token is expired."""


@dataclass(slots=True)
class TokenVerifier:
    """Issue and verify operator ID tokens signed with a shared key."""

    signing_key: str
    token_ttl: timedelta = timedelta(hours=12)

    def __post_init__(self) -> None:
        if not self.signing_key:
            raise RuntimeError("ADCAST_JWT_SIGNING_KEY is not configured")

    def issue(self, uid: str, *, email: str | None = None, now: datetime | None = None) -> str:
        issued_at = now or _utcnow()
        payload: dict[str, Any] = {
            "sub": uid,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.token_ttl).timestamp()),
        }
        if email:
            payload["email"] = email
        return jwt.encode(payload, self.signing_key, algorithm="HS256")

    def verify(self, token: str) -> Identity:
        """Decode ``token`` and return the operator it identifies."""
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self.signing_key,
                algorithms=["HS256"],
                options={"require": ["exp", "iat", "sub"]},
            )
        except ExpiredSignatureError as exc:
            raise TokenExpiredError("Token expired") from exc
        except PyJWTInvalidTokenError as exc:
            raise InvalidTokenError("Invalid token") from exc
        return Identity(uid=str(payload["sub"]), email=payload.get("email"))


@dataclass(slots=True)
class SessionIdentityProvider:
    """In-process :class:`~adcast.interfaces.IdentityProvider`.

    Operators sign in with an ID token; listeners are notified on every
    sign-in and sign-out.
    """

    verifier: TokenVerifier
    _identity: Identity | None = None
    _listeners: list[tuple[CallbackSubscription, Callable[[Identity | None], None]]] = field(
        default_factory=list
    )

    def current_identity(self) -> Identity | None:
        return self._identity

    def sign_in(self, token: str) -> Identity:
        identity = self.verifier.verify(token)
        self._identity = identity
        logger.info("auth.session.signed_in", uid=identity.uid)
        self._notify()
        return identity

    def sign_out(self) -> None:
        if self._identity is None:
            return
        logger.info("auth.session.signed_out", uid=self._identity.uid)
        self._identity = None
        self._notify()

    def subscribe(self, callback: Callable[[Identity | None], None]) -> CallbackSubscription:
        subscription = CallbackSubscription(self._detach)
        self._listeners.append((subscription, callback))
        return subscription

    def _notify(self) -> None:
        for subscription, callback in list(self._listeners):
            if subscription.active:
                callback(self._identity)

    def _detach(self, subscription: CallbackSubscription) -> None:
        self._listeners = [entry for entry in self._listeners if entry[0] is not subscription]


__all__ = [
    "AuthError",
    "InvalidTokenError",
    "SessionIdentityProvider",
    "TokenExpiredError",
    "TokenVerifier",
]

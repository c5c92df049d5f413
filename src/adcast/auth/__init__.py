"""Operator authentication for the dashboard link API."""

from .identity import (
    AuthError,
    InvalidTokenError,
    SessionIdentityProvider,
    TokenExpiredError,
    TokenVerifier,
)

__all__ = [
    "AuthError",
    "InvalidTokenError",
    "SessionIdentityProvider",
    "TokenExpiredError",
    "TokenVerifier",
]

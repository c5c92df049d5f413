"""FastAPI dependencies resolving services from ``app.state``."""

from __future__ import annotations

from fastapi import Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..auth.identity import (
    InvalidTokenError,
    SessionIdentityProvider,
    TokenExpiredError,
    TokenVerifier,
)
from ..device import DeviceRuntime
from ..domain.models import Identity
from ..pairing.linker import PairingLinker
from .errors import http_error

security = HTTPBearer(auto_error=False)


def get_device_runtime(request: Request) -> DeviceRuntime:
    runtime = getattr(request.app.state, "device_runtime", None)
    if runtime is None:
        raise http_error(status.HTTP_503_SERVICE_UNAVAILABLE, "device_runtime_disabled")
    return runtime


def get_linker(request: Request) -> PairingLinker:
    try:
        return request.app.state.linker  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("PairingLinker is not configured") from exc


def get_token_verifier(request: Request) -> TokenVerifier:
    try:
        return request.app.state.token_verifier  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("TokenVerifier is not configured") from exc


def get_identity_provider(request: Request) -> SessionIdentityProvider:
    try:
        return request.app.state.identity_provider  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("SessionIdentityProvider is not configured") from exc


def require_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> Identity:
    if credentials is None:
        raise http_error(status.HTTP_401_UNAUTHORIZED, "missing_token")
    try:
        return verifier.verify(credentials.credentials)
    except TokenExpiredError as exc:
        raise http_error(status.HTTP_401_UNAUTHORIZED, "token_expired") from exc
    except InvalidTokenError as exc:
        raise http_error(status.HTTP_401_UNAUTHORIZED, "invalid_token") from exc


__all__ = [
    "get_device_runtime",
    "get_identity_provider",
    "get_linker",
    "get_token_verifier",
    "require_identity",
]

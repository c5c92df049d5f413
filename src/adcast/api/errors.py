"""Translate domain errors into HTTP errors."""

from __future__ import annotations

from fastapi import HTTPException, status

from ..exceptions import (
    AdcastError,
    ExpiredPairingError,
    InvalidPairingStateError,
    PairingAlreadyLinkedError,
    PairingNotFoundError,
    PairingOwnershipError,
    PersistenceError,
    QueryError,
    UnauthenticatedError,
)

_STATUS_BY_ERROR: tuple[tuple[type[AdcastError], int, str], ...] = (
    (PairingNotFoundError, status.HTTP_404_NOT_FOUND, "pairing_not_found"),
    (ExpiredPairingError, status.HTTP_410_GONE, "pairing_expired"),
    (PairingAlreadyLinkedError, status.HTTP_409_CONFLICT, "pairing_already_linked"),
    (PairingOwnershipError, status.HTTP_409_CONFLICT, "pairing_owned_elsewhere"),
    (UnauthenticatedError, status.HTTP_401_UNAUTHORIZED, "unauthenticated"),
    (InvalidPairingStateError, status.HTTP_409_CONFLICT, "invalid_pairing_state"),
    (PersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE, "store_unavailable"),
    (QueryError, status.HTTP_503_SERVICE_UNAVAILABLE, "store_unavailable"),
)


def http_error(status_code: int, failure_reason: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"status": "error", "failure_reason": failure_reason},
    )


def to_http_error(exc: AdcastError) -> HTTPException:
    for error_type, status_code, failure_reason in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return http_error(status_code, failure_reason)
    return http_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error")


__all__ = ["http_error", "to_http_error"]
